"""
Event-driven notifications for the interview loop.
"""
import logging
import time
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of interview events."""
    INTERVIEW_STARTED = "interview_started"
    QUESTION_ASKED = "question_asked"
    ANSWER_SUBMITTED = "answer_submitted"
    ANSWER_REJECTED = "answer_rejected"
    STATE_CHANGED = "state_changed"
    CLOSING_STARTED = "closing_started"
    REPORT_GENERATED = "report_generated"
    SESSION_PERSISTED = "session_persisted"
    INTERVIEW_ENDED = "interview_ended"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class InterviewEvent(ABC):
    """Base class for all interview events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class InterviewStartedEvent(InterviewEvent):
    def __init__(self, session_id: str, max_questions: int, voice_mode: bool):
        super().__init__(
            event_type=EventType.INTERVIEW_STARTED,
            session_id=session_id,
            timestamp=time.time(),
            data={"max_questions": max_questions, "voice_mode": voice_mode}
        )


@dataclass
class QuestionAskedEvent(InterviewEvent):
    def __init__(self, session_id: str, question: str, source: str):
        super().__init__(
            event_type=EventType.QUESTION_ASKED,
            session_id=session_id,
            timestamp=time.time(),
            data={"question": question, "source": source}
        )


@dataclass
class AnswerSubmittedEvent(InterviewEvent):
    def __init__(self, session_id: str, question_count: int, answer: str):
        super().__init__(
            event_type=EventType.ANSWER_SUBMITTED,
            session_id=session_id,
            timestamp=time.time(),
            data={"question_count": question_count, "answer_length": len(answer)}
        )


@dataclass
class AnswerRejectedEvent(InterviewEvent):
    def __init__(self, session_id: str, feedback: str):
        super().__init__(
            event_type=EventType.ANSWER_REJECTED,
            session_id=session_id,
            timestamp=time.time(),
            data={"feedback": feedback}
        )


@dataclass
class StateChangedEvent(InterviewEvent):
    def __init__(self, session_id: str, previous: str, current: str, trigger: str):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            session_id=session_id,
            timestamp=time.time(),
            data={"from": previous, "to": current, "trigger": trigger}
        )


@dataclass
class ClosingStartedEvent(InterviewEvent):
    def __init__(self, session_id: str, question_count: int):
        super().__init__(
            event_type=EventType.CLOSING_STARTED,
            session_id=session_id,
            timestamp=time.time(),
            data={"question_count": question_count}
        )


@dataclass
class ReportGeneratedEvent(InterviewEvent):
    def __init__(self, session_id: str, overall_score: int, late: bool = False):
        super().__init__(
            event_type=EventType.REPORT_GENERATED,
            session_id=session_id,
            timestamp=time.time(),
            data={"overall_score": overall_score, "late": late}
        )


@dataclass
class SessionPersistedEvent(InterviewEvent):
    def __init__(self, session_id: str, has_report: bool):
        super().__init__(
            event_type=EventType.SESSION_PERSISTED,
            session_id=session_id,
            timestamp=time.time(),
            data={"has_report": has_report}
        )


@dataclass
class InterviewEndedEvent(InterviewEvent):
    def __init__(self, session_id: str, outcome: str, question_count: int, duration_seconds: int):
        super().__init__(
            event_type=EventType.INTERVIEW_ENDED,
            session_id=session_id,
            timestamp=time.time(),
            data={
                "outcome": outcome,
                "question_count": question_count,
                "duration_seconds": duration_seconds,
            }
        )


@dataclass
class ErrorOccurredEvent(InterviewEvent):
    def __init__(self, session_id: str, error_type: str, error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=time.time(),
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Event bus for interview system communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to %s", event_type)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                logger.warning("Handler not found for %s", event_type)

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers. Handler failures are logged,
        never raised into the interview loop.
        """
        logger.debug("Emitting event: %s for session %s", event.event_type, event.session_id)

        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in event handler for %s: %s", event.event_type, e)

        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in global event handler: %s", e)

    def clear_handlers(self) -> None:
        self._handlers.clear()
        self._global_handlers.clear()


class EventLogger:
    """Writes every event to the log file."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: InterviewEvent) -> None:
        self.logger.info("Event: %s | Session: %s | Data: %s", event.event_type.value, event.session_id, event.data)


class InterviewMetrics:
    """Collects counters from interview events."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.interviews_started = 0
        self.interviews_ended = 0
        self.questions_asked = 0
        self.fallback_questions = 0
        self.answers_submitted = 0
        self.answers_rejected = 0
        self.reports_generated = 0
        self.sessions_persisted = 0
        self.errors_occurred = 0
        self.outcomes: Dict[str, int] = {}

    def handle_event(self, event: InterviewEvent) -> None:
        if event.event_type == EventType.INTERVIEW_STARTED:
            self.interviews_started += 1
        elif event.event_type == EventType.QUESTION_ASKED:
            self.questions_asked += 1
            if event.data.get("source") == "fallback":
                self.fallback_questions += 1
        elif event.event_type == EventType.ANSWER_SUBMITTED:
            self.answers_submitted += 1
        elif event.event_type == EventType.ANSWER_REJECTED:
            self.answers_rejected += 1
        elif event.event_type == EventType.REPORT_GENERATED:
            self.reports_generated += 1
        elif event.event_type == EventType.SESSION_PERSISTED:
            self.sessions_persisted += 1
        elif event.event_type == EventType.INTERVIEW_ENDED:
            self.interviews_ended += 1
            outcome = event.data.get("outcome", "unknown")
            self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "interviews_started": self.interviews_started,
            "interviews_ended": self.interviews_ended,
            "questions_asked": self.questions_asked,
            "fallback_questions": self.fallback_questions,
            "answers_submitted": self.answers_submitted,
            "answers_rejected": self.answers_rejected,
            "reports_generated": self.reports_generated,
            "sessions_persisted": self.sessions_persisted,
            "errors_occurred": self.errors_occurred,
            "outcomes": dict(self.outcomes),
        }


def create_event_bus(metrics: Optional[InterviewMetrics] = None) -> InterviewEventBus:
    """Bus wired with the event logger and, optionally, a metrics collector."""
    bus = InterviewEventBus()
    bus.subscribe_all(EventLogger().handle_event)
    if metrics is not None:
        bus.subscribe_all(metrics.handle_event)
    return bus
