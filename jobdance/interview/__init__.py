"""Interview system components.

This module contains the turn-taking logic for voice mock interviews:
the state machine and controller, speech input/output front ends, the
paced AI gateway, report schemas and the event system.
"""

# Turn controller and state machine
from .controller import InterviewTurnController
from .state_machine import VoiceEvent, Effect, InvalidTransition, transition

# Data models
from .models import (
    Message, InterviewSession, TranscriptEvent, RecognitionError, RecognitionErrorKind,
    VoiceState, EndOutcome, UserProfile,
)

# Structured schemas
from .schemas import InterviewReport, AnswerValidation, parse_report, build_basic_report

# Services
from .gateway import AIGateway
from .speech_input import SpeechInput
from .speech_output import SpeechOutput
from .presenter import InterviewPresenter, ConsolePresenter

# Event system
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics, create_event_bus,
    EventType, InterviewEvent, InterviewStartedEvent, QuestionAskedEvent,
    AnswerSubmittedEvent, AnswerRejectedEvent, StateChangedEvent, ClosingStartedEvent,
    ReportGeneratedEvent, SessionPersistedEvent, InterviewEndedEvent, ErrorOccurredEvent,
)

__all__ = [
    # Controller and state machine
    "InterviewTurnController",
    "VoiceEvent", "Effect", "InvalidTransition", "transition",

    # Data models
    "Message", "InterviewSession", "TranscriptEvent", "RecognitionError",
    "RecognitionErrorKind", "VoiceState", "EndOutcome", "UserProfile",

    # Schemas
    "InterviewReport", "AnswerValidation", "parse_report", "build_basic_report",

    # Services
    "AIGateway", "SpeechInput", "SpeechOutput", "InterviewPresenter", "ConsolePresenter",

    # Events
    "InterviewEventBus", "EventLogger", "InterviewMetrics", "create_event_bus",
    "EventType", "InterviewEvent", "InterviewStartedEvent", "QuestionAskedEvent",
    "AnswerSubmittedEvent", "AnswerRejectedEvent", "StateChangedEvent", "ClosingStartedEvent",
    "ReportGeneratedEvent", "SessionPersistedEvent", "InterviewEndedEvent", "ErrorOccurredEvent",
]
