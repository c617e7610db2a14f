"""
Testing infrastructure with mock services for the interview loop.

Everything here is deterministic: ManualClock fires timers only when
advanced, and the mocks replay scripted responses while recording what
they were asked.
"""
import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .models import Message, TranscriptEvent, RecognitionError
from .presenter import InterviewPresenter
from .schemas import AnswerValidation, InterviewReport
from ..infrastructure.data.conversations import ConversationRecord
from ..utils.clock import Clock


class ManualTimer:
    """Handle returned by ManualClock.call_later."""

    def __init__(self, when: float, seq: int, callback: Callable[[], None]):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock(Clock):
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = 0
        self._timers: List[ManualTimer] = []
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self._now + max(0.0, delay), self._seq, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order."""
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self._now = timer.when
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self._now = target

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.advance(max(0.0, delay))
        await asyncio.sleep(0)


class MockLLMClient:
    """Stands in for VertexRestClient. Exceptions in the script are raised."""

    def __init__(self, mock_responses: Sequence[Union[str, Exception]], default: str = "Tell me more."):
        self.mock_responses = list(mock_responses)
        self.default = default
        self.request_history: List[Dict[str, Any]] = []

    def generate_chat(self, system_prompt: str, messages: List[Dict[str, str]], **kwargs) -> str:
        self.request_history.append({
            "system_prompt": system_prompt,
            "messages": [dict(m) for m in messages],
            "kwargs": kwargs,
        })
        if not self.mock_responses:
            return self.default
        response = self.mock_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class MockRecognizer:
    """Streaming recognizer driven by the test."""

    def __init__(self):
        self.active = False
        self.start_count = 0
        self.stop_count = 0
        self._on_result = None
        self._on_error = None
        self._on_end = None

    def start(self, on_result, on_error, on_end) -> None:
        self.active = True
        self.start_count += 1
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end

    def stop(self) -> None:
        self.active = False
        self.stop_count += 1

    def emit(self, text: str, is_final: bool = False) -> None:
        self._on_result(text, is_final)

    def error(self, code: str, message: str = "") -> None:
        self._on_error(code, message)

    def end(self) -> None:
        self.active = False
        self._on_end()


class MockSpeechOutput:
    """Records what would be spoken and finishes immediately."""

    def __init__(self, channel: str = "silent"):
        self.channel = channel
        self.enabled = True
        self.spoken: List[str] = []
        self.stop_count = 0

    async def speak(self, text: str, on_done: Optional[Callable[[], None]] = None) -> str:
        self.spoken.append(text)
        await asyncio.sleep(0)
        if on_done is not None:
            on_done()
        return self.channel

    def stop(self) -> None:
        self.stop_count += 1


class MockSpeechInput:
    """Returns scripted answers; blocks until cancelled once the script runs out."""

    def __init__(self, results: Sequence[Union[TranscriptEvent, RecognitionError, str]] = (),
                 supported: bool = True):
        self.results = list(results)
        self.supported = supported
        self.heard = ""
        self.listen_count = 0
        self.stop_count = 0

    def current_text(self) -> str:
        return self.heard

    async def listen(self, on_interim=None, on_error=None):
        self.listen_count += 1
        if not self.results:
            await asyncio.get_running_loop().create_future()
        result = self.results.pop(0)
        if isinstance(result, str):
            result = TranscriptEvent(result, is_interim=False)
        if isinstance(result, TranscriptEvent) and on_interim is not None:
            on_interim(result.text)
        return result

    def stop(self) -> None:
        self.stop_count += 1


class ScriptedGateway:
    """
    AIGateway double. ``questions`` entries of None mean the request failed.
    Setting a gate makes the matching request wait until the gate is set.
    """

    def __init__(self,
                 questions: Sequence[Optional[str]] = (),
                 closing: Optional[str] = "Thank you for your time today.",
                 report: Optional[InterviewReport] = None,
                 validations: Sequence[AnswerValidation] = ()):
        self.questions = list(questions)
        self.closing = closing
        self.report = report
        self.validations = list(validations)
        self.question_gate: Optional[asyncio.Event] = None
        self.report_gate: Optional[asyncio.Event] = None
        self.question_calls: List[Dict[str, Any]] = []
        self.report_calls: List[List[Dict[str, str]]] = []
        self.validation_calls: List[Dict[str, str]] = []

    async def request_question(self, messages, profile=None, is_closing=False, fallback=None):
        self.question_calls.append({
            "messages": [m.to_dict() if isinstance(m, Message) else dict(m) for m in messages],
            "is_closing": is_closing,
        })
        if self.question_gate is not None:
            await self.question_gate.wait()
        if is_closing:
            return self.closing or fallback
        text = self.questions.pop(0) if self.questions else "Can you give me an example?"
        return text or fallback

    async def request_report(self, messages, profile=None, duration_seconds=None):
        self.report_calls.append([dict(m) for m in messages])
        if self.report_gate is not None:
            await self.report_gate.wait()
        return self.report

    async def validate_answer(self, question, answer) -> AnswerValidation:
        self.validation_calls.append({"question": question or "", "answer": answer})
        if self.validations:
            return self.validations.pop(0)
        return AnswerValidation(isValid=True)

    async def synthesize(self, text, voice=None) -> bytes:
        return b""

    @property
    def closing_requested(self) -> bool:
        return any(c["is_closing"] for c in self.question_calls)


class RecordingPresenter(InterviewPresenter):
    """Presenter that remembers everything it was told."""

    def __init__(self):
        self.questions: List[str] = []
        self.interims: List[str] = []
        self.feedback: List[str] = []
        self.alerts: List[str] = []
        self.text_prompts = 0
        self.navigations: List[Dict[str, Any]] = []

    def show_question(self, text):
        self.questions.append(text)

    def show_interim(self, text):
        self.interims.append(text)

    def show_feedback(self, text):
        self.feedback.append(text)

    def alert(self, message):
        self.alerts.append(message)

    def prompt_for_text(self):
        self.text_prompts += 1

    def navigate(self, route, report=None, payload=None, warning=None):
        self.navigations.append({"route": route, "report": report, "payload": payload, "warning": warning})

    @property
    def last_route(self) -> Optional[str]:
        return self.navigations[-1]["route"] if self.navigations else None


class MockSessionStore:
    """
    In-memory SessionStore. ``fail`` makes saving raise OSError; setting
    ``save_gate`` (a threading.Event) holds each save until it is set.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.save_gate: Optional[threading.Event] = None
        self.saved: Dict[str, ConversationRecord] = {}
        self.report_updates: List[str] = []

    def save_session(self, session_id, messages, report, duration_seconds, current_question=None) -> str:
        if self.save_gate is not None:
            self.save_gate.wait(5)
        if self.fail:
            raise OSError("disk unavailable")
        self.saved[session_id] = ConversationRecord(
            session_id=session_id,
            messages=list(messages),
            current_question=current_question,
            report=report,
            duration_seconds=duration_seconds,
        )
        return session_id

    def update_report(self, session_id, report) -> None:
        if session_id not in self.saved:
            raise FileNotFoundError(f"No saved session {session_id}")
        self.saved[session_id].report = report
        self.report_updates.append(session_id)

    def load_session(self, session_id) -> Optional[ConversationRecord]:
        return self.saved.get(session_id)

    def list_sessions(self) -> List[ConversationRecord]:
        return list(self.saved.values())


async def settle(rounds: int = 25) -> None:
    """Let already-scheduled tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
