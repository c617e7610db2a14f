"""
SpeechInput: decides when a spoken answer is finished.

Recognizers report "final" fragments on every natural pause, so a final
fragment alone does not end the turn. Every fragment restarts a silence
timer; only when that timer runs out is the accumulated text emitted as
the answer. If the recognizer session ends on its own while the turn is
still open, a new session is started so the silence window is honoured.
"""
import asyncio
import logging
from typing import Callable, List, Optional, Union

from .models import TranscriptEvent, RecognitionError, RecognitionErrorKind
from ..config import SILENCE_WINDOW_SECONDS, RESTART_MIN_INTERVAL_SECONDS
from ..utils.clock import Clock, LoopClock

logger = logging.getLogger("speech_input")

# Recognizer sessions that end without hearing anything are restarted
# at most this many times in a row before the turn is given up
MAX_EMPTY_RESTARTS = 5

_ERROR_KINDS = {
    "not-allowed": RecognitionErrorKind.PERMISSION_DENIED,
    "service-not-allowed": RecognitionErrorKind.PERMISSION_DENIED,
    "permission-denied": RecognitionErrorKind.PERMISSION_DENIED,
    "no-speech": RecognitionErrorKind.NO_SPEECH,
    "audio-capture": RecognitionErrorKind.AUDIO_CAPTURE,
}

ResultCallback = Callable[[TranscriptEvent], None]
ErrorCallback = Callable[[RecognitionError], None]


class SpeechInput:
    """Wraps a streaming recognizer with silence-based turn-end detection."""

    def __init__(self,
                 recognizer,
                 clock: Optional[Clock] = None,
                 silence_window: float = SILENCE_WINDOW_SECONDS,
                 restart_min_interval: float = RESTART_MIN_INTERVAL_SECONDS):
        self.recognizer = recognizer
        self.clock = clock or LoopClock()
        self.silence_window = silence_window
        self.restart_min_interval = restart_min_interval
        self.armed = False
        self.restarts = 0
        self._finals: List[str] = []
        self._interim = ""
        self._silence_timer = None
        self._restart_timer = None
        self._last_start: Optional[float] = None
        self._empty_restarts = 0
        self._heard_since_start = False
        self._on_result: Optional[ResultCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    @property
    def supported(self) -> bool:
        return self.recognizer is not None

    def current_text(self) -> str:
        """Final fragments so far plus any trailing interim text."""
        parts = list(self._finals)
        if self._interim:
            parts.append(self._interim)
        return " ".join(p for p in parts if p).strip()

    def start(self, on_result: ResultCallback, on_error: Optional[ErrorCallback] = None) -> None:
        """Arm for one answer. Interim events are display-only; one final event ends the turn."""
        if self.armed:
            logger.debug("Already listening")
            return

        self._on_result = on_result
        self._on_error = on_error

        if not self.supported:
            self._emit_error(RecognitionError(RecognitionErrorKind.OTHER,
                                              "Speech recognition is not available"))
            return

        self._finals = []
        self._interim = ""
        self._empty_restarts = 0
        self.restarts = 0
        self.armed = True
        self._start_recognizer()

    def stop(self) -> None:
        """Disarm and end the recognizer session. Buffered text is discarded."""
        was_armed = self.armed
        self.armed = False
        self._cancel_timers()
        if was_armed and self.recognizer is not None:
            self.recognizer.stop()

    async def listen(self,
                     on_interim: Optional[Callable[[str], None]] = None,
                     on_error: Optional[ErrorCallback] = None) -> Union[TranscriptEvent, RecognitionError]:
        """
        Listen for one complete answer.

        Returns:
            The final TranscriptEvent, or the RecognitionError that ended the turn
        """
        loop = asyncio.get_running_loop()
        outcome = loop.create_future()

        def handle_result(event: TranscriptEvent):
            if event.is_interim:
                if on_interim is not None:
                    on_interim(event.text)
            elif not outcome.done():
                outcome.set_result(event)

        def handle_error(error: RecognitionError):
            # Errors that leave us armed are informational
            if not self.armed and not outcome.done():
                outcome.set_result(error)
            elif on_error is not None:
                on_error(error)

        self.start(handle_result, handle_error)
        try:
            return await outcome
        finally:
            self.stop()

    def _start_recognizer(self):
        self._last_start = self.clock.now()
        self._heard_since_start = False
        self.recognizer.start(self._handle_fragment, self._handle_error, self._handle_end)

    def _handle_fragment(self, text: str, is_final: bool) -> None:
        if not self.armed:
            return
        text = text.strip()
        if not text:
            return

        self._heard_since_start = True
        self._empty_restarts = 0
        if is_final:
            self._finals.append(text)
            self._interim = ""
        else:
            self._interim = text

        self._reset_silence_timer()
        if self._on_result is not None:
            self._on_result(TranscriptEvent(self.current_text(), is_interim=True))

    def _reset_silence_timer(self):
        if self._silence_timer is not None:
            self._silence_timer.cancel()
        self._silence_timer = self.clock.call_later(self.silence_window, self._on_silence)

    def _on_silence(self):
        self._silence_timer = None
        if not self.armed:
            return
        answer = self.current_text()
        if not answer:
            return
        logger.info("Silence window elapsed, answer complete (%d chars)", len(answer))
        self.stop()
        if self._on_result is not None:
            self._on_result(TranscriptEvent(answer, is_interim=False))

    def _handle_error(self, code: str, message: str = "") -> None:
        if not self.armed:
            return
        kind = _ERROR_KINDS.get(code, RecognitionErrorKind.OTHER)

        if kind == RecognitionErrorKind.PERMISSION_DENIED:
            logger.error("Microphone permission denied: %s", message)
            self.stop()
            self._emit_error(RecognitionError(kind, message or "Microphone access was denied"))
        elif kind in (RecognitionErrorKind.NO_SPEECH, RecognitionErrorKind.AUDIO_CAPTURE):
            logger.info("Ignoring benign recognition error %s: %s", code, message)
        else:
            logger.warning("Recognition error %s: %s", code, message)
            self._emit_error(RecognitionError(kind, message or code))

    def _handle_end(self) -> None:
        if not self.armed:
            return

        if not self._heard_since_start:
            self._empty_restarts += 1
            if self._empty_restarts > MAX_EMPTY_RESTARTS:
                logger.warning("Recognizer keeps ending without speech, giving up on this turn")
                self.stop()
                self._emit_error(RecognitionError(RecognitionErrorKind.OTHER,
                                                  "Speech recognition stopped responding"))
                return

        since_start = self.clock.now() - (self._last_start or 0.0)
        delay = max(0.0, self.restart_min_interval - since_start)
        logger.debug("Recognizer session ended while listening, restarting in %.2fs", delay)
        self._restart_timer = self.clock.call_later(delay, self._restart)

    def _restart(self):
        self._restart_timer = None
        if not self.armed:
            return
        self.restarts += 1
        self._start_recognizer()

    def _cancel_timers(self):
        for timer in (self._silence_timer, self._restart_timer):
            if timer is not None:
                timer.cancel()
        self._silence_timer = None
        self._restart_timer = None

    def _emit_error(self, error: RecognitionError):
        if self._on_error is not None:
            self._on_error(error)
