"""
InterviewTurnController: owns the interview and drives the turn-taking loop.

The controller is the only writer of the transcript. Every phase change
goes through ``state_machine.transition`` and the returned effects are
carried out here; SpeechInput, SpeechOutput and AIGateway only hand
results back.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

from .events import (
    InterviewEventBus, create_event_bus,
    InterviewStartedEvent, QuestionAskedEvent, AnswerSubmittedEvent, AnswerRejectedEvent,
    StateChangedEvent, ClosingStartedEvent, ReportGeneratedEvent, SessionPersistedEvent,
    InterviewEndedEvent, ErrorOccurredEvent,
)
from .models import (
    InterviewSession, Message, RecognitionError, UserProfile, VoiceState, EndOutcome,
    ASSISTANT, USER,
)
from .presenter import (
    InterviewPresenter, PERMANENT_REPORT_VIEW, TEMPORARY_REPORT_VIEW, TEMPORARY_REPORT_WARNING,
)
from .state_machine import VoiceEvent, Effect, transition
from ..config import (
    MAX_QUESTIONS, SAFETY_TIMEOUT_SECONDS, REPORT_TIMEOUT_SECONDS, PERSIST_TIMEOUT_SECONDS,
    CLOSING_DELAY_SECONDS, CLOSING_DELAY_SILENT_SECONDS, LISTEN_START_DELAY_SECONDS,
    FALLBACK_OPENING_QUESTION, FALLBACK_FOLLOW_UP, FALLBACK_CLOSING,
)
from ..infrastructure.data import SessionStore, EphemeralReportStore
from ..utils.clock import Clock, LoopClock

logger = logging.getLogger("controller")

AI = "ai"
FALLBACK = "fallback"

PERMISSION_DENIED_MESSAGE = (
    "Microphone access was denied. Allow microphone access to answer by voice; "
    "you can type your answers for now."
)
END_FAILED_MESSAGE = (
    "We couldn't generate your report or save the interview. "
    "Your answers are kept for this session; please try again."
)
DEFAULT_REJECTION_FEEDBACK = "Could you answer the question more directly?"


class InterviewTurnController:
    """Runs one interview at a time from opening question to saved report."""

    def __init__(self,
                 gateway,
                 speech_output,
                 speech_input=None,
                 presenter: Optional[InterviewPresenter] = None,
                 session_store: Optional[SessionStore] = None,
                 ephemeral_store: Optional[EphemeralReportStore] = None,
                 event_bus: Optional[InterviewEventBus] = None,
                 profile: Optional[UserProfile] = None,
                 clock: Optional[Clock] = None,
                 max_questions: int = MAX_QUESTIONS,
                 voice_mode: bool = True,
                 audio_enabled: bool = True,
                 validate_answers: bool = False,
                 safety_timeout: float = SAFETY_TIMEOUT_SECONDS,
                 report_timeout: float = REPORT_TIMEOUT_SECONDS,
                 persist_timeout: float = PERSIST_TIMEOUT_SECONDS,
                 closing_delay: float = CLOSING_DELAY_SECONDS,
                 closing_delay_silent: float = CLOSING_DELAY_SILENT_SECONDS,
                 listen_start_delay: float = LISTEN_START_DELAY_SECONDS):
        self.gateway = gateway
        self.speech_output = speech_output
        self.speech_input = speech_input
        self.presenter = presenter or InterviewPresenter()
        self.session_store = session_store
        self.ephemeral_store = ephemeral_store or EphemeralReportStore()
        self.event_bus = event_bus or create_event_bus()
        self.profile = profile
        self.clock = clock or LoopClock()
        self.max_questions = max_questions
        self.voice_mode = voice_mode and speech_input is not None and speech_input.supported
        self.audio_enabled = audio_enabled
        self.validate_answers = validate_answers
        self.safety_timeout = safety_timeout
        self.report_timeout = report_timeout
        self.persist_timeout = persist_timeout
        self.closing_delay = closing_delay
        self.closing_delay_silent = closing_delay_silent
        self.listen_start_delay = listen_start_delay

        self.speech_output.enabled = audio_enabled

        self.state = VoiceState.IDLE
        self.session: Optional[InterviewSession] = None
        self.last_session: Optional[InterviewSession] = None
        self.outcome: Optional[EndOutcome] = None
        self.saved_session_id: Optional[str] = None

        self._tasks: Set[asyncio.Task] = set()
        self._opening_handled = False
        self._safety_timer = None
        self._listen_timer = None
        self._listen_task: Optional[asyncio.Task] = None
        self._speech_token = 0
        self._end_task: Optional[asyncio.Task] = None
        self._ended = asyncio.Event()

    @classmethod
    def from_config(cls, config, presenter: Optional[InterviewPresenter] = None,
                    profile: Optional[UserProfile] = None,
                    voice_mode: Optional[bool] = None,
                    audio_enabled: Optional[bool] = None,
                    event_bus: Optional[InterviewEventBus] = None) -> 'InterviewTurnController':
        """Wire the controller to the Google Cloud services and local audio."""
        from .gateway import AIGateway
        from .speech_input import SpeechInput
        from .speech_output import SpeechOutput
        from ..infrastructure.llm import VertexRestClient
        from ..infrastructure.audio import synthesize_speech, AudioPlayer, LocalVoice, GoogleStreamingRecognizer

        clock = LoopClock()
        llm_client = VertexRestClient(
            project=config.google_cloud_project,
            credentials_json=config.google_application_credentials,
        )
        gateway = AIGateway(
            llm_client,
            synthesizer=lambda text, voice: synthesize_speech(text, voice, config.language_code),
            voice=config.tts_voice,
        )
        speech_output = SpeechOutput(
            gateway=gateway,
            player=AudioPlayer(),
            local_voice=LocalVoice(config.tts_rate_wpm, config.tts_pitch, config.tts_amplitude),
        )
        voice_mode = config.enable_voice_input if voice_mode is None else voice_mode
        speech_input = None
        if voice_mode:
            speech_input = SpeechInput(
                GoogleStreamingRecognizer(language=config.language_code),
                clock=clock,
                silence_window=config.silence_window_seconds,
            )

        return cls(
            gateway=gateway,
            speech_output=speech_output,
            speech_input=speech_input,
            presenter=presenter,
            session_store=SessionStore(config.sessions_dir),
            event_bus=event_bus,
            profile=profile,
            clock=clock,
            max_questions=config.max_questions,
            voice_mode=voice_mode,
            audio_enabled=config.enable_tts if audio_enabled is None else audio_enabled,
            validate_answers=config.validate_answers,
            safety_timeout=config.safety_timeout_seconds,
            report_timeout=config.report_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.session.id if self.session else ""

    def _fire(self, event: VoiceEvent, limit_reached: bool = False) -> List[Effect]:
        previous = self.state
        self.state, effects = transition(previous, event, voice_mode=self.voice_mode,
                                         limit_reached=limit_reached)
        if self.state != previous:
            logger.debug("State %s -> %s on %s", previous.value, self.state.value, event.value)
            self.event_bus.emit(StateChangedEvent(self.session_id, previous.value,
                                                  self.state.value, event.value))
        return effects

    def _perform_now(self, effect: Effect, text: Optional[str] = None) -> None:
        if effect == Effect.SPEAK:
            self._speak(text or "")
        elif effect == Effect.START_LISTENING:
            self._schedule_listening()
        elif effect == Effect.AWAIT_TEXT_INPUT:
            self.presenter.prompt_for_text()
        elif effect == Effect.STOP_SPEECH_IO:
            self._stop_speech_io()
        else:
            logger.warning("Effect %s cannot run synchronously", effect.value)

    async def _perform(self, effects: List[Effect], text: Optional[str] = None) -> None:
        for effect in effects:
            if effect == Effect.REQUEST_QUESTION:
                await self._request_next_question()
            elif effect == Effect.REQUEST_CLOSING:
                await self._request_closing()
            elif effect == Effect.FINALIZE:
                continue
            else:
                self._perform_now(effect, text)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_finished)
        return task

    def _task_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed: %s", exc, exc_info=exc)
            self.event_bus.emit(ErrorOccurredEvent(self.session_id, type(exc).__name__,
                                                   str(exc), "controller"))

    async def drain(self) -> None:
        """Wait for every background task the controller has started."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    # ------------------------------------------------------------------
    # Opening question
    # ------------------------------------------------------------------

    async def start_interview(self) -> InterviewSession:
        """
        Begin a new interview and request the opening question.

        The request races a safety timer; whichever finishes first supplies
        the opening question and the other is ignored.
        """
        if self.state == VoiceState.ENDED:
            self._fire(VoiceEvent.RESET)
        if self.state == VoiceState.IDLE:
            self.session = InterviewSession()
        self._fire(VoiceEvent.START)
        self.outcome = None
        self.saved_session_id = None
        self._opening_handled = False
        self._end_task = None
        self._ended = asyncio.Event()

        logger.info("Starting interview %s (max %d questions, voice=%s, profile=%s)",
                    self.session.id, self.max_questions, self.voice_mode, self.profile is not None)
        self.event_bus.emit(InterviewStartedEvent(self.session.id, self.max_questions, self.voice_mode))

        self._safety_timer = self.clock.call_later(self.safety_timeout, self._on_safety_timeout)
        request = self._spawn(self.gateway.request_question([], profile=self.profile))
        request.add_done_callback(self._on_opening_response)
        return self.session

    def _on_opening_response(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        text = None if task.exception() is not None else task.result()
        if self._opening_handled:
            logger.info("Opening question arrived after the safety timeout, ignoring it")
            return
        if text:
            self._apply_opening(text, AI)
        else:
            logger.warning("Opening question request failed, using fallback")
            self._apply_opening(FALLBACK_OPENING_QUESTION, FALLBACK)

    def _on_safety_timeout(self) -> None:
        self._safety_timer = None
        if self._opening_handled:
            return
        logger.warning("No opening question after %.0fs, using fallback", self.safety_timeout)
        self._apply_opening(FALLBACK_OPENING_QUESTION, FALLBACK)

    def _apply_opening(self, text: str, source: str) -> None:
        self._opening_handled = True
        if self._safety_timer is not None:
            self._safety_timer.cancel()
            self._safety_timer = None
        if self.state != VoiceState.AWAITING_QUESTION:
            logger.info("Interview moved on before the opening question, dropping it")
            return
        self._ask(text, source)

    # ------------------------------------------------------------------
    # Asking and speaking
    # ------------------------------------------------------------------

    def _ask(self, text: str, source: str) -> None:
        self.session.messages.append(Message(ASSISTANT, text))
        self.event_bus.emit(QuestionAskedEvent(self.session.id, text, source))
        self.presenter.show_question(text)
        for effect in self._fire(VoiceEvent.QUESTION_READY):
            self._perform_now(effect, text)

    def _speak(self, text: str) -> None:
        self._speech_token += 1
        token = self._speech_token

        def done():
            if token == self._speech_token:
                self._on_speech_done()
            else:
                logger.debug("Ignoring completion of interrupted speech")

        self._spawn(self.speech_output.speak(text, on_done=done))

    def _on_speech_done(self) -> None:
        if self.state == VoiceState.SPEAKING:
            for effect in self._fire(VoiceEvent.SPEECH_DONE):
                self._perform_now(effect)
        elif self.state == VoiceState.CLOSING:
            self._fire(VoiceEvent.SPEECH_DONE)
            self._spawn(self._finish_closing())

    def _stop_speech_io(self) -> None:
        self._speech_token += 1
        self.speech_output.stop()
        if self._listen_timer is not None:
            self._listen_timer.cancel()
            self._listen_timer = None
        if self._listen_task is not None:
            self._listen_task.cancel()
            self._listen_task = None
        if self.speech_input is not None:
            self.speech_input.stop()

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    def _schedule_listening(self) -> None:
        if not self.voice_mode:
            self.presenter.prompt_for_text()
            return
        self._listen_timer = self.clock.call_later(self.listen_start_delay, self._begin_listening)

    def _begin_listening(self) -> None:
        self._listen_timer = None
        if self.state != VoiceState.LISTENING or self._listen_task is not None:
            return
        self._listen_task = self._spawn(self._listen())

    async def _listen(self) -> None:
        result = await self.speech_input.listen(on_interim=self.presenter.show_interim,
                                                on_error=self._on_recognition_warning)
        self._listen_task = None
        if isinstance(result, RecognitionError):
            self._on_recognition_failure(result)
            return
        await self.submit_answer(result.text)

    def _on_recognition_warning(self, error: RecognitionError) -> None:
        logger.warning("Speech recognition problem: %s", error.message)
        self.event_bus.emit(ErrorOccurredEvent(self.session_id, error.kind.value,
                                               error.message, "speech_input"))

    def _on_recognition_failure(self, error: RecognitionError) -> None:
        self.event_bus.emit(ErrorOccurredEvent(self.session_id, error.kind.value,
                                               error.message, "speech_input"))
        if error.fatal:
            logger.error("Microphone permission denied, switching to typed answers")
            self.voice_mode = False
            self.presenter.alert(PERMISSION_DENIED_MESSAGE)
        else:
            logger.warning("Listening ended without an answer: %s", error.message)
            self.presenter.show_feedback(error.message)
        if self.state == VoiceState.LISTENING:
            self.presenter.prompt_for_text()

    def start_voice_input(self) -> bool:
        """Manually (re)start the microphone while waiting for an answer."""
        if self.speech_input is None or not self.speech_input.supported:
            self.presenter.show_feedback("Speech recognition is not available here.")
            return False
        self.voice_mode = True
        if self.state != VoiceState.LISTENING or self._listen_task is not None:
            return False
        self._begin_listening()
        return True

    async def stop_voice_input(self) -> bool:
        """
        Manually stop the microphone. Whatever was heard so far is
        submitted as the answer.
        """
        if self._listen_task is None or self.speech_input is None:
            return False
        heard = self.speech_input.current_text()
        self._listen_task.cancel()
        self._listen_task = None
        self.speech_input.stop()
        if heard:
            return await self.submit_answer(heard)
        self.presenter.prompt_for_text()
        return False

    def set_audio_enabled(self, enabled: bool) -> None:
        self.audio_enabled = enabled
        self.speech_output.enabled = enabled
        if not enabled:
            self.speech_output.stop()

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def submit_answer(self, text: Optional[str]) -> bool:
        """
        Submit the candidate's answer to the current question.

        Returns:
            True when the answer was recorded
        """
        answer = (text or "").strip()
        if not answer:
            return False
        if self.session is None or self.state not in (VoiceState.LISTENING, VoiceState.SPEAKING):
            logger.debug("Ignoring answer in state %s", self.state.value)
            return False

        await self._perform(self._fire(VoiceEvent.ANSWER_READY))

        if self.validate_answers:
            validation = await self.gateway.validate_answer(self.session.current_question, answer)
            if self.state != VoiceState.SUBMITTING:
                return False
            if not validation.is_valid:
                feedback = validation.feedback or DEFAULT_REJECTION_FEEDBACK
                logger.info("Answer rejected by validation")
                self.event_bus.emit(AnswerRejectedEvent(self.session.id, feedback))
                self.presenter.show_feedback(feedback)
                await self._perform(self._fire(VoiceEvent.ANSWER_REJECTED), feedback)
                return False

        self.session.messages.append(Message(USER, answer))
        self.session.question_count += 1
        self.event_bus.emit(AnswerSubmittedEvent(self.session.id, self.session.question_count, answer))
        logger.info("Answer %d/%d recorded", self.session.question_count, self.max_questions)

        limit_reached = self.session.question_count >= self.max_questions
        if limit_reached:
            self.session.is_closing = True
            self.event_bus.emit(ClosingStartedEvent(self.session.id, self.session.question_count))
        await self._perform(self._fire(VoiceEvent.ANSWER_ACCEPTED, limit_reached=limit_reached))
        return True

    async def _request_next_question(self) -> None:
        text = await self.gateway.request_question(self.session.messages, profile=self.profile)
        if self.state != VoiceState.SUBMITTING:
            logger.info("Interview moved on while waiting for a question, dropping it")
            return
        self._ask(text or FALLBACK_FOLLOW_UP, AI if text else FALLBACK)

    async def _request_closing(self) -> None:
        text = await self.gateway.request_question(self.session.messages, profile=self.profile,
                                                   is_closing=True, fallback=FALLBACK_CLOSING)
        if self.state != VoiceState.CLOSING:
            return
        text = text or FALLBACK_CLOSING
        self.session.messages.append(Message(ASSISTANT, text))
        self.presenter.show_question(text)
        for effect in self._fire(VoiceEvent.CLOSING_READY):
            self._perform_now(effect, text)

    async def _finish_closing(self) -> None:
        delay = self.closing_delay if self.audio_enabled else self.closing_delay_silent
        await self.clock.sleep(delay)
        await self.end_interview()

    # ------------------------------------------------------------------
    # End of session
    # ------------------------------------------------------------------

    async def end_interview(self) -> Optional[EndOutcome]:
        """
        Stop the interview, generate the report and save the session.
        Safe to call more than once; later calls share the first result.
        """
        if self.session is None:
            return None
        if self._end_task is None:
            self._end_task = asyncio.ensure_future(self._end())
        return await asyncio.shield(self._end_task)

    async def wait_until_ended(self) -> Optional[EndOutcome]:
        await self._ended.wait()
        return self.outcome

    async def _end(self) -> EndOutcome:
        session = self.session
        effects = self._fire(VoiceEvent.END)
        if self._safety_timer is not None:
            self._safety_timer.cancel()
            self._safety_timer = None
        self._opening_handled = True
        await self._perform(effects)

        session.ended = True
        session.ended_at = time.time()
        self.last_session = session

        try:
            outcome = await self._finalize(session)
        except Exception as e:
            logger.error("End of interview failed: %s", e, exc_info=True)
            self.event_bus.emit(ErrorOccurredEvent(session.id, type(e).__name__, str(e), "controller"))
            self.presenter.alert(END_FAILED_MESSAGE)
            outcome = EndOutcome.FAILED

        if outcome in (EndOutcome.FAILED, EndOutcome.EMPTY):
            self._fire(VoiceEvent.RESET)

        self.outcome = outcome
        self.event_bus.emit(InterviewEndedEvent(session.id, outcome.value, session.question_count,
                                                session.duration_seconds))
        logger.info("Interview %s ended: %s", session.id, outcome.value)
        self._ended.set()
        return outcome

    async def _finalize(self, session: InterviewSession) -> EndOutcome:
        if not session.messages:
            logger.info("Empty transcript, nothing to report or save")
            return EndOutcome.EMPTY

        messages = session.transcript()
        duration = session.duration_seconds

        report_task = self._spawn(self.gateway.request_report(messages, self.profile, duration))
        report = await self._race(report_task, self.report_timeout, "Report generation")
        report_dict = report.to_dict() if report is not None else None
        if report is not None:
            self.event_bus.emit(ReportGeneratedEvent(session.id, report.overall_performance.score))

        saved_id = None
        if self.session_store is not None:
            persist_task = self._spawn(asyncio.to_thread(
                self.session_store.save_session, session.id, messages, report_dict, duration,
                session.current_question))
            saved_id = await self._race(persist_task, self.persist_timeout, "Saving the session")
        else:
            logger.warning("No session store configured, interview will not be saved")
        if saved_id:
            self.saved_session_id = saved_id
            self.event_bus.emit(SessionPersistedEvent(saved_id, report_dict is not None))

        if report_dict is not None and saved_id:
            self.presenter.navigate(PERMANENT_REPORT_VIEW.format(session_id=saved_id), report=report_dict)
            return EndOutcome.REPORT_SAVED

        if report_dict is not None:
            self.ephemeral_store.stash_report(report_dict, messages, duration)
            self.presenter.navigate(TEMPORARY_REPORT_VIEW, report=report_dict,
                                    payload=self.ephemeral_store.temporary_report(),
                                    warning=TEMPORARY_REPORT_WARNING)
            return EndOutcome.REPORT_TEMPORARY

        if saved_id:
            # The report may have finished while the save was running
            logger.info("Report not ready in time, it will be attached to %s when ready", saved_id)
            self._spawn(self._store_late_report(saved_id, report_task))
            self.presenter.navigate(PERMANENT_REPORT_VIEW.format(session_id=saved_id))
            return EndOutcome.SAVED_WITHOUT_REPORT

        self.presenter.alert(END_FAILED_MESSAGE)
        return EndOutcome.FAILED

    async def _race(self, task: asyncio.Task, timeout: float, label: str) -> Any:
        """
        Wait for task up to timeout without cancelling it.

        Returns:
            The task result, or None on timeout or failure
        """
        deadline = asyncio.get_running_loop().create_future()

        def expire():
            if not deadline.done():
                deadline.set_result(None)

        timer = self.clock.call_later(timeout, expire)
        try:
            await asyncio.wait({task, deadline}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            timer.cancel()
            if not deadline.done():
                deadline.cancel()

        if not task.done():
            logger.warning("%s still pending after %.0fs, continuing without it", label, timeout)
            return None
        if task.cancelled():
            return None
        exc = task.exception()
        if exc is not None:
            logger.error("%s failed: %s", label, exc)
            return None
        return task.result()

    async def _store_late_report(self, session_id: str, report_task: asyncio.Task) -> None:
        try:
            report = await report_task
        except Exception as e:
            logger.warning("Late report for %s failed: %s", session_id, e)
            return
        if report is None:
            logger.warning("Late report for %s never arrived", session_id)
            return
        await asyncio.to_thread(self.session_store.update_report, session_id, report.to_dict())
        self.event_bus.emit(ReportGeneratedEvent(session_id, report.overall_performance.score, late=True))
        logger.info("Attached late report to session %s", session_id)

    def report_payload(self) -> Optional[Dict[str, Any]]:
        """The temporary report stashed after a failed save, if any."""
        return self.ephemeral_store.temporary_report()
