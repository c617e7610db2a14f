"""
Tests for InterviewTurnController: opening race, answers, closing and
end-of-session outcomes.
"""
import asyncio
import threading

import pytest

from jobdance.config import FALLBACK_CLOSING, FALLBACK_FOLLOW_UP, FALLBACK_OPENING_QUESTION
from jobdance.infrastructure.data import EphemeralReportStore
from jobdance.interview.controller import PERMISSION_DENIED_MESSAGE, InterviewTurnController
from jobdance.interview.events import InterviewMetrics, create_event_bus
from jobdance.interview.models import (
    ASSISTANT, USER, EndOutcome, RecognitionError, RecognitionErrorKind, VoiceState,
)
from jobdance.interview.presenter import PERMANENT_REPORT_VIEW, TEMPORARY_REPORT_VIEW
from jobdance.interview.schemas import AnswerValidation
from jobdance.interview.testing import MockSessionStore, MockSpeechInput, ScriptedGateway, settle

ANSWER = "I am a backend engineer."


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def metrics():
    return InterviewMetrics()


@pytest.fixture
def ephemeral_store():
    return EphemeralReportStore()


@pytest.fixture
def make_controller(gateway, speech_output, presenter, session_store, ephemeral_store, clock, metrics):
    def factory(**overrides):
        options = dict(
            gateway=gateway,
            speech_output=speech_output,
            presenter=presenter,
            session_store=session_store,
            ephemeral_store=ephemeral_store,
            event_bus=create_event_bus(metrics),
            clock=clock,
            voice_mode=False,
        )
        options.update(overrides)
        return InterviewTurnController(**options)
    return factory


@pytest.fixture
def controller(make_controller):
    return make_controller()


async def start_and_settle(controller):
    await controller.start_interview()
    await settle()
    return controller.session


class BlockingSpeechOutput:
    """Speech that only finishes when stopped."""

    def __init__(self):
        self.enabled = True
        self.spoken = []
        self.stop_count = 0
        self._release = asyncio.Event()

    async def speak(self, text, on_done=None):
        self.spoken.append(text)
        self._release = asyncio.Event()
        await self._release.wait()
        if on_done is not None:
            on_done()
        return "remote"

    def stop(self):
        self.stop_count += 1
        self._release.set()


# =============================================================================
# Opening question
# =============================================================================


class TestOpeningQuestion:

    @pytest.mark.asyncio
    async def test_opening_question_is_asked(self, controller, presenter, speech_output):
        session = await start_and_settle(controller)

        assert session.messages[0].role == ASSISTANT
        assert session.messages[0].content == "Tell me about yourself."
        assert presenter.questions == ["Tell me about yourself."]
        assert speech_output.spoken == ["Tell me about yourself."]
        assert controller.state == VoiceState.LISTENING
        assert presenter.text_prompts == 1

    @pytest.mark.asyncio
    async def test_failed_request_falls_back_immediately(self, make_controller, metrics):
        controller = make_controller(gateway=ScriptedGateway(questions=[None]))

        session = await start_and_settle(controller)

        assert [m.content for m in session.messages] == [FALLBACK_OPENING_QUESTION]
        assert metrics.fallback_questions == 1

    @pytest.mark.asyncio
    async def test_late_response_after_safety_timeout_is_ignored(self, controller, gateway, clock, presenter):
        gateway.questions = ["A slow but real question?"]
        gateway.question_gate = asyncio.Event()

        session = await start_and_settle(controller)
        assert session.messages == []

        clock.advance(35.0)
        await settle()
        assert [m.content for m in session.messages] == [FALLBACK_OPENING_QUESTION]

        clock.advance(1.0)
        gateway.question_gate.set()
        await settle()

        assert [m.content for m in session.messages] == [FALLBACK_OPENING_QUESTION]
        assert presenter.questions == [FALLBACK_OPENING_QUESTION]
        assert controller.state == VoiceState.LISTENING

    @pytest.mark.asyncio
    async def test_real_response_cancels_safety_timer(self, controller, clock):
        session = await start_and_settle(controller)

        clock.advance(60.0)
        await settle()

        assert len([m for m in session.messages if m.role == ASSISTANT]) == 1

    @pytest.mark.asyncio
    async def test_start_twice_is_rejected(self, controller):
        await start_and_settle(controller)

        with pytest.raises(ValueError):
            await controller.start_interview()


# =============================================================================
# Answers
# =============================================================================


class TestSubmitAnswer:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_blank_answers_are_no_ops(self, controller, gateway, text):
        session = await start_and_settle(controller)
        calls = len(gateway.question_calls)

        assert await controller.submit_answer(text) is False

        assert len(session.messages) == 1
        assert session.question_count == 0
        assert len(gateway.question_calls) == calls
        assert controller.state == VoiceState.LISTENING

    @pytest.mark.asyncio
    async def test_answer_requests_next_question(self, controller, gateway):
        session = await start_and_settle(controller)

        assert await controller.submit_answer(f"  {ANSWER}  ") is True
        await settle()

        assert [(m.role, m.content) for m in session.messages] == [
            (ASSISTANT, "Tell me about yourself."),
            (USER, ANSWER),
            (ASSISTANT, "What project are you proudest of?"),
        ]
        assert session.question_count == 1
        assert gateway.question_calls[-1]["messages"][-1] == {"role": USER, "content": ANSWER}
        assert controller.state == VoiceState.LISTENING

    @pytest.mark.asyncio
    async def test_failed_follow_up_uses_canned_question(self, make_controller):
        controller = make_controller(gateway=ScriptedGateway(questions=["Tell me about yourself.", None]))
        session = await start_and_settle(controller)

        await controller.submit_answer(ANSWER)

        assert session.messages[-1].content == FALLBACK_FOLLOW_UP

    @pytest.mark.asyncio
    async def test_answer_is_ignored_before_question(self, controller, gateway):
        gateway.question_gate = asyncio.Event()
        await start_and_settle(controller)

        assert await controller.submit_answer(ANSWER) is False
        gateway.question_gate.set()
        await settle()

    @pytest.mark.asyncio
    async def test_typed_answer_interrupts_speech(self, make_controller, gateway):
        speech_output = BlockingSpeechOutput()
        controller = make_controller(speech_output=speech_output)
        session = await start_and_settle(controller)
        assert controller.state == VoiceState.SPEAKING

        assert await controller.submit_answer(ANSWER) is True
        await settle()

        assert speech_output.stop_count >= 1
        assert [m.role for m in session.messages] == [ASSISTANT, USER, ASSISTANT]
        # The interrupted first question must not advance the new one
        assert controller.state == VoiceState.SPEAKING
        speech_output.stop()
        await settle()


# =============================================================================
# Full interview
# =============================================================================


class TestFullInterview:

    @pytest.mark.asyncio
    async def test_fifth_answer_triggers_closing(self, controller, gateway, session_store,
                                                 sample_report, presenter, clock, metrics):
        gateway.report = sample_report
        session = await start_and_settle(controller)

        for i in range(4):
            assert await controller.submit_answer(ANSWER) is True
            await settle()
            assert not gateway.closing_requested

        assert await controller.submit_answer(ANSWER) is True
        assert gateway.closing_requested
        assert session.question_count == 5
        assert session.is_closing

        # Further answers are refused once closing has begun
        assert await controller.submit_answer("One more thing") is False
        assert session.question_count == 5

        outcome = await asyncio.wait_for(controller.wait_until_ended(), 5)

        assert outcome == EndOutcome.REPORT_SAVED
        assert sum(1 for c in gateway.question_calls if not c["is_closing"]) == 5
        assert clock.sleeps == [1.0]
        assert presenter.last_route == PERMANENT_REPORT_VIEW.format(session_id=session.id)
        assert session_store.saved[session.id].report == sample_report.to_dict()
        assert metrics.answers_submitted == 5
        assert metrics.outcomes == {"report_saved": 1}

    @pytest.mark.asyncio
    async def test_roles_alternate_from_assistant(self, controller):
        session = await start_and_settle(controller)
        for _ in range(5):
            await controller.submit_answer(ANSWER)
            await settle()
        await asyncio.wait_for(controller.wait_until_ended(), 5)

        roles = [m.role for m in session.messages]
        assert roles[0] == ASSISTANT
        assert all(a != b for a, b in zip(roles, roles[1:]))
        assert roles[-1] == ASSISTANT
        assert len(roles) == 11

    @pytest.mark.asyncio
    async def test_closing_falls_back_to_canned_sentence(self, make_controller):
        controller = make_controller(gateway=ScriptedGateway(questions=["Q1?"], closing=None),
                                     max_questions=1)
        session = await start_and_settle(controller)

        await controller.submit_answer(ANSWER)
        await asyncio.wait_for(controller.wait_until_ended(), 5)

        assert session.messages[-1].content == FALLBACK_CLOSING

    @pytest.mark.asyncio
    async def test_closing_delay_is_longer_without_audio(self, make_controller, clock):
        controller = make_controller(audio_enabled=False, max_questions=1)
        await start_and_settle(controller)

        await controller.submit_answer(ANSWER)
        await asyncio.wait_for(controller.wait_until_ended(), 5)

        assert clock.sleeps == [2.0]


# =============================================================================
# Answer validation
# =============================================================================


class TestAnswerValidation:

    @pytest.mark.asyncio
    async def test_rejected_answer_is_not_recorded(self, make_controller, gateway, presenter, speech_output):
        gateway.validations = [AnswerValidation(isValid=False, feedback="Please describe a real project.")]
        controller = make_controller(validate_answers=True)
        session = await start_and_settle(controller)

        assert await controller.submit_answer("pizza") is False
        await settle()

        assert [m.role for m in session.messages] == [ASSISTANT]
        assert session.question_count == 0
        assert presenter.feedback == ["Please describe a real project."]
        assert speech_output.spoken[-1] == "Please describe a real project."
        assert controller.state == VoiceState.LISTENING

        assert await controller.submit_answer(ANSWER) is True
        assert session.question_count == 1

    @pytest.mark.asyncio
    async def test_validation_is_skipped_by_default(self, controller, gateway):
        await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        assert gateway.validation_calls == []


# =============================================================================
# Voice input
# =============================================================================


class TestVoiceInput:

    @pytest.mark.asyncio
    async def test_spoken_answer_is_submitted(self, make_controller, presenter, clock):
        speech_input = MockSpeechInput(["I build payment APIs."])
        controller = make_controller(speech_input=speech_input, voice_mode=True)
        session = await start_and_settle(controller)
        assert controller.state == VoiceState.LISTENING
        assert speech_input.listen_count == 0

        clock.advance(0.5)
        await settle()

        assert session.messages[1].content == "I build payment APIs."
        assert presenter.interims == ["I build payment APIs."]
        assert speech_input.listen_count == 1

    @pytest.mark.asyncio
    async def test_permission_denied_switches_to_typing(self, make_controller, presenter, clock):
        denied = RecognitionError(RecognitionErrorKind.PERMISSION_DENIED, "Microphone access denied")
        speech_input = MockSpeechInput([denied])
        controller = make_controller(speech_input=speech_input, voice_mode=True)
        session = await start_and_settle(controller)

        clock.advance(0.5)
        await settle()

        assert controller.voice_mode is False
        assert presenter.alerts == [PERMISSION_DENIED_MESSAGE]
        assert presenter.text_prompts == 1
        assert controller.state == VoiceState.LISTENING

        assert await controller.submit_answer(ANSWER) is True
        await settle()
        assert session.messages[1].content == ANSWER
        assert speech_input.listen_count == 1

    @pytest.mark.asyncio
    async def test_unsupported_recognition_uses_typing(self, make_controller, presenter):
        controller = make_controller(speech_input=MockSpeechInput(supported=False), voice_mode=True)

        assert controller.voice_mode is False
        await start_and_settle(controller)
        assert presenter.text_prompts == 1

    @pytest.mark.asyncio
    async def test_manual_stop_submits_what_was_heard(self, make_controller, clock):
        speech_input = MockSpeechInput()
        controller = make_controller(speech_input=speech_input, voice_mode=True)
        session = await start_and_settle(controller)
        clock.advance(0.5)
        await settle()

        speech_input.heard = "I was halfway through"
        assert await controller.stop_voice_input() is True

        assert session.messages[1].content == "I was halfway through"

    @pytest.mark.asyncio
    async def test_muting_stops_speech(self, controller, speech_output):
        controller.set_audio_enabled(False)

        assert speech_output.enabled is False
        assert speech_output.stop_count == 1


# =============================================================================
# End of session
# =============================================================================


class TestEndInterview:

    @pytest.mark.asyncio
    async def test_report_and_save_succeed(self, controller, gateway, sample_report, presenter, session_store):
        gateway.report = sample_report
        session = await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        outcome = await controller.end_interview()

        assert outcome == EndOutcome.REPORT_SAVED
        assert controller.state == VoiceState.ENDED
        assert presenter.navigations[-1]["route"] == PERMANENT_REPORT_VIEW.format(session_id=session.id)
        assert presenter.navigations[-1]["report"] == sample_report.to_dict()
        saved = session_store.saved[session.id]
        assert [m["role"] for m in saved.messages] == [ASSISTANT, USER, ASSISTANT]

    @pytest.mark.asyncio
    async def test_report_only_goes_to_temporary_view(self, make_controller, gateway, sample_report,
                                                      presenter, ephemeral_store):
        gateway.report = sample_report
        controller = make_controller(session_store=MockSessionStore(fail=True))
        session = await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        outcome = await controller.end_interview()

        assert outcome == EndOutcome.REPORT_TEMPORARY
        navigation = presenter.navigations[-1]
        assert navigation["route"] == TEMPORARY_REPORT_VIEW
        assert navigation["route"] != PERMANENT_REPORT_VIEW.format(session_id=session.id)
        assert "may not be saved" in navigation["warning"]
        stashed = ephemeral_store.temporary_report()
        assert stashed["report"] == sample_report.to_dict()
        assert stashed["messages"] == session.transcript()
        assert "timestamp" in stashed and "duration" in stashed

    @pytest.mark.asyncio
    async def test_neither_succeeds_returns_to_idle(self, make_controller, gateway, presenter):
        gateway.report = None
        controller = make_controller(session_store=MockSessionStore(fail=True))
        session = await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        outcome = await controller.end_interview()

        assert outcome == EndOutcome.FAILED
        assert controller.state == VoiceState.IDLE
        assert len(presenter.alerts) == 1
        assert presenter.navigations == []
        assert controller.last_session is session
        assert len(controller.last_session.messages) == 3

    @pytest.mark.asyncio
    async def test_save_without_report_attaches_late_report(self, controller, gateway, sample_report,
                                                           presenter, session_store, clock):
        gateway.report = sample_report
        gateway.report_gate = asyncio.Event()
        session = await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        ending = asyncio.ensure_future(controller.end_interview())
        await settle()
        clock.advance(60.0)
        outcome = await asyncio.wait_for(ending, 5)

        assert outcome == EndOutcome.SAVED_WITHOUT_REPORT
        assert presenter.last_route == PERMANENT_REPORT_VIEW.format(session_id=session.id)
        assert session_store.saved[session.id].report is None

        gateway.report_gate.set()
        await asyncio.wait_for(controller.drain(), 5)

        assert session_store.saved[session.id].report == sample_report.to_dict()
        assert session_store.report_updates == [session.id]

    @pytest.mark.asyncio
    async def test_report_finishing_during_slow_save_is_attached(self, controller, gateway, sample_report,
                                                                 presenter, session_store, clock):
        gateway.report = sample_report
        gateway.report_gate = asyncio.Event()
        session_store.save_gate = threading.Event()
        session = await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        ending = asyncio.ensure_future(controller.end_interview())
        await settle()
        clock.advance(60.0)
        await settle()
        gateway.report_gate.set()
        await settle()
        session_store.save_gate.set()
        outcome = await asyncio.wait_for(ending, 5)
        await asyncio.wait_for(controller.drain(), 5)

        assert outcome == EndOutcome.SAVED_WITHOUT_REPORT
        assert presenter.last_route == PERMANENT_REPORT_VIEW.format(session_id=session.id)
        assert session_store.saved[session.id].report == sample_report.to_dict()
        assert session_store.report_updates == [session.id]

    @pytest.mark.asyncio
    async def test_empty_transcript_skips_network(self, controller, gateway, presenter):
        gateway.question_gate = asyncio.Event()
        await start_and_settle(controller)

        outcome = await controller.end_interview()

        assert outcome == EndOutcome.EMPTY
        assert gateway.report_calls == []
        assert controller.state == VoiceState.IDLE
        assert presenter.navigations == []

        gateway.question_gate.set()
        await settle()
        assert controller.session.messages == []

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, controller, gateway, sample_report, speech_output):
        gateway.report = sample_report
        await start_and_settle(controller)
        await controller.submit_answer(ANSWER)

        first, second = await asyncio.gather(controller.end_interview(), controller.end_interview())
        third = await controller.end_interview()

        assert first == second == third == EndOutcome.REPORT_SAVED
        assert len(gateway.report_calls) == 1

    @pytest.mark.asyncio
    async def test_end_stops_speech_io(self, make_controller, clock):
        speech_input = MockSpeechInput()
        speech_output = BlockingSpeechOutput()
        controller = make_controller(speech_input=speech_input, speech_output=speech_output, voice_mode=True)
        await start_and_settle(controller)

        await controller.end_interview()

        assert speech_output.stop_count >= 1
        assert speech_input.stop_count >= 1

    @pytest.mark.asyncio
    async def test_new_interview_after_end(self, controller, gateway, sample_report):
        gateway.report = sample_report
        first = await start_and_settle(controller)
        await controller.submit_answer(ANSWER)
        await controller.end_interview()

        second = await start_and_settle(controller)

        assert second.id != first.id
        assert controller.state == VoiceState.LISTENING
