"""
Turn-taking transition table.

``transition`` is a pure function from (state, event) to the next state
plus the side effects the controller must perform. The controller owns
all I/O; this module only decides what happens next.

    IDLE -START-> AWAITING_QUESTION -QUESTION_READY-> SPEAKING
    SPEAKING -SPEECH_DONE-> LISTENING -ANSWER_READY-> SUBMITTING
    SUBMITTING -ANSWER_ACCEPTED-> SUBMITTING (next question) | CLOSING
    SUBMITTING -QUESTION_READY-> SPEAKING
    CLOSING -CLOSING_READY-> CLOSING (speak) -SPEECH_DONE-> CLOSING
    any -END-> ENDED -RESET-> IDLE
"""
from enum import Enum
from typing import List, Tuple

from .models import VoiceState


class VoiceEvent(str, Enum):
    START = "start"
    QUESTION_READY = "question_ready"
    SPEECH_DONE = "speech_done"
    ANSWER_READY = "answer_ready"
    ANSWER_ACCEPTED = "answer_accepted"
    ANSWER_REJECTED = "answer_rejected"
    CLOSING_READY = "closing_ready"
    END = "end"
    RESET = "reset"


class Effect(str, Enum):
    REQUEST_QUESTION = "request_question"
    REQUEST_CLOSING = "request_closing"
    SPEAK = "speak"
    START_LISTENING = "start_listening"
    AWAIT_TEXT_INPUT = "await_text_input"
    STOP_SPEECH_IO = "stop_speech_io"
    FINALIZE = "finalize"


class InvalidTransition(ValueError):
    """Event is not accepted in the current state."""

    def __init__(self, state: VoiceState, event: VoiceEvent):
        super().__init__(f"{event.value} is not valid in state {state.value}")
        self.state = state
        self.event = event


def transition(state: VoiceState, event: VoiceEvent, *,
               voice_mode: bool = True,
               limit_reached: bool = False) -> Tuple[VoiceState, List[Effect]]:
    """
    Compute the next state and effects.

    Args:
        state: Current phase
        event: What just happened
        voice_mode: Whether answers come from the microphone
        limit_reached: For ANSWER_ACCEPTED, whether the turn limit is now met

    Raises:
        InvalidTransition: The event is not accepted in this state
    """
    if event == VoiceEvent.END:
        if state == VoiceState.ENDED:
            return state, []
        return VoiceState.ENDED, [Effect.STOP_SPEECH_IO, Effect.FINALIZE]

    if state == VoiceState.IDLE and event == VoiceEvent.START:
        return VoiceState.AWAITING_QUESTION, [Effect.REQUEST_QUESTION]

    if state in (VoiceState.AWAITING_QUESTION, VoiceState.SUBMITTING) and event == VoiceEvent.QUESTION_READY:
        return VoiceState.SPEAKING, [Effect.SPEAK]

    if state == VoiceState.SPEAKING and event == VoiceEvent.SPEECH_DONE:
        listen = Effect.START_LISTENING if voice_mode else Effect.AWAIT_TEXT_INPUT
        return VoiceState.LISTENING, [listen]

    # A typed answer may cut off the question being read aloud
    if state in (VoiceState.LISTENING, VoiceState.SPEAKING) and event == VoiceEvent.ANSWER_READY:
        return VoiceState.SUBMITTING, [Effect.STOP_SPEECH_IO]

    if state == VoiceState.SUBMITTING and event == VoiceEvent.ANSWER_ACCEPTED:
        if limit_reached:
            return VoiceState.CLOSING, [Effect.REQUEST_CLOSING]
        return VoiceState.SUBMITTING, [Effect.REQUEST_QUESTION]

    if state == VoiceState.SUBMITTING and event == VoiceEvent.ANSWER_REJECTED:
        return VoiceState.SPEAKING, [Effect.SPEAK]

    if state == VoiceState.CLOSING and event == VoiceEvent.CLOSING_READY:
        return VoiceState.CLOSING, [Effect.SPEAK]

    if state == VoiceState.CLOSING and event == VoiceEvent.SPEECH_DONE:
        return VoiceState.CLOSING, []

    if state == VoiceState.ENDED and event == VoiceEvent.RESET:
        return VoiceState.IDLE, []

    raise InvalidTransition(state, event)
