"""
AIGateway: every provider call the interview makes.

Chat, report, validation and synthesis requests all go through one
RequestQueue and are retried with backoff when throttled. Question,
report and validation requests resolve to a fallback value instead of
raising; synthesis raises so SpeechOutput can choose its own fallback.
"""
import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Union

from .models import Message, UserProfile, ASSISTANT, USER
from .prompts import InterviewPrompts
from .schemas import (
    AnswerValidation, InterviewReport, build_basic_report, parse_report, parse_answer_validation,
)
from ..config import (
    MAX_RETRIES, CHAT_BACKOFF_BASE_SECONDS, SYNTHESIS_BACKOFF_BASE_SECONDS, BACKOFF_JITTER_SECONDS,
    QUESTION_TIMEOUT_SECONDS, CLOSING_INSTRUCTION, REPORT_MAX_OUTPUT_TOKENS, TTS_VOICE,
)
from ..infrastructure.errors import ProviderError, RateLimitError
from ..infrastructure.llm.request_queue import RequestQueue, retry_with_backoff, get_default_queue
from ..utils.clock import Clock

logger = logging.getLogger("gateway")

MessageLike = Union[Message, dict]


def _as_dicts(messages: Sequence[MessageLike]) -> List[dict]:
    return [m.to_dict() if isinstance(m, Message) else {"role": m["role"], "content": m["content"]}
            for m in messages]


class AIGateway:
    """Paced, retried access to the chat and speech-synthesis providers."""

    def __init__(self,
                 llm_client,
                 synthesizer: Optional[Callable[[str, str], bytes]] = None,
                 queue: Optional[RequestQueue] = None,
                 clock: Optional[Clock] = None,
                 voice: str = TTS_VOICE,
                 max_retries: int = MAX_RETRIES,
                 chat_backoff: float = CHAT_BACKOFF_BASE_SECONDS,
                 synthesis_backoff: float = SYNTHESIS_BACKOFF_BASE_SECONDS,
                 jitter: float = BACKOFF_JITTER_SECONDS,
                 question_timeout: float = QUESTION_TIMEOUT_SECONDS):
        self.llm_client = llm_client
        self.synthesizer = synthesizer
        self.queue = queue or get_default_queue()
        self.clock = clock or self.queue.clock
        self.voice = voice
        self.max_retries = max_retries
        self.chat_backoff = chat_backoff
        self.synthesis_backoff = synthesis_backoff
        self.jitter = jitter
        self.question_timeout = question_timeout

    async def _paced(self, func, *args, base_delay: float, **kwargs):
        """Run a blocking provider call through the queue with backoff."""
        async def attempt():
            return await self.queue.submit(lambda: asyncio.to_thread(func, *args, **kwargs))

        return await retry_with_backoff(
            attempt,
            max_retries=self.max_retries,
            base_delay=base_delay,
            jitter=self.jitter,
            clock=self.clock,
        )

    async def _chat(self, system_prompt: str, messages: List[dict], **kwargs) -> str:
        return await self._paced(self.llm_client.generate_chat, system_prompt, messages,
                                 base_delay=self.chat_backoff, **kwargs)

    async def request_question(self,
                               messages: Sequence[MessageLike],
                               profile: Optional[UserProfile] = None,
                               is_closing: bool = False,
                               fallback: Optional[str] = None) -> Optional[str]:
        """
        Ask for the next interviewer line, or a closing statement.

        The transcript is sent after a kickoff user turn built from the
        profile, so the provider always sees the conversation open with
        the candidate.

        Returns:
            The assistant text, or ``fallback`` on any failure
        """
        history = _as_dicts(messages)
        if is_closing:
            system_prompt = InterviewPrompts.closing_system()
            history.append({"role": USER, "content": CLOSING_INSTRUCTION})
        else:
            previous = [m["content"] for m in history if m["role"] == ASSISTANT][-5:]
            system_prompt = InterviewPrompts.interviewer_system(profile, previous)

        provider_messages = [{"role": USER, "content": InterviewPrompts.kickoff_message(profile)}] + history
        kind = "closing" if is_closing else "question"

        try:
            text = await asyncio.wait_for(self._chat(system_prompt, provider_messages), self.question_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s request timed out after %.0fs, using fallback", kind, self.question_timeout)
            return fallback
        except Exception as e:
            logger.error("%s request failed, using fallback: %s", kind, e)
            return fallback

        text = text.strip().strip('"').strip()
        if not text:
            logger.warning("Empty %s from provider, using fallback", kind)
            return fallback
        logger.info("Received %s (%d chars)", kind, len(text))
        return text

    async def request_report(self,
                             messages: Sequence[MessageLike],
                             profile: Optional[UserProfile] = None,
                             duration_seconds: Optional[int] = None) -> Optional[InterviewReport]:
        """
        Generate the structured report for a transcript.

        Returns:
            The report; a locally built basic report when the provider is
            still throttling after retries; None on any other failure
        """
        history = _as_dicts(messages)
        request = [{"role": USER, "content": InterviewPrompts.report_request(history, profile, duration_seconds)}]
        try:
            text = await self._chat(InterviewPrompts.report_system(), request,
                                    temperature=0.2, max_output_tokens=REPORT_MAX_OUTPUT_TOKENS,
                                    response_json=True)
        except RateLimitError:
            logger.warning("Rate limited during report generation, returning basic report")
            return build_basic_report([m["content"] for m in history if m["role"] == USER])
        except Exception as e:
            logger.error("Report generation failed: %s", e)
            return None

        report = parse_report(text)
        logger.info("Report generated (overall score %d)", report.overall_performance.score)
        return report

    async def validate_answer(self, question: Optional[str], answer: str) -> AnswerValidation:
        """Judge whether an answer addresses its question. Accepts on failure."""
        prompt = InterviewPrompts.answer_validation(question or "", answer)
        try:
            text = await self._chat("", [{"role": USER, "content": prompt}],
                                    temperature=0.0, response_json=True)
            return parse_answer_validation(text)
        except Exception as e:
            logger.warning("Answer validation unavailable, accepting answer: %s", e)
            return AnswerValidation(isValid=True, feedback="")

    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        """
        Remote speech synthesis.

        Raises:
            ProviderError: Synthesis failed or no synthesizer is configured
        """
        if self.synthesizer is None:
            raise ProviderError("No speech synthesizer configured")
        return await self._paced(self.synthesizer, text, voice or self.voice,
                                 base_delay=self.synthesis_backoff)
