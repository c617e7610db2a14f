"""
SpeechOutput: speak text with remote synthesis, falling back to the
local platform voice, and finally to silence.

``on_done`` fires exactly once per ``speak`` call whatever happens,
including failures and ``stop()``. The controller relies on it as the
"finished speaking" signal.
"""
import asyncio
import logging
from typing import Callable, Optional

from ..config import SYNTHESIS_LOAD_TIMEOUT_SECONDS, PLAYBACK_TIMEOUT_SECONDS

logger = logging.getLogger("speech_output")

REMOTE = "remote"
LOCAL = "local"
SILENT = "silent"


class SpeechOutput:
    """Synthesis-with-fallback front end used by the turn controller."""

    def __init__(self,
                 gateway=None,
                 player=None,
                 local_voice=None,
                 enabled: bool = True,
                 load_timeout: float = SYNTHESIS_LOAD_TIMEOUT_SECONDS,
                 playback_timeout: float = PLAYBACK_TIMEOUT_SECONDS):
        self.gateway = gateway
        self.player = player
        self.local_voice = local_voice
        self.enabled = enabled
        self.load_timeout = load_timeout
        self.playback_timeout = playback_timeout
        self.speaking = False
        # Bumped by every speak() and stop(); a call only plays while it holds the latest value
        self._generation = 0

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def speak(self, text: str, on_done: Optional[Callable[[], None]] = None) -> str:
        """
        Speak text and report which channel was used.

        A newer speak() or a stop() supersedes this call: it stops playing
        and never starts audio afterwards.

        Returns:
            "remote", "local" or "silent"
        """
        if self.speaking:
            self._stop_devices()
        self._generation += 1
        generation = self._generation
        self.speaking = True
        channel = SILENT
        try:
            if not self.enabled or not text.strip():
                return channel

            if await self._speak_remote(text, generation):
                channel = REMOTE
            elif self._is_current(generation) and await self._speak_local(text, generation):
                channel = LOCAL
            return channel
        finally:
            if self._is_current(generation):
                self.speaking = False
            logger.debug("Finished speaking via %s", channel)
            if on_done is not None:
                try:
                    on_done()
                except Exception as e:
                    logger.error("Speech completion callback failed: %s", e)

    async def _speak_remote(self, text: str, generation: int) -> bool:
        if self.gateway is None or self.player is None:
            return False
        try:
            audio = await asyncio.wait_for(self.gateway.synthesize(text), self.load_timeout)
        except asyncio.TimeoutError:
            logger.warning("Remote synthesis timed out after %.0fs", self.load_timeout)
            return False
        except Exception as e:
            logger.warning("Remote synthesis failed, falling back: %s", e)
            return False

        if not self._is_current(generation):
            logger.debug("Dropping synthesized audio for superseded speech")
            return False
        try:
            await asyncio.wait_for(asyncio.to_thread(self.player.play, audio), self.playback_timeout)
        except asyncio.TimeoutError:
            logger.warning("Playback timed out after %.0fs", self.playback_timeout)
            self.player.stop()
            return False
        except Exception as e:
            logger.warning("Playback failed, falling back: %s", e)
            return False
        return True

    async def _speak_local(self, text: str, generation: int) -> bool:
        if self.local_voice is None or not self.local_voice.available:
            logger.info("No local voice available, continuing silently")
            return False
        if not self._is_current(generation):
            return False
        try:
            await asyncio.wait_for(asyncio.to_thread(self.local_voice.say, text), self.playback_timeout)
        except asyncio.TimeoutError:
            logger.warning("Local voice timed out")
            self.local_voice.stop()
            return False
        except Exception as e:
            logger.warning("Local voice failed: %s", e)
            return False
        return True

    def _stop_devices(self) -> None:
        if self.player is not None:
            self.player.stop()
        if self.local_voice is not None:
            self.local_voice.stop()

    def stop(self) -> None:
        """Cut off any current speech. The pending on_done still fires."""
        self._generation += 1
        self.speaking = False
        self._stop_devices()
