"""Infrastructure components for JobDance.

Low-level clients the interview loop builds on: the LLM provider and its
request pacing, speech recognition and synthesis, and file-backed storage.
Import from the submodules directly; audio pulls in native libraries.
"""

from .errors import ProviderError, RateLimitError, PlaybackError, LocalVoiceUnavailable

__all__ = ["ProviderError", "RateLimitError", "PlaybackError", "LocalVoiceUnavailable"]
