"""
Error types raised by the remote-service and audio layers.
"""


class ProviderError(RuntimeError):
    """A remote AI or speech service failed to produce a result."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ProviderError):
    """The provider throttled the request (HTTP 429 / RESOURCE_EXHAUSTED)."""


class PlaybackError(RuntimeError):
    """Synthesized audio could not be played."""


class LocalVoiceUnavailable(RuntimeError):
    """No platform speech synthesizer is installed."""


def is_rate_limit_response(status_code: int, body: str) -> bool:
    """Vertex reports throttling as 429, sometimes wrapped in another status."""
    if status_code == 429:
        return True
    return "RESOURCE_EXHAUSTED" in (body or "")
