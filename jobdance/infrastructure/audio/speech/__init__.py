"""Speech-to-text and text-to-speech modules."""

from .tts import synthesize_speech, AudioPlayer, LocalVoice
from .stt import GoogleStreamingRecognizer

__all__ = ["synthesize_speech", "AudioPlayer", "LocalVoice", "GoogleStreamingRecognizer"]
