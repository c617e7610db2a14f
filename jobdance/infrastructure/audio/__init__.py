"""
Audio capture and speech services for JobDance.

- processing: microphone capture for streaming recognition
- speech: Google Cloud speech-to-text and text-to-speech, local playback
"""

from .speech import synthesize_speech, AudioPlayer, LocalVoice, GoogleStreamingRecognizer

__all__ = ["synthesize_speech", "AudioPlayer", "LocalVoice", "GoogleStreamingRecognizer"]
