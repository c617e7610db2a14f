"""
Text-to-speech: Google Cloud synthesis, WAV playback, and a local voice.
"""
import os
import shutil
import subprocess
import tempfile
import threading
import logging
from typing import List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import texttospeech

from ...errors import ProviderError, RateLimitError, PlaybackError, LocalVoiceUnavailable
from ....config import TTS_VOICE, LANGUAGE_CODE, TTS_PITCH, TTS_AMPLITUDE, TTS_RATE_WPM

logger = logging.getLogger("speech_tts")

_tts_client = None


def _get_tts_client() -> texttospeech.TextToSpeechClient:
    global _tts_client
    if _tts_client is None:
        _tts_client = texttospeech.TextToSpeechClient()
    return _tts_client


def synthesize_speech(text: str, voice: str = TTS_VOICE, language_code: str = LANGUAGE_CODE) -> bytes:
    """
    Synthesize text to LINEAR16 WAV bytes with Google Cloud TTS.

    Raises:
        RateLimitError: Quota exhausted
        ProviderError: Any other synthesis failure
    """
    synthesis_input = texttospeech.SynthesisInput(text=text)
    voice_params = texttospeech.VoiceSelectionParams(language_code=language_code, name=voice)
    audio_config = texttospeech.AudioConfig(
        audio_encoding=texttospeech.AudioEncoding.LINEAR16,
        sample_rate_hertz=16000,
    )
    try:
        response = _get_tts_client().synthesize_speech(
            input=synthesis_input, voice=voice_params, audio_config=audio_config
        )
    except google_exceptions.ResourceExhausted as e:
        raise RateLimitError(f"TTS quota exhausted: {e}", status_code=429) from e
    except google_exceptions.GoogleAPICallError as e:
        raise ProviderError(f"TTS request failed: {e}", status_code=getattr(e, "code", None)) from e

    if not response.audio_content:
        raise ProviderError("TTS returned no audio")
    return response.audio_content


class _SubprocessSpeaker:
    """Runs one audio subprocess at a time and lets another thread stop it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._stopped = False

    def _run(self, argv: List[str]) -> int:
        with self._lock:
            self._stopped = False
            self._process = subprocess.Popen(argv, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        try:
            _, stderr = self._process.communicate()
            if self._process.returncode not in (0, None) and not self._stopped:
                logger.debug("%s exited %s: %s", argv[0], self._process.returncode,
                             (stderr or b"").decode(errors="replace").strip())
            return self._process.returncode
        finally:
            with self._lock:
                self._process = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self):
        with self._lock:
            self._stopped = True
            if self._process is not None and self._process.poll() is None:
                self._process.terminate()


class AudioPlayer(_SubprocessSpeaker):
    """Plays WAV bytes through afplay (macOS) or aplay (Linux)."""

    PLAYERS = (["afplay"], ["aplay", "-q"])

    def play(self, wav_bytes: bytes) -> None:
        """Block until playback finishes or stop() is called."""
        players = [p for p in self.PLAYERS if shutil.which(p[0])]
        if not players:
            raise PlaybackError("No audio player found (tried afplay, aplay)")

        with tempfile.NamedTemporaryFile(suffix='.wav', delete=False) as tmp_file:
            wav_path = tmp_file.name
            tmp_file.write(wav_bytes)

        try:
            for argv in players:
                returncode = self._run(argv + [wav_path])
                if returncode == 0 or self.stopped:
                    return
            raise PlaybackError(f"Audio player failed with exit code {returncode}")
        finally:
            try:
                os.unlink(wav_path)
            except OSError:
                pass


class LocalVoice(_SubprocessSpeaker):
    """Platform speech synthesizer: espeak-ng, espeak, or macOS say."""

    def __init__(self, rate_wpm: int = TTS_RATE_WPM, pitch: int = TTS_PITCH, amplitude: int = TTS_AMPLITUDE):
        super().__init__()
        self.rate_wpm = rate_wpm
        self.pitch = pitch
        self.amplitude = amplitude

    def _command(self, text: str) -> Optional[List[str]]:
        for engine in ("espeak-ng", "espeak"):
            if shutil.which(engine):
                return [engine, "-s", str(self.rate_wpm), "-p", str(self.pitch),
                        "-a", str(self.amplitude), text]
        if shutil.which("say"):
            return ["say", "-r", str(self.rate_wpm), text]
        return None

    @property
    def available(self) -> bool:
        return self._command("") is not None

    def say(self, text: str) -> None:
        """Block until the utterance finishes or stop() is called."""
        argv = self._command(text)
        if argv is None:
            raise LocalVoiceUnavailable("No local speech synthesizer installed")
        returncode = self._run(argv)
        if returncode != 0 and not self.stopped:
            raise LocalVoiceUnavailable(f"{argv[0]} exited with code {returncode}")
