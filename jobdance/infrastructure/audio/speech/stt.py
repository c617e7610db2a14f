"""
Streaming speech-to-text using Google Cloud Speech.

The recognizer mirrors the shape of a browser recognition session:
``start(on_result, on_error, on_end)`` begins one session, results arrive
as interim or final fragments, and ``on_end`` fires exactly once when the
session finishes for any reason. Callbacks are delivered on the asyncio
loop that called ``start``.
"""
import asyncio
import logging
import threading
from typing import Callable, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import speech

from ..processing.capture import MicrophoneStream, MicrophonePermissionError
from ....config import LANGUAGE_CODE, SAMPLE_RATE

logger = logging.getLogger("speech_stt")

# Error kinds reported to on_error
ERROR_NOT_ALLOWED = "not-allowed"
ERROR_NO_SPEECH = "no-speech"
ERROR_AUDIO_CAPTURE = "audio-capture"
ERROR_NETWORK = "network"


class GoogleStreamingRecognizer:
    """One streaming_recognize call per session, fed from the microphone."""

    def __init__(self, language: str = LANGUAGE_CODE, sample_rate: int = SAMPLE_RATE,
                 input_device: Optional[int] = None):
        self.language = language
        self.sample_rate = sample_rate
        self.input_device = input_device
        self._client = None
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _get_client(self) -> speech.SpeechClient:
        if self._client is None:
            self._client = speech.SpeechClient()
        return self._client

    def start(self,
              on_result: Callable[[str, bool], None],
              on_error: Callable[[str, str], None],
              on_end: Callable[[], None]) -> None:
        """Begin a recognition session in a background thread."""
        if self.active:
            logger.debug("Recognizer already running, ignoring start")
            return

        loop = asyncio.get_running_loop()
        stop_event = threading.Event()
        self._stop_event = stop_event

        def post(callback, *args):
            if not loop.is_closed():
                loop.call_soon_threadsafe(callback, *args)

        self._thread = threading.Thread(
            target=self._run,
            args=(stop_event, post, on_result, on_error, on_end),
            name="speech-recognizer",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """End the current session; on_end still fires."""
        if self._stop_event is not None:
            self._stop_event.set()

    def _streaming_config(self) -> speech.StreamingRecognitionConfig:
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=self.language,
            enable_automatic_punctuation=True,
        )
        return speech.StreamingRecognitionConfig(config=config, interim_results=True)

    def _run(self, stop_event, post, on_result, on_error, on_end):
        heard_anything = False
        try:
            with MicrophoneStream(sample_rate=self.sample_rate, input_device=self.input_device) as mic:
                audio_requests = (
                    speech.StreamingRecognizeRequest(audio_content=chunk)
                    for chunk in mic.chunks(stop_event)
                )
                responses = self._get_client().streaming_recognize(self._streaming_config(), audio_requests)
                for response in responses:
                    if stop_event.is_set():
                        break
                    for result in response.results:
                        if not result.alternatives:
                            continue
                        transcript = result.alternatives[0].transcript
                        if transcript.strip():
                            heard_anything = True
                            post(on_result, transcript, bool(result.is_final))
            if not heard_anything and not stop_event.is_set():
                post(on_error, ERROR_NO_SPEECH, "session ended without speech")
        except MicrophonePermissionError as e:
            logger.error("Microphone permission denied: %s", e)
            post(on_error, ERROR_NOT_ALLOWED, str(e))
        except OSError as e:
            logger.warning("Audio capture failed: %s", e)
            post(on_error, ERROR_AUDIO_CAPTURE, str(e))
        except google_exceptions.OutOfRange as e:
            # Streaming sessions are capped in length; the caller restarts
            logger.info("Recognition stream limit reached: %s", e)
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Streaming recognition failed: %s", e)
            post(on_error, ERROR_NETWORK, str(e))
        finally:
            post(on_end)
