"""
Microphone capture as a stream of PCM16 chunks for streaming recognition.
"""
import errno
import logging
import queue
import threading
from typing import Iterator, Optional

from ....config import SAMPLE_RATE, CHUNK_MS
from ....utils import import_quietly, with_suppressed_audio_warnings

logger = logging.getLogger("audio_capture")

# PortAudio reports a missing device permission with these host error codes
_PERMISSION_ERRNOS = (errno.EACCES, errno.EPERM)


class MicrophonePermissionError(PermissionError):
    """The OS refused access to the microphone."""


class MicrophoneStream:
    """
    Opens the default input device and buffers 16-bit mono chunks.

    Usage::

        with MicrophoneStream() as mic:
            for chunk in mic.chunks(stop_event):
                ...
    """

    def __init__(self,
                 sample_rate: int = SAMPLE_RATE,
                 chunk_ms: int = CHUNK_MS,
                 input_device: Optional[int] = None):
        self.sample_rate = sample_rate
        self.chunk_size = int(sample_rate * chunk_ms / 1000)
        self.input_device = input_device
        self._buffer: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._pa = None
        self._stream = None
        self.closed = True

    @with_suppressed_audio_warnings
    def open(self):
        # pyaudio is imported lazily so text-only sessions don't need PortAudio
        pyaudio = import_quietly(lambda: __import__("pyaudio"))
        self._pa = pyaudio.PyAudio()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=1,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=self.chunk_size,
                stream_callback=self._fill_buffer,
            )
        except OSError as e:
            self._pa.terminate()
            self._pa = None
            if getattr(e, "errno", None) in _PERMISSION_ERRNOS or "permission" in str(e).lower():
                raise MicrophonePermissionError(str(e)) from e
            raise
        self.closed = False
        logger.info("Microphone opened at %d Hz, %d-sample chunks", self.sample_rate, self.chunk_size)

    def close(self):
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
        self.closed = True
        # Wake up any consumer blocked in chunks()
        self._buffer.put(None)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _fill_buffer(self, in_data, frame_count, time_info, status_flags):
        self._buffer.put(in_data)
        # pyaudio.paContinue
        return None, 0

    def chunks(self, stop_event: threading.Event) -> Iterator[bytes]:
        """Yield buffered audio until the stream closes or stop_event is set."""
        while not self.closed and not stop_event.is_set():
            try:
                chunk = self._buffer.get(timeout=0.5)
            except queue.Empty:
                continue
            if chunk is None:
                return
            data = [chunk]
            # Drain whatever else has arrived so requests stay large
            while True:
                try:
                    chunk = self._buffer.get(block=False)
                except queue.Empty:
                    break
                if chunk is None:
                    self.closed = True
                    break
                data.append(chunk)
            yield b"".join(data)
