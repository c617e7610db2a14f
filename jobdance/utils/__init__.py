"""Utility modules for imports, logging, and timing."""

from .clock import Clock, LoopClock
from .imports import import_quietly, with_suppressed_audio_warnings
from .logging import setup_logging

__all__ = ["Clock", "LoopClock", "import_quietly", "with_suppressed_audio_warnings", "setup_logging"]
