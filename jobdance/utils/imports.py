"""
Utilities for noisy native audio imports.
"""
import os
import sys
import warnings


# Quiet the audio stack and gRPC before any of them load
os.environ.setdefault("JACK_NO_START_SERVER", "1")
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GLOG_minloglevel", "2")


def import_quietly(func):
    """
    Run a function while suppressing Python-level stderr output and warnings.
    Used around imports that print banners on load.
    """
    original_stderr = sys.stderr
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            with open(os.devnull, 'w') as devnull:
                sys.stderr = devnull
                return func()
    finally:
        sys.stderr = original_stderr


def with_suppressed_audio_warnings(func):
    """
    Decorator that redirects file descriptor 2 while func runs.
    PortAudio and ALSA write straight to the fd, bypassing sys.stderr.
    """
    def wrapper(*args, **kwargs):
        try:
            original_stderr_fd = os.dup(2)
            null_fd = os.open(os.devnull, os.O_WRONLY)
            os.dup2(null_fd, 2)
            os.close(null_fd)
        except OSError:
            original_stderr_fd = None

        try:
            return func(*args, **kwargs)
        finally:
            if original_stderr_fd is not None:
                os.dup2(original_stderr_fd, 2)
                os.close(original_stderr_fd)

    return wrapper
