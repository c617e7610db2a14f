"""Audio capture modules."""


# Lazy import so pyaudio-dependent code only loads when voice input is used
def _get_microphone_stream():
    from .capture import MicrophoneStream
    return MicrophoneStream


def __getattr__(name):
    if name == "MicrophoneStream":
        return _get_microphone_stream()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = ["MicrophoneStream"]
