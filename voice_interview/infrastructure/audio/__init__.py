"""
Audio infrastructure for the interview system.

This module contains all audio-related functionality organized into clear submodules:
- processing: Format conversion, resampling and gain
- speech: Streaming speech-to-text and text-to-speech engines
- playback: Speaker output (imported lazily, needs pyaudio at play time)
"""

from .processing import DecodedAudio, decode_wav, encode_wav, apply_gain


# Lazy imports for engines (avoid importing Google clients unless needed)
def __getattr__(name):
    if name == "SpeakerPlayer":
        from .playback import SpeakerPlayer
        return SpeakerPlayer
    if name in ("GoogleStreamingRecognitionEngine", "GoogleSynthesisEngine", "SystemSpeechFallback"):
        from . import speech
        return getattr(speech, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "DecodedAudio",
    "decode_wav",
    "encode_wav",
    "apply_gain",
    "SpeakerPlayer",
    "GoogleStreamingRecognitionEngine",
    "GoogleSynthesisEngine",
    "SystemSpeechFallback",
]
