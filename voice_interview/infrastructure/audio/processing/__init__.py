"""Audio format conversion and signal processing."""

from .processing import (
    DecodedAudio,
    apply_gain,
    decode_wav,
    encode_wav,
    frames_to_float,
    float_to_pcm16,
    remove_dc,
    resample,
    stereo_to_mono,
    to_recognition_pcm,
)

__all__ = [
    "DecodedAudio",
    "apply_gain",
    "decode_wav",
    "encode_wav",
    "frames_to_float",
    "float_to_pcm16",
    "remove_dc",
    "resample",
    "stereo_to_mono",
    "to_recognition_pcm",
]
