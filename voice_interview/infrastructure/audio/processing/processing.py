"""
Basic audio processing functions including format conversions and gain.
"""
import io
import wave
from dataclasses import dataclass
from math import gcd

import numpy as np
from scipy.signal import resample_poly


@dataclass(frozen=True)
class DecodedAudio:
    """PCM16 frames ready for an output stream."""
    pcm: bytes
    sample_rate: int
    channels: int = 1
    sample_width: int = 2

    @property
    def duration(self) -> float:
        frame_bytes = self.channels * self.sample_width
        return len(self.pcm) / float(frame_bytes * self.sample_rate) if self.sample_rate else 0.0


def frames_to_float(data: bytes, channels: int = 1) -> np.ndarray:
    """Interleaved PCM16 bytes to float32 samples in [-1, 1], shaped (frames, channels)."""
    samples = np.frombuffer(data, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        usable = (len(samples) // channels) * channels
        return samples[:usable].reshape(-1, channels)
    return samples.reshape(-1, 1)


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio to mono by averaging channels."""
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    if x.size == 0:
        return x
    return x - np.mean(x)


def resample(mono: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    """Resample mono audio between arbitrary integer rates."""
    if sr_in == sr_out or mono.size == 0:
        return mono.astype(np.float32)
    divisor = gcd(sr_in, sr_out)
    return resample_poly(mono, up=sr_out // divisor, down=sr_in // divisor).astype(np.float32)


def float_to_pcm16(x: np.ndarray) -> np.ndarray:
    """Float samples in [-1, 1] to clipped int16."""
    return (np.clip(x, -1.0, 1.0) * 32767.0).astype(np.int16)


def to_recognition_pcm(data: bytes, channels: int, sr_in: int, sr_out: int) -> bytes:
    """Microphone frames to mono PCM16 at the recognizer's rate."""
    mono = stereo_to_mono(frames_to_float(data, channels))
    return float_to_pcm16(resample(remove_dc(mono), sr_in, sr_out)).tobytes()


def apply_gain(pcm: bytes, gain: float) -> bytes:
    """Scale PCM16 bytes. Gain 1.0 is a no-op and 0.0 produces silence."""
    if gain >= 0.999:
        return pcm
    if gain <= 0.0:
        return bytes(len(pcm))
    samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float32) * gain
    return np.clip(samples, -32768, 32767).astype(np.int16).tobytes()


def decode_wav(payload: bytes) -> DecodedAudio:
    """
    Decode a WAV payload.

    Raises:
        ValueError: If the payload is not 16-bit PCM WAV
    """
    try:
        with wave.open(io.BytesIO(payload), "rb") as wf:
            sample_width = wf.getsampwidth()
            if sample_width != 2:
                raise ValueError(f"unsupported sample width {sample_width}")
            return DecodedAudio(
                pcm=wf.readframes(wf.getnframes()),
                sample_rate=wf.getframerate(),
                channels=wf.getnchannels(),
                sample_width=sample_width,
            )
    except (wave.Error, EOFError) as e:
        raise ValueError(f"invalid WAV payload: {e}") from e


def encode_wav(pcm16: bytes, sr: int, channels: int = 1) -> bytes:
    """Wrap PCM16 bytes in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16)
    return buffer.getvalue()

