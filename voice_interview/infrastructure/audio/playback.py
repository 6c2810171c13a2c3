"""
Speaker output through PyAudio.
"""
import asyncio
import logging
import threading
from typing import Optional

from .processing import DecodedAudio, apply_gain, decode_wav
from ...config import PLAYBACK_CHUNK_FRAMES
from ...interview.services import AudioPlayer
from ...utils import with_suppressed_audio_warnings

logger = logging.getLogger("playback")


class SpeakerPlayer(AudioPlayer):
    """
    Plays decoded WAV audio on one output stream at a time.

    Gain is read for every chunk, so muting takes effect mid-utterance.
    Pausing holds the chunk loop between writes until resumed or stopped.
    """

    def __init__(self, output_device: Optional[int] = None, chunk_frames: int = PLAYBACK_CHUNK_FRAMES):
        self.output_device = output_device
        self.chunk_frames = chunk_frames
        self.gain = 1.0
        self._pa = None
        self._stop_event: Optional[threading.Event] = None
        self._resume_event = threading.Event()
        self._resume_event.set()

    @property
    def is_active(self) -> bool:
        return self._stop_event is not None

    async def decode(self, payload: bytes) -> DecodedAudio:
        return await asyncio.to_thread(decode_wav, payload)

    async def play(self, audio: DecodedAudio) -> None:
        if self.is_active:
            self.stop()
        stop_event = threading.Event()
        self._stop_event = stop_event
        try:
            await asyncio.to_thread(self._play_blocking, audio, stop_event)
        finally:
            if self._stop_event is stop_event:
                self._stop_event = None

    def stop(self) -> None:
        stop_event, self._stop_event = self._stop_event, None
        if stop_event is not None:
            stop_event.set()
            logger.debug("Playback stopped")

    def pause(self) -> None:
        self._resume_event.clear()
        logger.debug("Playback paused")

    def resume(self) -> None:
        self._resume_event.set()
        logger.debug("Playback resumed")

    def close(self) -> None:
        self.stop()
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    @with_suppressed_audio_warnings
    def _open_stream(self, audio: DecodedAudio):
        import pyaudio

        if self._pa is None:
            self._pa = pyaudio.PyAudio()
        return self._pa.open(
            format=self._pa.get_format_from_width(audio.sample_width),
            channels=audio.channels,
            rate=audio.sample_rate,
            output=True,
            output_device_index=self.output_device,
        )

    def _play_blocking(self, audio: DecodedAudio, stop_event: threading.Event) -> None:
        stream = self._open_stream(audio)
        step = self.chunk_frames * audio.channels * audio.sample_width
        try:
            for offset in range(0, len(audio.pcm), step):
                while not self._resume_event.wait(0.05):
                    if stop_event.is_set():
                        break
                if stop_event.is_set():
                    break
                stream.write(apply_gain(audio.pcm[offset:offset + step], self.gain))
        finally:
            stream.stop_stream()
            stream.close()
