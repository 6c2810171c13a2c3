"""
Streaming speech-to-text using Google Cloud Speech and a PyAudio microphone.
"""
import queue
import asyncio
import logging
import threading
from typing import Iterator, Optional

from google.api_core import exceptions as gexc
from google.cloud import speech

from ..processing import to_recognition_pcm
from ....config import CHANNELS, FRAME_MS, LANGUAGE_CODE, SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET
from ....interview.services import (
    RecognitionAlternative,
    RecognitionEnded,
    RecognitionError,
    RecognitionErrorCode,
    RecognitionResult,
    RecognitionSignal,
    RecognitionSink,
    RecordingSink,
    SpeechRecognitionEngine,
)
from ....utils import with_suppressed_audio_warnings

logger = logging.getLogger("speech_stt")


class MicrophoneStream:
    """PyAudio input stream that yields recognizer-ready PCM16 chunks."""

    def __init__(self,
                 input_device: Optional[int] = None,
                 num_channels: int = CHANNELS,
                 sr_capture: int = SAMPLE_RATE_CAPTURE,
                 sr_target: int = SAMPLE_RATE_TARGET,
                 frame_ms: int = FRAME_MS,
                 recording_sink: Optional[RecordingSink] = None):
        self.input_device = input_device
        self.num_channels = num_channels
        self.sr_capture = sr_capture
        self.sr_target = sr_target
        self.frames_per_buffer = int(sr_capture * frame_ms / 1000)
        self.recording_sink = recording_sink
        self._buffer: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._pa = None
        self._stream = None
        self._closed = True

    @with_suppressed_audio_warnings
    def open(self) -> None:
        """Open the input device. Raises OSError if it is unavailable."""
        import pyaudio

        self._pa = pyaudio.PyAudio()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=self.num_channels,
                rate=self.sr_capture,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=self._fill,
            )
        except OSError:
            self._pa.terminate()
            self._pa = None
            raise
        self._closed = False
        logger.info(f"Microphone open: {self.num_channels} ch at {self.sr_capture} Hz")

    def _fill(self, in_data, frame_count, time_info, status_flags):
        import pyaudio

        self._buffer.put(in_data)
        return None, pyaudio.paContinue

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._stream is not None:
                self._stream.stop_stream()
                self._stream.close()
        except OSError as e:
            logger.warning(f"Error closing microphone stream: {e}")
        finally:
            self._stream = None
            if self._pa is not None:
                self._pa.terminate()
                self._pa = None
            self._buffer.put(None)

    def chunks(self) -> Iterator[bytes]:
        while not self._closed:
            chunk = self._buffer.get()
            if chunk is None:
                return
            pcm = to_recognition_pcm(chunk, self.num_channels, self.sr_capture, self.sr_target)
            if self.recording_sink is not None:
                self.recording_sink.write_frames(pcm)
            yield pcm


class GoogleStreamingRecognitionEngine(SpeechRecognitionEngine):
    """
    Continuous recognition over Google Cloud Speech streaming.

    The blocking gRPC stream runs on a worker thread. Results and errors are
    handed to the event loop with `call_soon_threadsafe`.
    """

    def __init__(self,
                 language_code: str = LANGUAGE_CODE,
                 input_device: Optional[int] = None,
                 num_channels: int = CHANNELS,
                 sr_capture: int = SAMPLE_RATE_CAPTURE,
                 sr_target: int = SAMPLE_RATE_TARGET,
                 frame_ms: int = FRAME_MS,
                 recording_sink: Optional[RecordingSink] = None,
                 client: Optional[speech.SpeechClient] = None):
        self.language_code = language_code
        self.input_device = input_device
        self.num_channels = num_channels
        self.sr_capture = sr_capture
        self.sr_target = sr_target
        self.frame_ms = frame_ms
        self.recording_sink = recording_sink
        self._client = client
        self._mic: Optional[MicrophoneStream] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def _streaming_config(self) -> speech.StreamingRecognitionConfig:
        return speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=self.sr_target,
                language_code=self.language_code,
                enable_automatic_punctuation=True,
                max_alternatives=1,
            ),
            interim_results=True,
        )

    async def start(self, sink: RecognitionSink) -> None:
        await self.stop()

        loop = asyncio.get_running_loop()
        if self._client is None:
            self._client = await asyncio.to_thread(speech.SpeechClient)

        mic = MicrophoneStream(
            input_device=self.input_device,
            num_channels=self.num_channels,
            sr_capture=self.sr_capture,
            sr_target=self.sr_target,
            frame_ms=self.frame_ms,
            recording_sink=self.recording_sink,
        )
        await asyncio.to_thread(mic.open)

        stop_event = threading.Event()
        self._mic = mic
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run, args=(mic, stop_event, sink, loop), name="speech-stream", daemon=True
        )
        self._thread.start()
        logger.info("Streaming recognition started")

    async def stop(self) -> None:
        mic, thread, stop_event = self._mic, self._thread, self._stop_event
        self._mic = self._thread = self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if mic is not None:
            mic.close()
        if thread is not None and thread.is_alive():
            await asyncio.to_thread(thread.join, 2.0)
            logger.debug("Streaming recognition stopped")

    def _run(self, mic: MicrophoneStream, stop_event: threading.Event,
             sink: RecognitionSink, loop: asyncio.AbstractEventLoop) -> None:
        requests = (speech.StreamingRecognizeRequest(audio_content=chunk) for chunk in mic.chunks())
        final_signal: RecognitionSignal = RecognitionEnded()
        try:
            responses = self._client.streaming_recognize(config=self._streaming_config(), requests=requests)
            for response in responses:
                if stop_event.is_set():
                    break
                alternatives = []
                for result in response.results:
                    if not result.alternatives:
                        continue
                    best = result.alternatives[0]
                    # Interim results are unscored; treat a missing score as full confidence
                    confidence = best.confidence if best.confidence > 0 else 1.0
                    alternatives.append(RecognitionAlternative(best.transcript, confidence, result.is_final))
                if alternatives:
                    self._deliver(loop, stop_event, sink, RecognitionResult(0, tuple(alternatives)))
        except (gexc.PermissionDenied, gexc.Unauthenticated) as e:
            final_signal = RecognitionError(RecognitionErrorCode.PERMISSION_DENIED, str(e))
        except (gexc.ServiceUnavailable, gexc.DeadlineExceeded) as e:
            final_signal = RecognitionError(RecognitionErrorCode.NETWORK, str(e))
        except gexc.OutOfRange as e:
            # Streams are capped in duration; the controller restarts a fresh one
            logger.info(f"Recognition stream reached its limit: {e}")
        except gexc.GoogleAPICallError as e:
            final_signal = RecognitionError(RecognitionErrorCode.OTHER, str(e))
        except OSError as e:
            final_signal = RecognitionError(RecognitionErrorCode.OTHER, f"microphone error: {e}")
        finally:
            mic.close()

        self._deliver(loop, stop_event, sink, final_signal)

    @staticmethod
    def _deliver(loop: asyncio.AbstractEventLoop, stop_event: threading.Event,
                 sink: RecognitionSink, signal: RecognitionSignal) -> None:
        if stop_event.is_set():
            return
        try:
            loop.call_soon_threadsafe(sink, signal)
        except RuntimeError:
            logger.debug("Event loop closed, dropping recognition signal")
