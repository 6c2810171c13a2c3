"""
Testing infrastructure with mock services for the interview system.
"""
import asyncio
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .models import EscalationState, InterviewStage, Message
from .services import (
    AudioPlayer,
    DialogueReplyService,
    LocalSynthesisFallback,
    RecognitionAlternative,
    RecognitionEnded,
    RecognitionError,
    RecognitionErrorCode,
    RecognitionResult,
    RecognitionSignal,
    RecognitionSink,
    RecordingSink,
    SpeechRecognitionEngine,
    SpeechSynthesisEngine,
    TranscriptSink,
    VoiceConfig,
)
from ..config import Config


class MockRecognitionEngine(SpeechRecognitionEngine):
    """Recognition engine driven by the test through `partial()`, `final()`, `error()` and `end()`."""

    def __init__(self, fail_starts: int = 0):
        self.fail_starts = fail_starts
        self.start_count = 0
        self.stop_count = 0
        self.running = False
        self.sinks: List[RecognitionSink] = []
        self._sink: Optional[RecognitionSink] = None

    async def start(self, sink: RecognitionSink) -> None:
        self.start_count += 1
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise ConnectionError("mock engine failed to start")
        self._sink = sink
        self.sinks.append(sink)
        self.running = True

    async def stop(self) -> None:
        self.stop_count += 1
        self.running = False

    def emit(self, signal: RecognitionSignal) -> None:
        if self._sink is None:
            raise RuntimeError("engine was never started")
        self._sink(signal)

    def partial(self, text: str, confidence: float = 0.9) -> None:
        self.emit(RecognitionResult(0, (RecognitionAlternative(text, confidence, False),)))

    def final(self, text: str, confidence: float = 0.9) -> None:
        self.emit(RecognitionResult(0, (RecognitionAlternative(text, confidence, True),)))

    def error(self, code: RecognitionErrorCode, message: str = "") -> None:
        self.running = False
        self.emit(RecognitionError(code, message))

    def end(self) -> None:
        self.running = False
        self.emit(RecognitionEnded())


class MockSynthesisEngine(SpeechSynthesisEngine):
    """Returns `b"AUDIO:<text>"`, optionally failing the first `failures` calls."""

    def __init__(self, failures: int = 0, delay: float = 0.0, payload: Optional[bytes] = None):
        self.failures = failures
        self.delay = delay
        self.payload = payload
        self.calls: List[Tuple[str, str]] = []

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        self.calls.append((text, voice.voice_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("mock synthesis transport failure")
        if self.payload is not None:
            return self.payload
        return b"AUDIO:" + text.encode("utf-8")


class MockAudioPlayer(AudioPlayer):
    """
    Pretends to play audio for `play_duration` seconds of unpaused time.

    Payloads starting with b"BAD" fail to decode.
    """

    def __init__(self, play_duration: float = 0.01):
        self.play_duration = play_duration
        self.gain = 1.0
        self.played: List[bytes] = []
        self.gains: List[float] = []
        self.stop_count = 0
        self.paused = False
        self.pause_count = 0
        self.resume_count = 0
        self._stopped: Optional[asyncio.Event] = None

    @property
    def is_active(self) -> bool:
        return self._stopped is not None

    async def decode(self, payload: bytes) -> bytes:
        if payload.startswith(b"BAD"):
            raise ValueError("mock undecodable audio")
        return payload

    async def play(self, audio: bytes) -> None:
        stopped = asyncio.Event()
        self._stopped = stopped
        self.played.append(audio)
        self.gains.append(self.gain)
        step = 0.005
        elapsed = 0.0
        try:
            while elapsed < self.play_duration and not stopped.is_set():
                await asyncio.sleep(step)
                if not self.paused:
                    elapsed += step
        finally:
            if self._stopped is stopped:
                self._stopped = None

    def stop(self) -> None:
        self.stop_count += 1
        stopped, self._stopped = self._stopped, None
        if stopped is not None:
            stopped.set()

    def pause(self) -> None:
        self.paused = True
        self.pause_count += 1

    def resume(self) -> None:
        self.paused = False
        self.resume_count += 1


class MockFallbackVoice(LocalSynthesisFallback):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.spoken: List[Tuple[str, float]] = []
        self.cancel_count = 0
        self.pause_count = 0
        self.resume_count = 0

    async def speak(self, text: str, volume: float = 1.0) -> None:
        if self.fail:
            raise RuntimeError("mock fallback voice failed")
        self.spoken.append((text, volume))

    def cancel(self) -> None:
        self.cancel_count += 1

    def pause(self) -> None:
        self.pause_count += 1

    def resume(self) -> None:
        self.resume_count += 1


Reply = Union[str, BaseException]


class MockDialogueService(DialogueReplyService):
    """
    Scripted dialogue service.

    Replies are consumed in order; an exception in the script is raised instead
    of returned. `delays` lets individual calls resolve late.
    """

    def __init__(self,
                 replies: Optional[Sequence[Reply]] = None,
                 delays: Optional[Sequence[float]] = None,
                 default_reply: str = "Tell me more about that.",
                 responder: Optional[Callable[[str], str]] = None):
        self.replies: List[Reply] = list(replies or [])
        self.delays: List[float] = list(delays or [])
        self.default_reply = default_reply
        self.responder = responder
        self.calls: List[Dict[str, object]] = []

    async def generate_reply(self,
                             text: str,
                             transcript: Sequence[Message],
                             stage: InterviewStage,
                             escalation: EscalationState) -> str:
        self.calls.append({
            "text": text,
            "history": tuple(transcript),
            "stage": stage,
            "escalation": escalation,
        })
        delay = self.delays.pop(0) if self.delays else 0.0
        if delay:
            await asyncio.sleep(delay)
        if self.replies:
            reply = self.replies.pop(0)
        elif self.responder is not None:
            reply = self.responder(text)
        else:
            reply = self.default_reply
        if isinstance(reply, BaseException):
            raise reply
        return reply


class MockTranscriptSink(TranscriptSink):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: List[Message] = []
        self.closed_with: Optional[dict] = None

    async def record_message(self, message: Message) -> None:
        if self.fail:
            raise OSError("mock sink write failed")
        self.messages.append(message)

    async def close(self, messages: Sequence[Message], summary: dict) -> None:
        self.closed_with = dict(summary, message_count=len(messages))


class MockRecordingSink(RecordingSink):
    def __init__(self):
        self.frames: List[bytes] = []
        self.closed = False

    def write_frames(self, pcm: bytes) -> None:
        self.frames.append(pcm)

    def close(self) -> Optional[str]:
        self.closed = True
        return None


def create_test_config(**overrides) -> Config:
    """Config with millisecond timers so tests run quickly."""
    config = Config(
        google_cloud_project="test-project",
        workdir="/tmp/voice_interview_tests",
        silence_window=0.05,
        resume_debounce=0.01,
        capture_backoff_base=0.01,
        capture_backoff_max=0.02,
        synthesis_backoff_base=0.001,
        synthesis_backoff_max=0.002,
        dialogue_timeout=1.0,
    )
    return replace(config, **overrides)


def create_mock_interview_setup(replies: Optional[Sequence[Reply]] = None, **config_overrides) -> Dict[str, object]:
    """
    Create a complete mock setup for end-to-end session tests.

    Returns:
        Dict with the config and every mock collaborator, ready to pass to InterviewSession
    """
    return {
        "config": create_test_config(**config_overrides),
        "recognition_engine": MockRecognitionEngine(),
        "synthesis_engine": MockSynthesisEngine(),
        "player": MockAudioPlayer(),
        "fallback": MockFallbackVoice(),
        "dialogue": MockDialogueService(replies),
        "transcript_sink": MockTranscriptSink(),
        "recording_sink": MockRecordingSink(),
    }
