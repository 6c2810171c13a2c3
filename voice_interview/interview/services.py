"""
Service contracts for the interview system.

Everything the turn-taking core talks to lives behind one of these interfaces:
recognition and synthesis engines, the audio player, the local fallback voice,
the dialogue service, moderation and persistence. Concrete Google/Vertex/PyAudio
implementations live under ``infrastructure``; scripted doubles live in
``interview.testing``.
"""
import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from .models import EscalationState, InterviewStage, Message

logger = logging.getLogger("services")


# =============================================================================
# Recognition signals
# =============================================================================

class RecognitionErrorCode(str, Enum):
    """Error categories a recognition engine reports."""
    PERMISSION_DENIED = "permission-denied"
    NETWORK = "network"
    ABORTED = "aborted"
    NO_SPEECH = "no-speech"
    OTHER = "other"


@dataclass(frozen=True)
class RecognitionAlternative:
    """One recognized span. Interim spans carry the engine's best guess."""
    transcript: str
    confidence: float
    is_final: bool


@dataclass(frozen=True)
class RecognitionResult:
    """Recognition results starting at `result_index` within the session."""
    result_index: int
    results: Sequence[RecognitionAlternative]


@dataclass(frozen=True)
class RecognitionError:
    code: RecognitionErrorCode
    message: str = ""


@dataclass(frozen=True)
class RecognitionEnded:
    """The engine closed its session on its own."""


RecognitionSignal = Union[RecognitionResult, RecognitionError, RecognitionEnded]
RecognitionSink = Callable[[RecognitionSignal], None]


# =============================================================================
# Collaborator interfaces
# =============================================================================

class SpeechRecognitionEngine(ABC):
    """Continuous speech-to-text session."""

    @abstractmethod
    async def start(self, sink: RecognitionSink) -> None:
        """
        Open a recognition session.

        Args:
            sink: Receives RecognitionResult, RecognitionError and RecognitionEnded
                signals on the event loop thread

        Raises:
            Exception: If the session could not be opened
        """

    @abstractmethod
    async def stop(self) -> None:
        """Close the session. No signals are delivered after this returns."""


@dataclass(frozen=True)
class VoiceConfig:
    """Voice identity used for synthesis and as part of the cache key."""
    name: str = "en-US-Neural2-D"
    language_code: str = "en-US"
    speaking_rate: float = 1.0
    pitch: float = 0.0

    @property
    def voice_id(self) -> str:
        return self.name


class SpeechSynthesisEngine(ABC):
    """Remote text-to-speech."""

    @abstractmethod
    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """
        Synthesize text into an encoded audio payload.

        Raises:
            Exception: On transport failure or a non-success response
        """


class AudioPlayer(ABC):
    """Single-source audio output."""

    gain: float = 1.0

    @abstractmethod
    async def decode(self, payload: bytes) -> Any:
        """Decode an encoded payload into a playable buffer. Raises on undecodable audio."""

    @abstractmethod
    async def play(self, audio: Any) -> None:
        """Play a decoded buffer, returning when playback finishes or is stopped."""

    @abstractmethod
    def stop(self) -> None:
        """Stop and release the active source, if any."""

    @abstractmethod
    def pause(self) -> None:
        """Hold the active source in place until `resume()`. New sources start held."""

    @abstractmethod
    def resume(self) -> None:
        ...

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """Whether a source is currently playing."""


class LocalSynthesisFallback(ABC):
    """Last-resort on-device voice."""

    @abstractmethod
    async def speak(self, text: str, volume: float = 1.0) -> None:
        """Speak text, returning when finished. Raises if nothing could be spoken."""

    @abstractmethod
    def cancel(self) -> None:
        """Abort any in-progress speech."""

    def pause(self) -> None:
        """Hold in-progress speech. Optional."""

    def resume(self) -> None:
        """Continue held speech. Optional."""


class DialogueReplyService(ABC):
    """Produces the interviewer's next line."""

    @abstractmethod
    async def generate_reply(self,
                             text: str,
                             transcript: Sequence[Message],
                             stage: InterviewStage,
                             escalation: EscalationState) -> str:
        """
        Generate a reply to the candidate.

        Args:
            text: The candidate's latest utterance
            transcript: Transcript snapshot before this utterance was appended
            stage: Current interview stage
            escalation: Current moderation state

        Returns:
            Reply text. An empty string is treated as a failed reply.
        """


class ModerationCheck(ABC):
    """Flags utterances that violate the interview's conduct rules."""

    @abstractmethod
    def is_violation(self, text: str) -> bool:
        ...


class TranscriptSink(ABC):
    """Receives every message appended to the transcript."""

    @abstractmethod
    async def record_message(self, message: Message) -> None:
        ...

    async def close(self, messages: Sequence[Message], summary: dict) -> None:
        """Persist the final conversation record. Optional."""


class RecordingSink(ABC):
    """Receives raw candidate audio while capture is live."""

    @abstractmethod
    def write_frames(self, pcm: bytes) -> None:
        ...

    @abstractmethod
    def close(self) -> Optional[str]:
        """Finish the recording and return its path, if one was written."""


# =============================================================================
# Built-in moderation
# =============================================================================

class KeywordModerationCheck(ModerationCheck):
    """Flags text containing any configured word, matched on word boundaries."""

    def __init__(self, words: Iterable[str]):
        self.words: List[str] = [w.strip().lower() for w in words if w and w.strip()]
        if self.words:
            alternatives = "|".join(re.escape(w) for w in sorted(self.words, key=len, reverse=True))
            self._pattern: Optional[re.Pattern] = re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)
        else:
            self._pattern = None

    def is_violation(self, text: str) -> bool:
        if not text or self._pattern is None:
            return False
        flagged = self._pattern.search(text) is not None
        if flagged:
            logger.info("Moderation flagged utterance")
        return flagged
