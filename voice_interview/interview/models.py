"""
Data models for the interview system.
"""
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, List, Optional, Tuple


class Sender(str, Enum):
    """Who produced a message."""
    USER = "user"
    INTERVIEWER = "interviewer"


class MessageKind(str, Enum):
    """How a message should be presented."""
    REGULAR = "regular"
    WARNING = "warning"
    ERROR = "error"


class TurnState(str, Enum):
    """Whose turn it is. Exactly one state is active for a session."""
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    ENDED = "ended"


class InterviewStage(str, Enum):
    """Interview progression derived from transcript length."""
    INTRODUCTION = "introduction"
    INITIAL_ASSESSMENT = "initial_assessment"
    DEEP_DIVE = "deep_dive"
    TECHNICAL_EVALUATION = "technical_evaluation"
    SCENARIO_BASED = "scenario_based"
    WRAP_UP = "wrap_up"


class InterviewType(str, Enum):
    """Kinds of interview the persona can run."""
    TECHNICAL = "technical"
    CODING = "coding"
    BEHAVIORAL = "behavioral"
    FRONTEND = "frontend"
    BACKEND = "backend"


@dataclass(frozen=True)
class UtteranceFragment:
    """A piece of recognized speech. Partial fragments are never persisted."""
    text: str
    is_partial: bool
    confidence: float
    captured_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Message:
    """A single transcript entry. Immutable once created."""
    text: str
    sender: Sender
    kind: MessageKind = MessageKind.REGULAR
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "sender": self.sender.value,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class AudioCacheEntry:
    """Synthesized audio for one normalized text and voice."""
    key: str
    voice_id: str
    audio: bytes
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class EscalationState:
    """Moderation ladder position. Counts never decrease and `ended` never resets."""
    warning_count: int = 0
    ended: bool = False

    def with_warning(self) -> "EscalationState":
        return replace(self, warning_count=self.warning_count + 1)

    def with_termination(self) -> "EscalationState":
        return replace(self, warning_count=self.warning_count + 1, ended=True)


class Transcript:
    """Append-only, insertion-ordered sequence of messages."""

    def __init__(self):
        self._messages: List[Message] = []

    def append(self, message: Message) -> int:
        """Append a message and return its position."""
        self._messages.append(message)
        return len(self._messages) - 1

    def snapshot(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]


@dataclass
class InterviewResult:
    """Final interview outcome."""
    messages: Tuple[Message, ...] = ()
    end_reason: str = ""
    warning_count: int = 0
    final_stage: InterviewStage = InterviewStage.INTRODUCTION
    terminated: bool = False

    @property
    def turn_count(self) -> int:
        return sum(1 for m in self.messages if m.sender == Sender.USER)
