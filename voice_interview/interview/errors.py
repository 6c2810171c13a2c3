"""
Failure taxonomy for the turn-taking core.
"""
from enum import Enum


class InterviewError(Exception):
    """Base class for interview failures."""


class CaptureFailureKind(str, Enum):
    PERMISSION = "permission"
    NETWORK = "network"
    TRANSIENT = "transient"


class SynthesisFailureKind(str, Enum):
    TRANSPORT = "transport"
    DECODE = "decode"


class DialogueFailureKind(str, Enum):
    TRANSPORT = "transport"
    MALFORMED = "malformed"


class EscalationKind(str, Enum):
    WARN = "warn"
    TERMINATE = "terminate"


class CaptureFailure(InterviewError):
    """Speech capture could not continue."""

    def __init__(self, kind: CaptureFailureKind, message: str):
        super().__init__(message)
        self.kind = kind

    @property
    def fatal(self) -> bool:
        return self.kind == CaptureFailureKind.PERMISSION


class SynthesisFailure(InterviewError):
    """Interviewer speech could not be produced by the synthesis engine."""

    def __init__(self, kind: SynthesisFailureKind, message: str):
        super().__init__(message)
        self.kind = kind


class DialogueFailure(InterviewError):
    """The dialogue service did not produce a usable reply."""

    def __init__(self, kind: DialogueFailureKind, message: str):
        super().__init__(message)
        self.kind = kind


class ModerationEscalation(InterviewError):
    """A moderation violation that moved the escalation ladder."""

    def __init__(self, kind: EscalationKind, warning_count: int):
        super().__init__(f"moderation {kind.value} at warning {warning_count}")
        self.kind = kind
        self.warning_count = warning_count


class TurnStateError(InterviewError):
    """An illegal turn state transition was requested."""
