"""Interview system components.

This module contains the turn-taking core for voice interviews: capture,
synthesis, turn coordination, dialogue policy and the session that wires
them together.
"""

# Session
from .orchestrator import InterviewSession

# Core components
from .capture import CaptureController, CaptureStatus
from .synthesis import SynthesisQueue
from .coordinator import TurnCoordinator
from .policy import DialogueTurnPolicy, PolicyAction, PolicyDecision, determine_stage

# Data models
from .models import (
    AudioCacheEntry, EscalationState, InterviewResult, InterviewStage,
    InterviewType, Message, MessageKind, Sender, Transcript, TurnState,
    UtteranceFragment
)

# Errors and retry
from .errors import (
    InterviewError, CaptureFailure, CaptureFailureKind, SynthesisFailure,
    SynthesisFailureKind, DialogueFailure, DialogueFailureKind,
    ModerationEscalation, EscalationKind, TurnStateError
)
from .retry import RetryPolicy, Scheduler, exponential_backoff

# Service contracts
from .services import (
    SpeechRecognitionEngine, SpeechSynthesisEngine, AudioPlayer,
    LocalSynthesisFallback, DialogueReplyService, ModerationCheck,
    TranscriptSink, RecordingSink, KeywordModerationCheck, VoiceConfig,
    RecognitionAlternative, RecognitionResult, RecognitionError,
    RecognitionErrorCode, RecognitionEnded
)

# Event system
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics, EventChannel, Subscription,
    EventType, InterviewEvent, InterviewStartedEvent, StateChangedEvent,
    MessageAppendedEvent, SpeakingStartedEvent, SpeakingEndedEvent,
    WarningIssuedEvent, InterviewTerminatedEvent, InterviewEndedEvent,
    ErrorOccurredEvent
)

__all__ = [
    # Session
    "InterviewSession",

    # Core components
    "CaptureController", "CaptureStatus", "SynthesisQueue", "TurnCoordinator",
    "DialogueTurnPolicy", "PolicyAction", "PolicyDecision", "determine_stage",

    # Data models
    "AudioCacheEntry", "EscalationState", "InterviewResult", "InterviewStage",
    "InterviewType", "Message", "MessageKind", "Sender", "Transcript", "TurnState",
    "UtteranceFragment",

    # Errors and retry
    "InterviewError", "CaptureFailure", "CaptureFailureKind", "SynthesisFailure",
    "SynthesisFailureKind", "DialogueFailure", "DialogueFailureKind",
    "ModerationEscalation", "EscalationKind", "TurnStateError",
    "RetryPolicy", "Scheduler", "exponential_backoff",

    # Service contracts
    "SpeechRecognitionEngine", "SpeechSynthesisEngine", "AudioPlayer",
    "LocalSynthesisFallback", "DialogueReplyService", "ModerationCheck",
    "TranscriptSink", "RecordingSink", "KeywordModerationCheck", "VoiceConfig",
    "RecognitionAlternative", "RecognitionResult", "RecognitionError",
    "RecognitionErrorCode", "RecognitionEnded",

    # Events
    "InterviewEventBus", "EventLogger", "InterviewMetrics", "EventChannel", "Subscription",
    "EventType", "InterviewEvent", "InterviewStartedEvent", "StateChangedEvent",
    "MessageAppendedEvent", "SpeakingStartedEvent", "SpeakingEndedEvent",
    "WarningIssuedEvent", "InterviewTerminatedEvent", "InterviewEndedEvent",
    "ErrorOccurredEvent",
]
