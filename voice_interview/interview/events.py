"""
Event-driven architecture for the interview system.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Generic, TypeVar
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")

T = TypeVar("T")


class EventType(str, Enum):
    """Types of interview events."""
    INTERVIEW_STARTED = "interview_started"
    STATE_CHANGED = "state_changed"
    MESSAGE_APPENDED = "message_appended"
    SPEAKING_STARTED = "speaking_started"
    SPEAKING_ENDED = "speaking_ended"
    WARNING_ISSUED = "warning_issued"
    INTERVIEW_TERMINATED = "interview_terminated"
    INTERVIEW_ENDED = "interview_ended"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class InterviewEvent(ABC):
    """Base class for all interview events."""
    event_type: EventType
    conversation_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class InterviewStartedEvent(InterviewEvent):
    """Event fired when the candidate joins."""
    def __init__(self, conversation_id: str, timestamp: float, interview_type: str, candidate_name: str):
        super().__init__(
            event_type=EventType.INTERVIEW_STARTED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={"interview_type": interview_type, "candidate_name": candidate_name}
        )


@dataclass
class StateChangedEvent(InterviewEvent):
    """Event fired on every turn state transition."""
    def __init__(self, conversation_id: str, timestamp: float, previous: str, current: str):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={"previous": previous, "current": current}
        )


@dataclass
class MessageAppendedEvent(InterviewEvent):
    """Event fired when a message is added to the transcript."""
    def __init__(self, conversation_id: str, timestamp: float, position: int,
                 sender: str, kind: str, text: str):
        super().__init__(
            event_type=EventType.MESSAGE_APPENDED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={
                "position": position,
                "sender": sender,
                "kind": kind,
                "text": text
            }
        )


@dataclass
class SpeakingStartedEvent(InterviewEvent):
    """Event fired when interviewer audio starts."""
    def __init__(self, conversation_id: str, timestamp: float):
        super().__init__(
            event_type=EventType.SPEAKING_STARTED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={}
        )


@dataclass
class SpeakingEndedEvent(InterviewEvent):
    """Event fired when interviewer audio ends."""
    def __init__(self, conversation_id: str, timestamp: float):
        super().__init__(
            event_type=EventType.SPEAKING_ENDED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={}
        )


@dataclass
class WarningIssuedEvent(InterviewEvent):
    """Event fired when the candidate receives a moderation warning."""
    def __init__(self, conversation_id: str, timestamp: float, warning_count: int):
        super().__init__(
            event_type=EventType.WARNING_ISSUED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={"warning_count": warning_count}
        )


@dataclass
class InterviewTerminatedEvent(InterviewEvent):
    """Event fired when the interview is ended by escalation."""
    def __init__(self, conversation_id: str, timestamp: float, reason: str,
                 turn_count: int, warning_count: int):
        super().__init__(
            event_type=EventType.INTERVIEW_TERMINATED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={
                "reason": reason,
                "turn_count": turn_count,
                "warning_count": warning_count
            }
        )


@dataclass
class InterviewEndedEvent(InterviewEvent):
    """Event fired once when the interview reaches its end state."""
    def __init__(self, conversation_id: str, timestamp: float, reason: str,
                 message_count: int, final_stage: str):
        super().__init__(
            event_type=EventType.INTERVIEW_ENDED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={
                "reason": reason,
                "message_count": message_count,
                "final_stage": final_stage
            }
        )


@dataclass
class ErrorOccurredEvent(InterviewEvent):
    """Event fired when an error occurs."""
    def __init__(self, conversation_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str, user_visible: bool = False):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            conversation_id=conversation_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component,
                "user_visible": user_visible
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Event bus for interview system communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """
        Subscribe to all events.

        Args:
            handler: Function to call for any event
        """
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Unsubscribe from specific event type.

        Args:
            event_type: Type of event to stop listening for
            handler: Handler function to remove
        """
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for conversation {event.conversation_id}")

        # Call specific handlers
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        # Call global handlers
        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class Subscription:
    """Handle returned by EventChannel.subscribe. Closing it is idempotent."""

    def __init__(self, channel: "EventChannel", handler: Callable):
        self._channel = channel
        self._handler = handler
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._channel._remove(self._handler)


class EventChannel(Generic[T]):
    """Typed point-to-point channel a component exposes to its consumers."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[[T], None]] = []

    def subscribe(self, handler: Callable[[T], None]) -> Subscription:
        self._handlers.append(handler)
        return Subscription(self, handler)

    def publish(self, item: T) -> None:
        for handler in list(self._handlers):
            try:
                handler(item)
            except Exception as e:
                logger.error(f"Error in {self.name} subscriber: {e}")

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def _remove(self, handler: Callable[[T], None]) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            logger.warning(f"Subscriber not found on {self.name}")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: InterviewEvent) -> None:
        """Log event details."""
        self.logger.info(f"Event: {event.event_type} | Conversation: {event.conversation_id} | Data: {event.data}")


class InterviewMetrics:
    """Collects metrics from interview events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: InterviewEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.INTERVIEW_STARTED:
            self.interviews_started += 1
        elif event.event_type == EventType.INTERVIEW_ENDED:
            self.interviews_ended += 1
        elif event.event_type == EventType.INTERVIEW_TERMINATED:
            self.interviews_terminated += 1
        elif event.event_type == EventType.MESSAGE_APPENDED:
            if event.data.get("sender") == "user":
                self.user_messages += 1
            else:
                self.interviewer_messages += 1
        elif event.event_type == EventType.SPEAKING_STARTED:
            self.utterances_spoken += 1
        elif event.event_type == EventType.WARNING_ISSUED:
            self.warnings_issued += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "interviews_started": self.interviews_started,
            "interviews_ended": self.interviews_ended,
            "interviews_terminated": self.interviews_terminated,
            "user_messages": self.user_messages,
            "interviewer_messages": self.interviewer_messages,
            "utterances_spoken": self.utterances_spoken,
            "warnings_issued": self.warnings_issued,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.interviews_started = 0
        self.interviews_ended = 0
        self.interviews_terminated = 0
        self.user_messages = 0
        self.interviewer_messages = 0
        self.utterances_spoken = 0
        self.warnings_issued = 0
        self.errors_occurred = 0
