"""
Turn coordination: the single authority on whose turn it is.

The coordinator owns the Transcript and the TurnState. It suspends capture
while the interviewer speaks, runs every finalized utterance through the
moderation gate and the dialogue service in arrival order, and hands replies
to the synthesis queue.
"""
import time
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, FrozenSet, List, Optional, Set

from .capture import CaptureController
from .errors import CaptureFailure, DialogueFailure, DialogueFailureKind, SynthesisFailure, TurnStateError
from .events import (
    EventChannel,
    ErrorOccurredEvent,
    InterviewEndedEvent,
    InterviewEventBus,
    InterviewStartedEvent,
    InterviewTerminatedEvent,
    MessageAppendedEvent,
    SpeakingEndedEvent,
    SpeakingStartedEvent,
    StateChangedEvent,
    Subscription,
    WarningIssuedEvent,
)
from .models import (
    EscalationState,
    InterviewResult,
    InterviewStage,
    Message,
    MessageKind,
    Sender,
    Transcript,
    TurnState,
    UtteranceFragment,
)
from .policy import DialogueTurnPolicy, PolicyAction, determine_stage
from .prompts import PromptFormatter
from .retry import Scheduler
from .services import DialogueReplyService, TranscriptSink
from .synthesis import SynthesisQueue
from ..config import DIALOGUE_TIMEOUT_SECONDS, InterviewerPersona

logger = logging.getLogger("coordinator")


_TRANSITIONS: Dict[TurnState, FrozenSet[TurnState]] = {
    TurnState.IDLE: frozenset({TurnState.SPEAKING, TurnState.ENDED}),
    TurnState.LISTENING: frozenset({TurnState.PROCESSING, TurnState.ENDED}),
    TurnState.PROCESSING: frozenset({TurnState.SPEAKING, TurnState.ENDED}),
    TurnState.SPEAKING: frozenset({TurnState.LISTENING, TurnState.PROCESSING, TurnState.ENDED}),
    TurnState.ENDED: frozenset(),
}


@dataclass(frozen=True)
class _PendingUtterance:
    sequence: int
    text: str
    captured_at: float


class TurnCoordinator:
    """
    Sequences candidate utterances against interviewer speech.

    Capture is suspended whenever the interviewer speaks and resumed once the
    reply finished playing and nothing else is queued, so the two parties never
    talk over each other.
    """

    def __init__(self,
                 capture: CaptureController,
                 synthesis: SynthesisQueue,
                 dialogue: DialogueReplyService,
                 policy: DialogueTurnPolicy,
                 persona: Optional[InterviewerPersona] = None,
                 interview_type: str = "technical",
                 candidate_name: str = "there",
                 conversation_id: str = "unknown",
                 event_bus: Optional[InterviewEventBus] = None,
                 transcript_sink: Optional[TranscriptSink] = None,
                 dialogue_timeout: float = DIALOGUE_TIMEOUT_SECONDS,
                 scheduler: Optional[Scheduler] = None,
                 greeting: Optional[str] = None):
        self.capture = capture
        self.synthesis = synthesis
        self.dialogue = dialogue
        self.policy = policy
        self.persona = persona or InterviewerPersona()
        self.interview_type = interview_type
        self.candidate_name = candidate_name
        self.conversation_id = conversation_id
        self.event_bus = event_bus or InterviewEventBus()
        self.transcript_sink = transcript_sink
        self.dialogue_timeout = dialogue_timeout
        self.scheduler = scheduler or Scheduler()
        self.greeting = greeting

        self.transcript = Transcript()
        self.partial_text = ""
        self.state_changes: EventChannel[TurnState] = EventChannel("coordinator.state")

        self._state = TurnState.IDLE
        self._escalation = EscalationState()
        self._pending: Deque[_PendingUtterance] = deque()
        self._sequence = 0
        self._last_final_text: Optional[str] = None
        self._worker: Optional[asyncio.Task] = None
        self._subscriptions: List[Subscription] = []
        self._sink_tasks: Set[asyncio.Task] = set()
        self._capture_enabled = True
        self._end_reason = ""
        self._ended = asyncio.Event()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == TurnState.LISTENING

    @property
    def is_processing(self) -> bool:
        return self._state == TurnState.PROCESSING

    @property
    def is_speaking(self) -> bool:
        return self._state == TurnState.SPEAKING

    @property
    def ended(self) -> bool:
        return self._state == TurnState.ENDED

    @property
    def escalation(self) -> EscalationState:
        return self._escalation

    @property
    def stage(self) -> InterviewStage:
        return determine_stage(len(self.transcript))

    @property
    def end_reason(self) -> str:
        return self._end_reason

    @property
    def capture_enabled(self) -> bool:
        return self._capture_enabled

    def result(self) -> InterviewResult:
        return InterviewResult(
            messages=self.transcript.snapshot(),
            end_reason=self._end_reason,
            warning_count=self._escalation.warning_count,
            final_stage=self.stage,
            terminated=self._escalation.ended,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> None:
        """Greet the candidate with capture suspended, then start listening."""
        if self._state != TurnState.IDLE:
            raise TurnStateError(f"join() requires {TurnState.IDLE.value}, state is {self._state.value}")

        self._subscriptions = [
            self.capture.fragments.subscribe(self._on_fragment),
            self.capture.errors.subscribe(self._on_capture_failure),
            self.synthesis.errors.subscribe(self._on_synthesis_failure),
            self.synthesis.speaking_changes.subscribe(self._on_speaking_change),
        ]
        self.event_bus.emit(InterviewStartedEvent(
            self.conversation_id, time.time(), self.interview_type, self.candidate_name
        ))
        logger.info(f"Candidate joined {self.interview_type} interview {self.conversation_id}")

        greeting = self.greeting or PromptFormatter.initial_greeting(
            self.interview_type, self.candidate_name, self.persona.name
        )
        await self.capture.set_suspended(True)
        if self._capture_enabled:
            await self.capture.start()
        self._transition(TurnState.SPEAKING)
        self._append(Message(text=greeting, sender=Sender.INTERVIEWER))
        await self.synthesis.enqueue(greeting)

        if self.ended:
            return
        if self._pending:
            self._start_worker()
        else:
            await self._listen()

    async def end(self, reason: str = "ended") -> None:
        """Stop everything and latch the ENDED state. Safe to call repeatedly."""
        if self._state == TurnState.ENDED:
            return

        self._end_reason = reason
        self._transition(TurnState.ENDED)
        logger.info(f"Interview ended: {reason}")

        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []

        worker, self._worker = self._worker, None
        if worker is not None and worker is not asyncio.current_task() and not worker.done():
            worker.cancel()
        self._pending.clear()

        self.synthesis.stop()
        await self.capture.stop()

        self.event_bus.emit(InterviewEndedEvent(
            self.conversation_id, time.time(), reason, len(self.transcript), self.stage.value
        ))
        self._ended.set()

    async def wait_ended(self) -> InterviewResult:
        await self._ended.wait()
        return self.result()

    async def flush_sink(self) -> None:
        """Wait for outstanding transcript writes."""
        tasks = [t for t in self._sink_tasks if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def submit_text(self, text: str) -> None:
        """Inject a typed utterance through the same pipeline as speech."""
        if self.ended:
            logger.warning("Ignoring typed utterance after interview ended")
            return
        text = (text or "").strip()
        if not text:
            return
        self._enqueue_utterance(text, time.time())

    async def set_capture_enabled(self, enabled: bool) -> None:
        """Toggle the microphone."""
        self._capture_enabled = enabled
        if self.ended or self._state == TurnState.IDLE:
            return
        if enabled:
            await self.capture.start()
        else:
            await self.capture.stop()
        logger.info("Microphone enabled" if enabled else "Microphone disabled")

    def set_muted(self, muted: bool) -> None:
        self.synthesis.set_muted(muted)

    def set_paused(self, paused: bool) -> None:
        """Hold or continue interviewer speech. Pending replies wait while paused."""
        if paused:
            self.synthesis.pause()
        else:
            self.synthesis.resume()

    # ------------------------------------------------------------------
    # Inbound utterances
    # ------------------------------------------------------------------

    def _on_fragment(self, fragment: UtteranceFragment) -> None:
        if self.ended:
            return
        if fragment.is_partial:
            self.partial_text = fragment.text
            return

        self.partial_text = ""
        text = fragment.text.strip()
        if not text:
            return
        if text == self._last_final_text:
            logger.debug(f"Dropping duplicate utterance: {text}")
            return
        self._last_final_text = text
        self._enqueue_utterance(text, fragment.captured_at)

    def _enqueue_utterance(self, text: str, captured_at: float) -> None:
        self._sequence += 1
        self._pending.append(_PendingUtterance(self._sequence, text, captured_at))
        logger.debug(f"Queued utterance #{self._sequence} ({len(self._pending)} pending)")
        if self._worker is None and self._state == TurnState.LISTENING:
            self._start_worker()

    def _start_worker(self) -> None:
        self._worker = self.scheduler.spawn(self._run_turns())

    async def _run_turns(self) -> None:
        me = asyncio.current_task()
        try:
            while not self.ended:
                if not self._pending:
                    if self._state == TurnState.SPEAKING:
                        await self._listen()
                    if not self._pending:
                        break
                    continue
                item = self._pending.popleft()
                await self._take_turn(item)
        finally:
            if self._worker is me:
                self._worker = None

    async def _take_turn(self, item: _PendingUtterance) -> None:
        # Stage reflects the transcript before this utterance is added
        stage = determine_stage(len(self.transcript))
        self._transition(TurnState.PROCESSING)

        decision = self.policy.decide(item.text, stage, self._escalation)
        escalation = decision.as_escalation()
        if escalation is not None:
            logger.warning(f"Utterance #{item.sequence}: {escalation}")
        if decision.action == PolicyAction.WARN:
            self._escalation = decision.escalation
            self.event_bus.emit(WarningIssuedEvent(
                self.conversation_id, time.time(), self._escalation.warning_count
            ))
            await self._speak(self.persona.warning_message, MessageKind.WARNING)
            return
        if decision.action == PolicyAction.TERMINATE:
            self._escalation = decision.escalation
            self.event_bus.emit(InterviewTerminatedEvent(
                self.conversation_id, time.time(), "inappropriate_language",
                self.result().turn_count, self._escalation.warning_count
            ))
            await self._speak(self.persona.termination_message, MessageKind.ERROR)
            await self.end("terminated")
            return

        history = self.transcript.snapshot()
        self._append(Message(text=item.text, sender=Sender.USER, timestamp=item.captured_at))

        reply, kind = await self._generate_reply(item.text, history, stage)
        if self.ended:
            return
        await self._speak(reply, kind)

    async def _generate_reply(self, text: str, history, stage: InterviewStage):
        try:
            reply = await asyncio.wait_for(
                self.dialogue.generate_reply(text, history, stage, self._escalation),
                timeout=self.dialogue_timeout,
            )
            reply = (reply or "").strip()
            if not reply:
                raise DialogueFailure(DialogueFailureKind.MALFORMED, "empty reply")
            return reply, MessageKind.REGULAR
        except asyncio.TimeoutError:
            logger.error(f"Dialogue reply timed out after {self.dialogue_timeout}s")
        except Exception as e:
            logger.error(f"Dialogue reply failed: {e}")
        return self.persona.apology_message, MessageKind.ERROR

    # ------------------------------------------------------------------
    # Outbound speech
    # ------------------------------------------------------------------

    async def _speak(self, text: str, kind: MessageKind) -> None:
        if self.ended:
            return
        await self.capture.set_suspended(True)
        if self.ended:
            return
        self._append(Message(text=text, sender=Sender.INTERVIEWER, kind=kind))
        self._transition(TurnState.SPEAKING)
        await self.synthesis.enqueue(text)

    async def _listen(self) -> None:
        self._transition(TurnState.LISTENING)
        await self.capture.set_suspended(False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, new_state: TurnState) -> None:
        previous = self._state
        if new_state not in _TRANSITIONS[previous]:
            raise TurnStateError(f"Illegal turn transition {previous.value} -> {new_state.value}")
        self._state = new_state
        logger.debug(f"Turn state {previous.value} -> {new_state.value}")
        self.state_changes.publish(new_state)
        self.event_bus.emit(StateChangedEvent(
            self.conversation_id, time.time(), previous.value, new_state.value
        ))

    def _append(self, message: Message) -> None:
        position = self.transcript.append(message)
        self.event_bus.emit(MessageAppendedEvent(
            self.conversation_id, time.time(), position,
            message.sender.value, message.kind.value, message.text
        ))
        if self.transcript_sink is not None:
            task = self.scheduler.spawn(self._record(message))
            self._sink_tasks.add(task)
            task.add_done_callback(self._sink_tasks.discard)

    async def _record(self, message: Message) -> None:
        try:
            await self.transcript_sink.record_message(message)
        except Exception as e:
            logger.error(f"Transcript sink failed for message {message.id}: {e}")

    def _on_capture_failure(self, failure: CaptureFailure) -> None:
        # Capture disables itself on fatal or exhausted failures
        self._capture_enabled = self.capture.enabled
        self.event_bus.emit(ErrorOccurredEvent(
            self.conversation_id, time.time(), f"capture_{failure.kind.value}",
            str(failure), "capture", user_visible=True
        ))

    def _on_synthesis_failure(self, failure: SynthesisFailure) -> None:
        self.event_bus.emit(ErrorOccurredEvent(
            self.conversation_id, time.time(), f"synthesis_{failure.kind.value}",
            str(failure), "synthesis", user_visible=True
        ))

    def _on_speaking_change(self, speaking: bool) -> None:
        event_type = SpeakingStartedEvent if speaking else SpeakingEndedEvent
        self.event_bus.emit(event_type(self.conversation_id, time.time()))
