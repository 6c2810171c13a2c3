"""
Continuous speech capture with confidence filtering and silence-based finalization.

The controller wraps a SpeechRecognitionEngine session. It emits interim and
finalized UtteranceFragments on `fragments`, restarts the engine after normal
session ends and transient failures, and stays silent while suspended.
"""
import time
import asyncio
import logging
from enum import Enum
from typing import List, Optional, Set, Tuple

from .errors import CaptureFailure, CaptureFailureKind
from .events import EventChannel
from .models import UtteranceFragment
from .retry import RetryPolicy, Scheduler, exponential_backoff
from .services import (
    RecognitionEnded,
    RecognitionError,
    RecognitionErrorCode,
    RecognitionResult,
    RecognitionSignal,
    SpeechRecognitionEngine,
)
from ..config import (
    CAPTURE_BACKOFF_BASE_SECONDS,
    CAPTURE_BACKOFF_MAX_SECONDS,
    CAPTURE_MAX_RETRIES,
    CONFIDENCE_THRESHOLD,
    RESUME_DEBOUNCE_MS,
    SILENCE_WINDOW_MS,
)

logger = logging.getLogger("capture")

_RETRYABLE = {
    RecognitionErrorCode.NETWORK: CaptureFailureKind.NETWORK,
    RecognitionErrorCode.OTHER: CaptureFailureKind.TRANSIENT,
}


class CaptureStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"


class CaptureController:
    """Drives one recognition engine on behalf of the turn coordinator."""

    def __init__(self,
                 engine: SpeechRecognitionEngine,
                 confidence_threshold: float = CONFIDENCE_THRESHOLD,
                 silence_window: float = SILENCE_WINDOW_MS / 1000.0,
                 resume_debounce: float = RESUME_DEBOUNCE_MS / 1000.0,
                 retry_policy: Optional[RetryPolicy] = None,
                 scheduler: Optional[Scheduler] = None):
        self.engine = engine
        self.confidence_threshold = confidence_threshold
        self.silence_window = silence_window
        self.resume_debounce = resume_debounce
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=CAPTURE_MAX_RETRIES,
            backoff=exponential_backoff(CAPTURE_BACKOFF_BASE_SECONDS, CAPTURE_BACKOFF_MAX_SECONDS),
        )
        self.scheduler = scheduler or Scheduler()

        self.fragments: EventChannel[UtteranceFragment] = EventChannel("capture.fragments")
        self.errors: EventChannel[CaptureFailure] = EventChannel("capture.errors")

        self._status = CaptureStatus.IDLE
        self._enabled = False
        self._suspended = False
        self._generation = 0
        self._retry_count = 0
        self._spans: List[Tuple[str, float]] = []
        self._silence_timer: Optional[asyncio.TimerHandle] = None
        self._restart_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self.last_activity: Optional[float] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> CaptureStatus:
        return self._status

    @property
    def is_listening(self) -> bool:
        return self._status == CaptureStatus.LISTENING

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def pending_text(self) -> str:
        return " ".join(text for text, _ in self._spans)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Enable capture and open a session unless suspended or already running."""
        if not self._enabled:
            logger.info("Capture enabled")
        self._enabled = True
        self._retry_count = 0
        if self._suspended:
            return
        await self._open_session()

    async def stop(self) -> None:
        """Disable capture and tear down any session. Safe to call repeatedly."""
        if self._enabled:
            logger.info("Capture disabled")
        self._enabled = False
        await self._teardown()

    async def set_suspended(self, suspended: bool) -> None:
        """
        Suspend or resume capture around interviewer speech.

        Suspending tears down the session and discards accumulated text.
        Resuming reopens the session after the resume debounce.
        """
        if suspended == self._suspended:
            return
        self._suspended = suspended
        if suspended:
            logger.debug("Capture suspended")
            await self._teardown()
            return

        logger.debug("Capture resumed")
        if self._enabled:
            self._schedule_restart(self.resume_debounce)

    async def close(self) -> None:
        """Stop capture and wait for background restarts to settle."""
        await self.stop()
        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _open_session(self) -> None:
        if not self._enabled or self._suspended or self._status != CaptureStatus.IDLE:
            return

        self._cancel_restart()
        self._status = CaptureStatus.STARTING
        self._generation += 1
        generation = self._generation

        def sink(signal: RecognitionSignal) -> None:
            self._on_signal(generation, signal)

        try:
            await self.engine.start(sink)
        except Exception as e:
            if generation != self._generation:
                return
            self._status = CaptureStatus.IDLE
            logger.warning(f"Recognition engine failed to start: {e}")
            self._retry(CaptureFailureKind.TRANSIENT, f"engine failed to start: {e}")
            return

        if generation != self._generation:
            # Torn down while starting
            await self._stop_engine()
            return

        self._status = CaptureStatus.LISTENING
        logger.debug(f"Recognition session {generation} listening")

    async def _teardown(self) -> None:
        self._cancel_silence()
        self._cancel_restart()
        self._spans.clear()
        self._generation += 1
        was_running = self._status != CaptureStatus.IDLE
        self._status = CaptureStatus.IDLE
        if was_running:
            await self._stop_engine()

    async def _stop_engine(self) -> None:
        try:
            await self.engine.stop()
        except Exception as e:
            logger.warning(f"Error stopping recognition engine: {e}")

    def _end_session(self) -> None:
        """Forget the current session without awaiting the engine."""
        self._cancel_silence()
        self._generation += 1
        was_running = self._status != CaptureStatus.IDLE
        self._status = CaptureStatus.IDLE
        if was_running:
            self._spawn(self._stop_engine())

    # ------------------------------------------------------------------
    # Engine signals
    # ------------------------------------------------------------------

    def _on_signal(self, generation: int, signal: RecognitionSignal) -> None:
        if generation != self._generation:
            logger.debug(f"Ignoring {type(signal).__name__} from stale session {generation}")
            return

        if isinstance(signal, RecognitionResult):
            self._on_result(signal)
        elif isinstance(signal, RecognitionError):
            self._on_error(signal)
        elif isinstance(signal, RecognitionEnded):
            self._on_ended()

    def _on_result(self, result: RecognitionResult) -> None:
        if self._suspended:
            return

        self.last_activity = time.time()
        self._retry_count = 0

        interim: Optional[Tuple[str, float]] = None
        for alternative in list(result.results)[result.result_index:]:
            if alternative.confidence < self.confidence_threshold:
                logger.debug(f"Dropped low-confidence span ({alternative.confidence:.2f})")
                continue
            text = alternative.transcript.strip()
            if not text:
                continue
            if alternative.is_final:
                self._spans.append((text, alternative.confidence))
            else:
                interim = (text, alternative.confidence)

        if interim is not None:
            self.fragments.publish(UtteranceFragment(text=interim[0], is_partial=True, confidence=interim[1]))

        # Any recognition activity pushes finalization out by one silence window
        self._cancel_silence()
        generation = self._generation
        self._silence_timer = self.scheduler.call_later(self.silence_window, self._on_silence, generation)

    def _on_error(self, error: RecognitionError) -> None:
        code = error.code
        if code in (RecognitionErrorCode.ABORTED, RecognitionErrorCode.NO_SPEECH):
            logger.debug(f"Ignoring recognition error: {code.value}")
            return

        logger.warning(f"Recognition error: {code.value} {error.message}".rstrip())
        self._flush()
        self._end_session()

        if code == RecognitionErrorCode.PERMISSION_DENIED:
            self._enabled = False
            self._cancel_restart()
            failure = CaptureFailure(CaptureFailureKind.PERMISSION, error.message or "Microphone access denied")
            logger.error(f"Capture disabled: {failure}")
            self.errors.publish(failure)
            return

        self._retry(_RETRYABLE.get(code, CaptureFailureKind.TRANSIENT), error.message or code.value)

    def _on_ended(self) -> None:
        logger.debug("Recognition session ended")
        self._flush()
        self._cancel_silence()
        self._generation += 1
        self._status = CaptureStatus.IDLE
        if self._enabled and not self._suspended and self._restart_timer is None:
            self._schedule_restart(self.resume_debounce)

    def _on_silence(self, generation: int) -> None:
        self._silence_timer = None
        if generation != self._generation or self._suspended:
            return
        self._flush()

    def _flush(self) -> None:
        self._cancel_silence()
        if not self._spans or self._suspended:
            self._spans.clear()
            return
        text = " ".join(span for span, _ in self._spans).strip()
        confidence = min(c for _, c in self._spans)
        self._spans.clear()
        if text:
            logger.info(f"Finalized utterance: {text}")
            self.fragments.publish(UtteranceFragment(text=text, is_partial=False, confidence=confidence))

    # ------------------------------------------------------------------
    # Retry and timers
    # ------------------------------------------------------------------

    def _retry(self, kind: CaptureFailureKind, reason: str) -> None:
        self._retry_count += 1
        if not self.retry_policy.allows(self._retry_count):
            self._enabled = False
            self._cancel_restart()
            failure = CaptureFailure(
                kind, f"Recognition failed after {self.retry_policy.max_attempts} retries: {reason}"
            )
            logger.error(str(failure))
            self.errors.publish(failure)
            return

        delay = self.retry_policy.delay_for(self._retry_count)
        logger.info(f"Restarting recognition in {delay:.2f}s (retry {self._retry_count})")
        self._schedule_restart(delay)

    def _schedule_restart(self, delay: float) -> None:
        self._cancel_restart()
        self._restart_timer = self.scheduler.call_later(delay, self._restart)

    def _restart(self) -> None:
        self._restart_timer = None
        self._spawn(self._open_session())

    def _spawn(self, coro) -> None:
        task = self.scheduler.spawn(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_silence(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def _cancel_restart(self) -> None:
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None
