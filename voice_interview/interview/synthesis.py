"""
Serialized interviewer speech: synthesis, caching, playback and local fallback.
"""
import time
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Iterable, List, Optional

from .errors import SynthesisFailure, SynthesisFailureKind
from .events import EventChannel
from .models import AudioCacheEntry
from .retry import RetryPolicy, Scheduler, exponential_backoff
from .services import AudioPlayer, LocalSynthesisFallback, SpeechSynthesisEngine, VoiceConfig
from ..config import (
    CACHE_KEY_MAX_CHARS,
    InterviewerPersona,
    SYNTHESIS_BACKOFF_BASE_SECONDS,
    SYNTHESIS_BACKOFF_MAX_SECONDS,
    SYNTHESIS_MAX_RETRIES,
)

logger = logging.getLogger("synthesis")


@dataclass
class _QueueItem:
    text: str
    future: asyncio.Future


class SynthesisQueue:
    """
    FIFO of interviewer utterances with exactly one item speaking at a time.

    `enqueue()` returns an awaitable that resolves once the item finished
    playing, fell back to local speech, failed irrecoverably, or was drained
    by `stop()`. It stays pending while the queue is paused and never raises.
    """

    def __init__(self,
                 engine: SpeechSynthesisEngine,
                 player: AudioPlayer,
                 fallback: Optional[LocalSynthesisFallback] = None,
                 voice: Optional[VoiceConfig] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 scheduler: Optional[Scheduler] = None,
                 cache_key_max_chars: int = CACHE_KEY_MAX_CHARS,
                 muted: bool = False):
        self.engine = engine
        self.player = player
        self.fallback = fallback
        self.voice = voice or VoiceConfig()
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=SYNTHESIS_MAX_RETRIES,
            backoff=exponential_backoff(SYNTHESIS_BACKOFF_BASE_SECONDS, SYNTHESIS_BACKOFF_MAX_SECONDS),
        )
        self.scheduler = scheduler or Scheduler()
        self.cache_key_max_chars = cache_key_max_chars

        self.speaking_changes: EventChannel[bool] = EventChannel("synthesis.speaking")
        self.errors: EventChannel[SynthesisFailure] = EventChannel("synthesis.errors")

        self._pending: Deque[_QueueItem] = deque()
        self._current: Optional[_QueueItem] = None
        self._processing = False
        self._worker: Optional[asyncio.Task] = None
        self._speaking = False
        self._muted = muted
        self._paused = False
        self._unpaused = asyncio.Event()
        self._unpaused.set()
        self._cache: Dict[str, AudioCacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self._last_speech_time: float = 0.0
        self.synthesis_calls = 0

        self.player.gain = 0.0 if muted else 1.0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def last_speech_time(self) -> float:
        """Wall-clock time the last item finished, or 0.0 if nothing was spoken yet."""
        return self._last_speech_time

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cache_key(self, text: str) -> str:
        normalized = text.lower().strip()
        return f"voice_{normalized[:self.cache_key_max_chars]}_{self.voice.voice_id}"

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(self, text: str) -> asyncio.Future:
        """
        Queue text for speech.

        Args:
            text: Interviewer line to speak

        Returns:
            Future resolving to None when the item is done
        """
        future = self.scheduler.loop.create_future()
        if not text or not text.strip():
            future.set_result(None)
            return future

        self._pending.append(_QueueItem(text=text, future=future))
        logger.debug(f"Queued speech ({len(self._pending)} pending): {text[:60]}")

        if not self._processing:
            self._processing = True
            self._worker = self.scheduler.spawn(self._drain())
        return future

    def stop(self) -> None:
        """Abort current speech and drain pending items without speaking them."""
        drained = list(self._pending)
        self._pending.clear()
        current, self._current = self._current, None
        worker, self._worker = self._worker, None
        self._processing = False

        self.player.stop()
        if self.fallback is not None:
            self.fallback.cancel()

        for item in drained + ([current] if current else []):
            if not item.future.done():
                item.future.set_result(None)

        if worker is not None and not worker.done():
            worker.cancel()

        self._set_speaking(False)
        if drained or current or worker:
            logger.info(f"Synthesis stopped, drained {len(drained)} pending item(s)")

    def set_muted(self, muted: bool) -> None:
        """Silence output without changing queue timing."""
        self._muted = muted
        self.player.gain = 0.0 if muted else 1.0
        logger.info("Interviewer audio muted" if muted else "Interviewer audio unmuted")

    def pause(self) -> None:
        """Hold the current item and everything queued behind it until `resume()`."""
        if self._paused:
            return
        self._paused = True
        self._unpaused.clear()
        self.player.pause()
        if self.fallback is not None:
            self.fallback.pause()
        logger.info("Interviewer speech paused")

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self.player.resume()
        if self.fallback is not None:
            self.fallback.resume()
        self._unpaused.set()
        logger.info("Interviewer speech resumed")

    def clear_cache(self) -> None:
        self._cache.clear()

    async def warmup(self, text: Optional[str] = None) -> bool:
        """Synthesize and cache a line without playing it."""
        text = text or InterviewerPersona().warmup_message
        audio = await self._fetch_audio(text)
        if audio is None:
            logger.warning("Synthesis warmup failed")
            return False
        return True

    async def preload(self, texts: Iterable[str]) -> int:
        """
        Cache several lines concurrently.

        Returns:
            Number of lines that are cached afterwards
        """
        unique: Dict[str, str] = {}
        for text in texts:
            if text and text.strip():
                unique.setdefault(self.cache_key(text), text)

        missing: List[str] = [t for k, t in unique.items() if k not in self._cache]
        if missing:
            results = await asyncio.gather(*(self._fetch_audio(t) for t in missing), return_exceptions=True)
            for text, result in zip(missing, results):
                if result is None or isinstance(result, BaseException):
                    logger.error(f"Failed to preload voice for text: {text[:60]}")
        return sum(1 for k in unique if k in self._cache)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _drain(self) -> None:
        me = asyncio.current_task()
        try:
            while self._pending:
                await self._unpaused.wait()
                if not self._pending:
                    break
                item = self._pending.popleft()
                self._current = item
                try:
                    await self._speak(item.text)
                finally:
                    if self._current is item:
                        self._current = None
                    if not item.future.done():
                        item.future.set_result(None)
        finally:
            if self._worker is me:
                self._worker = None
                self._processing = False

    async def _speak(self, text: str) -> None:
        self._set_speaking(True)
        try:
            audio = await self._fetch_audio(text)
            if audio is not None:
                try:
                    if self.player.is_active:
                        self.player.stop()
                    self.player.gain = 0.0 if self._muted else 1.0
                    await self.player.play(audio)
                    return
                except Exception as e:
                    logger.error(f"Playback failed, using local fallback: {e}")
            await self._speak_fallback(text)
        finally:
            self._last_speech_time = time.time()
            if self._worker is None or self._worker is asyncio.current_task():
                self._set_speaking(False)

    async def _fetch_audio(self, text: str) -> Optional[Any]:
        """Return decoded audio from cache or the engine, or None once retries run out."""
        key = self.cache_key(text)
        entry = self._cache.get(key)
        if entry is not None:
            try:
                return await self.player.decode(entry.audio)
            except Exception as e:
                logger.error(f"Cached audio failed to decode: {e}")
                return None

        # Concurrent requests for the same line share one engine call
        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = self.scheduler.loop.create_future()
        self._inflight[key] = future
        audio = None
        try:
            audio = await self._synthesize(text, key)
            return audio
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
            if not future.done():
                future.set_result(audio)

    async def _synthesize(self, text: str, key: str) -> Optional[Any]:
        attempt = 0
        while True:
            try:
                self.synthesis_calls += 1
                payload = await self.engine.synthesize(text, self.voice)
                if not payload:
                    raise SynthesisFailure(SynthesisFailureKind.TRANSPORT, "empty audio payload")
                try:
                    audio = await self.player.decode(payload)
                except Exception as e:
                    raise SynthesisFailure(SynthesisFailureKind.DECODE, f"undecodable audio: {e}")
                if key not in self._cache:
                    self._cache[key] = AudioCacheEntry(key=key, voice_id=self.voice.voice_id, audio=payload)
                return audio
            except Exception as e:
                failure = e if isinstance(e, SynthesisFailure) else SynthesisFailure(
                    SynthesisFailureKind.TRANSPORT, str(e)
                )
                attempt += 1
                if not self.retry_policy.allows(attempt):
                    logger.error(f"Speech synthesis failed after {self.retry_policy.max_attempts} retries: {failure}")
                    return None
                delay = self.retry_policy.delay_for(attempt)
                logger.warning(f"Speech synthesis failed ({failure.kind.value}), retry {attempt} in {delay:.2f}s")
                await self.scheduler.sleep(delay)

    async def _speak_fallback(self, text: str) -> None:
        if self.fallback is None:
            failure = SynthesisFailure(SynthesisFailureKind.TRANSPORT, "no audio and no local fallback")
            logger.error(str(failure))
            self.errors.publish(failure)
            return
        try:
            await self.fallback.speak(text, volume=0.0 if self._muted else 1.0)
        except Exception as e:
            failure = SynthesisFailure(SynthesisFailureKind.TRANSPORT, f"local fallback failed: {e}")
            logger.error(str(failure))
            self.errors.publish(failure)

    def _set_speaking(self, speaking: bool) -> None:
        if speaking == self._speaking:
            return
        self._speaking = speaking
        self.speaking_changes.publish(speaking)
