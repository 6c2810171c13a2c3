import asyncio

import pytest

from conftest import wait_until
from voice_interview.interview.errors import SynthesisFailureKind
from voice_interview.interview.retry import RetryPolicy
from voice_interview.interview.synthesis import SynthesisQueue
from voice_interview.interview.testing import MockAudioPlayer, MockFallbackVoice, MockSynthesisEngine


def _queue(engine=None, player=None, fallback=None, muted: bool = False) -> SynthesisQueue:
    return SynthesisQueue(
        engine or MockSynthesisEngine(),
        player or MockAudioPlayer(),
        fallback=fallback,
        retry_policy=RetryPolicy(max_attempts=2, backoff=lambda attempt: 0.001),
        muted=muted,
    )


class BrokenSpeaker(MockAudioPlayer):
    async def play(self, audio: bytes) -> None:
        raise OSError("output device unavailable")


@pytest.mark.asyncio
async def test_items_play_in_order_one_at_a_time():
    player = MockAudioPlayer()
    queue = _queue(player=player)
    changes = []
    queue.speaking_changes.subscribe(changes.append)

    await asyncio.gather(queue.enqueue("first"), queue.enqueue("second"), queue.enqueue("third"))

    assert player.played == [b"AUDIO:first", b"AUDIO:second", b"AUDIO:third"]
    assert changes == [True, False, True, False, True, False]
    assert not queue.is_speaking
    assert not queue.is_processing
    assert queue.last_speech_time > 0


@pytest.mark.asyncio
async def test_repeated_text_is_synthesized_once():
    engine = MockSynthesisEngine()
    player = MockAudioPlayer()
    queue = _queue(engine=engine, player=player)

    await queue.enqueue("Hello there")
    await queue.enqueue("  hello THERE ")

    assert len(engine.calls) == 1
    assert queue.synthesis_calls == 1
    assert queue.cache_size == 1
    assert len(player.played) == 2


def test_cache_key_is_normalized_and_truncated():
    queue = SynthesisQueue(MockSynthesisEngine(), MockAudioPlayer(), cache_key_max_chars=5)

    assert queue.cache_key("  HELLO world ") == queue.cache_key("hello there")
    assert queue.cache_key("hello").endswith(queue.voice.voice_id)


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    engine = MockSynthesisEngine(failures=1)
    player = MockAudioPlayer()
    queue = _queue(engine=engine, player=player)

    await queue.enqueue("Let's begin")

    assert len(engine.calls) == 2
    assert player.played == [b"AUDIO:Let's begin"]


@pytest.mark.asyncio
async def test_exhausted_retries_fall_back_to_local_voice():
    engine = MockSynthesisEngine(failures=10)
    fallback = MockFallbackVoice()
    queue = _queue(engine=engine, fallback=fallback)
    errors = []
    queue.errors.subscribe(errors.append)

    await queue.enqueue("Tell me about yourself")

    assert len(engine.calls) == 3
    assert fallback.spoken == [("Tell me about yourself", 1.0)]
    assert errors == []
    assert queue.cache_size == 0


@pytest.mark.asyncio
async def test_undecodable_audio_is_not_cached():
    engine = MockSynthesisEngine(payload=b"BAD")
    fallback = MockFallbackVoice()
    queue = _queue(engine=engine, fallback=fallback)

    await queue.enqueue("Next question")

    assert queue.cache_size == 0
    assert fallback.spoken == [("Next question", 1.0)]


@pytest.mark.asyncio
async def test_playback_failure_uses_fallback():
    fallback = MockFallbackVoice()
    queue = _queue(player=BrokenSpeaker(), fallback=fallback)

    await queue.enqueue("Can you hear me?")

    assert fallback.spoken == [("Can you hear me?", 1.0)]


@pytest.mark.asyncio
async def test_failed_fallback_is_reported_and_item_resolves():
    queue = _queue(engine=MockSynthesisEngine(failures=10), fallback=MockFallbackVoice(fail=True))
    errors = []
    queue.errors.subscribe(errors.append)

    await asyncio.wait_for(queue.enqueue("Hello"), timeout=1.0)

    assert len(errors) == 1
    assert errors[0].kind == SynthesisFailureKind.TRANSPORT
    assert not queue.is_speaking


@pytest.mark.asyncio
async def test_missing_fallback_is_reported():
    queue = _queue(engine=MockSynthesisEngine(failures=10))
    errors = []
    queue.errors.subscribe(errors.append)

    await queue.enqueue("Hello")

    assert len(errors) == 1


@pytest.mark.asyncio
async def test_mute_silences_player_and_fallback():
    player = MockAudioPlayer()
    queue = _queue(player=player, muted=True)

    await queue.enqueue("Quiet please")
    assert player.gains == [0.0]

    queue.set_muted(False)
    assert player.gain == 1.0
    await queue.enqueue("Loud again")
    assert player.gains == [0.0, 1.0]

    fallback = MockFallbackVoice()
    muted_queue = _queue(engine=MockSynthesisEngine(failures=10), fallback=fallback, muted=True)
    await muted_queue.enqueue("Nobody hears this")
    assert fallback.spoken == [("Nobody hears this", 0.0)]


@pytest.mark.asyncio
async def test_stop_drains_pending_items():
    player = MockAudioPlayer(play_duration=5.0)
    fallback = MockFallbackVoice()
    queue = _queue(player=player, fallback=fallback)

    first = queue.enqueue("A long answer")
    second = queue.enqueue("Never spoken")
    await wait_until(lambda: queue.is_speaking and player.played)

    queue.stop()
    queue.stop()

    await asyncio.wait_for(asyncio.gather(first, second), timeout=1.0)
    assert player.played == [b"AUDIO:A long answer"]
    assert queue.pending_count == 0
    assert not queue.is_speaking
    assert not queue.is_processing
    assert fallback.cancel_count == 2

    player.play_duration = 0.01
    await asyncio.wait_for(queue.enqueue("After the stop"), timeout=1.0)
    assert player.played[-1] == b"AUDIO:After the stop"


@pytest.mark.asyncio
async def test_blank_text_resolves_immediately():
    engine = MockSynthesisEngine()
    queue = _queue(engine=engine)

    await queue.enqueue("   ")

    assert engine.calls == []
    assert not queue.is_processing


@pytest.mark.asyncio
async def test_preload_and_warmup_fill_the_cache():
    engine = MockSynthesisEngine()
    player = MockAudioPlayer()
    queue = _queue(engine=engine, player=player)

    cached = await queue.preload(["Welcome", "Next question", " welcome ", ""])

    assert cached == 2
    assert len(engine.calls) == 2
    assert await queue.warmup("Next question")
    assert len(engine.calls) == 2
    assert player.played == []

    queue.clear_cache()
    assert queue.cache_size == 0


@pytest.mark.asyncio
async def test_warmup_reports_failure():
    queue = _queue(engine=MockSynthesisEngine(failures=10))

    assert not await queue.warmup()


@pytest.mark.asyncio
async def test_preload_racing_playback_shares_one_engine_call():
    engine = MockSynthesisEngine(delay=0.05)
    player = MockAudioPlayer()
    queue = _queue(engine=engine, player=player)

    cached, _ = await asyncio.gather(
        queue.preload(["Tell me about yourself."]),
        queue.enqueue("tell me about yourself."),
    )

    assert cached == 1
    assert len(engine.calls) == 1
    assert len(player.played) == 1
    assert queue.cache_size == 1


@pytest.mark.asyncio
async def test_pause_holds_the_current_item_until_resumed():
    player = MockAudioPlayer(play_duration=0.05)
    fallback = MockFallbackVoice()
    queue = _queue(player=player, fallback=fallback)

    future = queue.enqueue("Take your time.")
    await wait_until(lambda: player.played)
    queue.pause()
    await asyncio.sleep(0.15)

    assert queue.paused
    assert queue.is_speaking
    assert not future.done()

    queue.resume()
    await asyncio.wait_for(future, timeout=1.0)
    assert not queue.is_speaking
    assert (player.pause_count, player.resume_count) == (1, 1)
    assert (fallback.pause_count, fallback.resume_count) == (1, 1)


@pytest.mark.asyncio
async def test_items_queued_while_paused_wait_for_resume():
    player = MockAudioPlayer()
    queue = _queue(player=player)
    queue.pause()
    queue.pause()

    future = queue.enqueue("Whenever you are ready.")
    await asyncio.sleep(0.05)
    assert player.played == []
    assert not future.done()

    queue.resume()
    await asyncio.wait_for(future, timeout=1.0)
    assert player.played == [b"AUDIO:Whenever you are ready."]
    assert player.pause_count == 1


@pytest.mark.asyncio
async def test_stop_while_paused_resolves_pending_items():
    queue = _queue()
    queue.pause()
    future = queue.enqueue("Never spoken")

    queue.stop()

    await asyncio.wait_for(future, timeout=1.0)
    assert queue.pending_count == 0
