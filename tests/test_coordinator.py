import asyncio
from types import SimpleNamespace

import pytest

from conftest import wait_until
from voice_interview.interview.capture import CaptureController
from voice_interview.interview.coordinator import TurnCoordinator
from voice_interview.interview.errors import TurnStateError
from voice_interview.interview.events import EventType, InterviewEventBus
from voice_interview.interview.models import InterviewStage, MessageKind, Sender, TurnState
from voice_interview.interview.policy import DialogueTurnPolicy
from voice_interview.interview.retry import RetryPolicy
from voice_interview.interview.services import KeywordModerationCheck, RecognitionErrorCode
from voice_interview.interview.synthesis import SynthesisQueue
from voice_interview.interview.testing import (
    MockAudioPlayer,
    MockDialogueService,
    MockFallbackVoice,
    MockRecognitionEngine,
    MockSynthesisEngine,
    MockTranscriptSink,
)

GREETING = "Hi, I'm Mike. Let's get started."


def _build(replies=None, delays=None, sink=None, play_duration: float = 0.01, dialogue_timeout: float = 0.5):
    engine = MockRecognitionEngine()
    capture = CaptureController(
        engine,
        confidence_threshold=0.5,
        silence_window=0.05,
        resume_debounce=0.01,
        retry_policy=RetryPolicy(max_attempts=3, backoff=lambda attempt: 0.01),
    )
    player = MockAudioPlayer(play_duration=play_duration)
    synthesis = SynthesisQueue(
        MockSynthesisEngine(),
        player,
        fallback=MockFallbackVoice(),
        retry_policy=RetryPolicy(max_attempts=1, backoff=lambda attempt: 0.001),
    )
    dialogue = MockDialogueService(replies, delays)
    bus = InterviewEventBus()
    events = []
    bus.subscribe_all(events.append)
    coordinator = TurnCoordinator(
        capture,
        synthesis,
        dialogue,
        DialogueTurnPolicy(KeywordModerationCheck(["heck"]), warning_limit=2),
        conversation_id="conv_test",
        event_bus=bus,
        transcript_sink=sink,
        dialogue_timeout=dialogue_timeout,
        greeting=GREETING,
    )

    # Record capture activity at every transition into SPEAKING
    speaking_snapshots = []

    def on_state(state):
        if state == TurnState.SPEAKING:
            speaking_snapshots.append((capture.suspended, engine.running))

    coordinator.state_changes.subscribe(on_state)
    return SimpleNamespace(
        engine=engine, capture=capture, player=player, synthesis=synthesis,
        dialogue=dialogue, events=events, coordinator=coordinator,
        speaking_snapshots=speaking_snapshots,
    )


def _texts(coordinator):
    return [m.text for m in coordinator.transcript]


def _events(env, event_type):
    return [e for e in env.events if e.event_type == event_type]


async def _joined(env):
    await env.coordinator.join()
    await wait_until(lambda: env.coordinator.is_listening and env.capture.is_listening)


@pytest.mark.asyncio
async def test_spoken_answer_gets_a_reply():
    env = _build(replies=["Good. Why recursion?"])
    await _joined(env)

    env.engine.partial("hello wor", 0.9)
    assert env.coordinator.partial_text == "hello wor"
    env.engine.final("hello world", 0.9)

    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.coordinator.is_listening)
    transcript = env.coordinator.transcript
    assert _texts(env.coordinator) == [GREETING, "hello world", "Good. Why recursion?"]
    assert [m.sender for m in transcript] == [Sender.INTERVIEWER, Sender.USER, Sender.INTERVIEWER]
    assert env.coordinator.partial_text == ""

    call = env.dialogue.calls[0]
    assert call["text"] == "hello world"
    assert [m.text for m in call["history"]] == [GREETING]
    assert call["stage"] == InterviewStage.INITIAL_ASSESSMENT

    assert env.player.played == [b"AUDIO:" + GREETING.encode(), b"AUDIO:Good. Why recursion?"]
    assert env.speaking_snapshots
    assert all(suspended and not running for suspended, running in env.speaking_snapshots)
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_dialogue_failure_apologizes_and_listens_again():
    env = _build(replies=[RuntimeError("model unavailable")])
    await _joined(env)

    env.coordinator.submit_text("My answer")
    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.coordinator.is_listening)

    reply = env.coordinator.transcript[2]
    assert reply.text == env.coordinator.persona.apology_message
    assert reply.kind == MessageKind.ERROR
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_dialogue_timeout_apologizes():
    env = _build(delays=[2.0], dialogue_timeout=0.1)
    await _joined(env)

    env.coordinator.submit_text("A slow question")
    await wait_until(lambda: len(env.coordinator.transcript) == 3)

    assert env.coordinator.transcript[2].kind == MessageKind.ERROR
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_empty_reply_is_treated_as_failure():
    env = _build(replies=["   "])
    await _joined(env)

    env.coordinator.submit_text("Hello?")
    await wait_until(lambda: len(env.coordinator.transcript) == 3)

    assert env.coordinator.transcript[2].text == env.coordinator.persona.apology_message
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_utterances_are_answered_in_arrival_order():
    env = _build(replies=["reply one", "reply two"], delays=[0.2, 0.0])
    await _joined(env)

    env.coordinator.submit_text("one")
    env.coordinator.submit_text("two")
    await wait_until(lambda: len(env.coordinator.transcript) == 5 and env.coordinator.is_listening)

    assert _texts(env.coordinator) == [GREETING, "one", "reply one", "two", "reply two"]
    assert [m.text for m in env.dialogue.calls[1]["history"]] == [GREETING, "one", "reply one"]
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_answer_given_during_greeting_waits_for_it():
    env = _build(replies=["Thanks for waiting"], play_duration=0.2)
    join = asyncio.ensure_future(env.coordinator.join())
    await wait_until(lambda: env.coordinator.is_speaking)

    env.coordinator.submit_text("Can I start?")
    assert len(env.coordinator.transcript) == 1
    await join

    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.coordinator.is_listening)
    assert _texts(env.coordinator) == [GREETING, "Can I start?", "Thanks for waiting"]
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_repeated_final_is_dropped():
    env = _build(replies=["Noted"])
    await _joined(env)

    env.engine.final("the same answer")
    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.capture.is_listening)
    env.engine.final("the same answer")
    await asyncio.sleep(0.2)

    assert len(env.coordinator.transcript) == 3
    assert len(env.dialogue.calls) == 1
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_repeated_violations_end_the_interview():
    env = _build()
    await _joined(env)

    for _ in range(3):
        env.coordinator.submit_text("what the heck")
    result = await asyncio.wait_for(env.coordinator.wait_ended(), timeout=2.0)

    persona = env.coordinator.persona
    assert _texts(env.coordinator) == [
        GREETING, persona.warning_message, persona.warning_message, persona.termination_message
    ]
    assert [m.kind for m in env.coordinator.transcript][1:] == [
        MessageKind.WARNING, MessageKind.WARNING, MessageKind.ERROR
    ]
    assert env.dialogue.calls == []
    assert result.terminated
    assert result.warning_count == 3
    assert result.end_reason == "terminated"
    assert result.turn_count == 0
    assert env.coordinator.state == TurnState.ENDED
    assert len(_events(env, EventType.WARNING_ISSUED)) == 2
    assert len(_events(env, EventType.INTERVIEW_TERMINATED)) == 1
    assert len(_events(env, EventType.INTERVIEW_ENDED)) == 1
    assert not env.capture.enabled


@pytest.mark.asyncio
async def test_end_is_idempotent_and_stops_everything():
    env = _build()
    await _joined(env)

    await env.coordinator.end("user_ended")
    await env.coordinator.end("again")

    assert env.coordinator.ended
    assert env.coordinator.end_reason == "user_ended"
    assert len(_events(env, EventType.INTERVIEW_ENDED)) == 1
    assert not env.capture.enabled
    assert not env.engine.running

    env.coordinator.submit_text("Hello?")
    await asyncio.sleep(0.05)
    assert len(env.coordinator.transcript) == 1


@pytest.mark.asyncio
async def test_end_during_dialogue_call_discards_reply():
    env = _build(delays=[5.0])
    await _joined(env)

    env.coordinator.submit_text("Let me think")
    await wait_until(lambda: env.dialogue.calls)
    await env.coordinator.end()
    await asyncio.sleep(0.05)

    assert _texts(env.coordinator) == [GREETING, "Let me think"]


@pytest.mark.asyncio
async def test_join_twice_is_rejected():
    env = _build()
    await _joined(env)

    with pytest.raises(TurnStateError):
        await env.coordinator.join()
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_failing_transcript_sink_does_not_block_the_interview():
    env = _build(replies=["Still here"], sink=MockTranscriptSink(fail=True))
    await _joined(env)

    env.coordinator.submit_text("Are you there?")
    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.coordinator.is_listening)
    await env.coordinator.flush_sink()

    assert env.coordinator.transcript[2].text == "Still here"
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_transcript_sink_receives_every_message():
    sink = MockTranscriptSink()
    env = _build(replies=["Great"], sink=sink)
    await _joined(env)

    env.coordinator.submit_text("An answer")
    await wait_until(lambda: len(env.coordinator.transcript) == 3)
    await env.coordinator.flush_sink()

    assert [m.text for m in sink.messages] == _texts(env.coordinator)
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_capture_failure_is_surfaced_as_event():
    env = _build()
    await _joined(env)

    env.engine.error(RecognitionErrorCode.PERMISSION_DENIED, "Microphone blocked")

    errors = _events(env, EventType.ERROR_OCCURRED)
    assert len(errors) == 1
    assert errors[0].data["component"] == "capture"
    assert errors[0].data["user_visible"]
    assert not env.coordinator.ended
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_microphone_toggle():
    env = _build(replies=["Typed answers work too"])
    await _joined(env)

    await env.coordinator.set_capture_enabled(False)
    assert not env.capture.enabled
    assert not env.engine.running

    env.coordinator.submit_text("typed")
    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.coordinator.is_listening)
    await asyncio.sleep(0.05)
    assert not env.engine.running

    await env.coordinator.set_capture_enabled(True)
    await wait_until(lambda: env.capture.is_listening)
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_lifecycle_events_are_emitted():
    env = _build(replies=["Fine"])
    await _joined(env)
    env.coordinator.submit_text("Hi")
    await wait_until(lambda: len(env.coordinator.transcript) == 3 and env.coordinator.is_listening)
    await env.coordinator.end()

    assert len(_events(env, EventType.INTERVIEW_STARTED)) == 1
    assert len(_events(env, EventType.MESSAGE_APPENDED)) == 3
    assert len(_events(env, EventType.SPEAKING_STARTED)) == 2
    assert len(_events(env, EventType.SPEAKING_ENDED)) == 2
    states = [e.data["current"] for e in _events(env, EventType.STATE_CHANGED)]
    assert states == ["speaking", "listening", "processing", "speaking", "listening", "ended"]


@pytest.mark.asyncio
async def test_microphone_toggle_after_capture_disabled_itself():
    env = _build()
    await _joined(env)

    env.engine.error(RecognitionErrorCode.PERMISSION_DENIED, "Microphone blocked")
    assert not env.capture.enabled
    assert not env.coordinator.capture_enabled

    await env.coordinator.set_capture_enabled(not env.coordinator.capture_enabled)
    await wait_until(lambda: env.capture.is_listening)
    assert env.coordinator.capture_enabled
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_pause_keeps_the_reply_pending():
    env = _build(replies=["Take a breath"], play_duration=0.05)
    await _joined(env)

    env.coordinator.set_paused(True)
    env.coordinator.submit_text("Give me a second")
    await wait_until(lambda: len(env.coordinator.transcript) == 3)
    await asyncio.sleep(0.1)

    assert env.coordinator.is_speaking
    assert env.player.played == [b"AUDIO:" + GREETING.encode()]

    env.coordinator.set_paused(False)
    await wait_until(lambda: env.coordinator.is_listening)
    assert env.player.played[-1] == b"AUDIO:Take a breath"
    await env.coordinator.end()


@pytest.mark.asyncio
async def test_microphone_toggle_after_capture_retries_ran_out():
    env = _build()
    await _joined(env)

    env.engine.fail_starts = 10
    env.engine.error(RecognitionErrorCode.NETWORK, "connection reset")
    await wait_until(lambda: not env.capture.enabled)
    assert not env.coordinator.capture_enabled

    env.engine.fail_starts = 0
    await env.coordinator.set_capture_enabled(not env.coordinator.capture_enabled)
    await wait_until(lambda: env.capture.is_listening)
    await env.coordinator.end()
