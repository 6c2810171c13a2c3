import asyncio

import pytest

from conftest import wait_until
from voice_interview.interview.capture import CaptureController, CaptureStatus
from voice_interview.interview.errors import CaptureFailureKind
from voice_interview.interview.retry import RetryPolicy
from voice_interview.interview.services import RecognitionAlternative, RecognitionErrorCode, RecognitionResult
from voice_interview.interview.testing import MockRecognitionEngine


def _controller(engine: MockRecognitionEngine, silence_window: float = 0.05) -> CaptureController:
    return CaptureController(
        engine,
        confidence_threshold=0.5,
        silence_window=silence_window,
        resume_debounce=0.01,
        retry_policy=RetryPolicy(max_attempts=3, backoff=lambda attempt: 0.01),
    )


def _collect(capture: CaptureController):
    fragments, errors = [], []
    capture.fragments.subscribe(fragments.append)
    capture.errors.subscribe(errors.append)
    return fragments, errors


def _finals(fragments):
    return [f for f in fragments if not f.is_partial]


@pytest.mark.asyncio
async def test_low_confidence_spans_are_dropped_and_silence_finalizes():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    fragments, _ = _collect(capture)

    await capture.start()
    assert capture.is_listening

    engine.partial("I would", 0.9)
    engine.final("I would use", 0.9)
    engine.final("mumble", 0.2)
    engine.final("a queue", 0.8)
    assert capture.pending_text == "I would use a queue"

    await wait_until(lambda: _finals(fragments))
    finals = _finals(fragments)
    assert [f.text for f in finals] == ["I would use a queue"]
    assert finals[0].confidence == pytest.approx(0.8)
    assert fragments[0].is_partial
    assert fragments[0].text == "I would"
    await capture.close()


@pytest.mark.asyncio
async def test_result_index_skips_already_reported_alternatives():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    fragments, _ = _collect(capture)
    await capture.start()

    engine.emit(RecognitionResult(1, (
        RecognitionAlternative("old words", 0.9, True),
        RecognitionAlternative("new words", 0.9, True),
    )))

    await wait_until(lambda: _finals(fragments))
    assert [f.text for f in _finals(fragments)] == ["new words"]
    await capture.close()


@pytest.mark.asyncio
async def test_activity_rearms_silence_window():
    engine = MockRecognitionEngine()
    capture = _controller(engine, silence_window=0.2)
    fragments, _ = _collect(capture)
    await capture.start()

    engine.final("first part")
    await asyncio.sleep(0.1)
    engine.final("second part")
    await asyncio.sleep(0.1)
    assert _finals(fragments) == []

    await wait_until(lambda: _finals(fragments))
    assert [f.text for f in _finals(fragments)] == ["first part second part"]
    await capture.close()


@pytest.mark.asyncio
async def test_suspend_discards_pending_text():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    fragments, _ = _collect(capture)
    await capture.start()

    engine.final("half a thought")
    await capture.set_suspended(True)
    await asyncio.sleep(0.1)

    assert _finals(fragments) == []
    assert capture.status == CaptureStatus.IDLE
    assert engine.stop_count == 1
    await capture.close()


@pytest.mark.asyncio
async def test_resume_reopens_after_debounce_and_ignores_stale_session():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    fragments, _ = _collect(capture)
    await capture.start()

    await capture.set_suspended(True)
    await capture.set_suspended(False)
    await wait_until(lambda: capture.is_listening)
    assert engine.start_count == 2

    stale_sink = engine.sinks[0]
    stale_sink(RecognitionResult(0, (RecognitionAlternative("from the old session", 0.9, True),)))
    engine.final("from the new session")

    await wait_until(lambda: _finals(fragments))
    await asyncio.sleep(0.1)
    assert [f.text for f in _finals(fragments)] == ["from the new session"]
    await capture.close()


@pytest.mark.asyncio
async def test_permission_denied_is_fatal():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    _, errors = _collect(capture)
    await capture.start()

    engine.error(RecognitionErrorCode.PERMISSION_DENIED, "Microphone blocked")
    await asyncio.sleep(0.05)

    assert len(errors) == 1
    assert errors[0].kind == CaptureFailureKind.PERMISSION
    assert errors[0].fatal
    assert not capture.enabled
    assert engine.start_count == 1
    await capture.close()


@pytest.mark.asyncio
async def test_network_error_restarts_session():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    _, errors = _collect(capture)
    await capture.start()

    engine.error(RecognitionErrorCode.NETWORK, "connection reset")
    await wait_until(lambda: engine.start_count == 2 and capture.is_listening)

    assert errors == []
    assert capture.enabled
    await capture.close()


@pytest.mark.asyncio
async def test_error_flushes_accumulated_text():
    engine = MockRecognitionEngine()
    capture = _controller(engine, silence_window=1.0)
    fragments, _ = _collect(capture)
    await capture.start()

    engine.final("almost done")
    engine.error(RecognitionErrorCode.OTHER)

    assert [f.text for f in _finals(fragments)] == ["almost done"]
    await capture.close()


@pytest.mark.asyncio
async def test_start_failures_exhaust_retries():
    engine = MockRecognitionEngine(fail_starts=10)
    capture = _controller(engine)
    _, errors = _collect(capture)

    await capture.start()
    await wait_until(lambda: errors)

    assert engine.start_count == 4
    assert errors[0].kind == CaptureFailureKind.TRANSIENT
    assert "after 3 retries" in str(errors[0])
    assert not errors[0].fatal
    assert not capture.enabled
    await capture.close()


@pytest.mark.asyncio
async def test_ignored_errors_keep_session_running():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    _, errors = _collect(capture)
    await capture.start()

    engine.error(RecognitionErrorCode.NO_SPEECH)
    engine.error(RecognitionErrorCode.ABORTED)
    await asyncio.sleep(0.05)

    assert errors == []
    assert capture.is_listening
    assert engine.start_count == 1
    await capture.close()


@pytest.mark.asyncio
async def test_session_end_flushes_and_restarts():
    engine = MockRecognitionEngine()
    capture = _controller(engine, silence_window=1.0)
    fragments, _ = _collect(capture)
    await capture.start()

    engine.final("end of my answer")
    engine.end()

    assert [f.text for f in _finals(fragments)] == ["end of my answer"]
    await wait_until(lambda: engine.start_count == 2 and capture.is_listening)
    await capture.close()


@pytest.mark.asyncio
async def test_concurrent_starts_open_one_session():
    engine = MockRecognitionEngine()
    capture = _controller(engine)

    await asyncio.gather(capture.start(), capture.start())

    assert engine.start_count == 1
    assert capture.is_listening
    await capture.close()


@pytest.mark.asyncio
async def test_stop_disables_and_is_idempotent():
    engine = MockRecognitionEngine()
    capture = _controller(engine)
    await capture.start()

    await capture.stop()
    await capture.stop()

    assert not capture.enabled
    assert capture.status == CaptureStatus.IDLE
    assert engine.stop_count == 1
