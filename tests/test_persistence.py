import json
import wave

import numpy as np
import pytest

from voice_interview.infrastructure.audio.processing import apply_gain, decode_wav, encode_wav, to_recognition_pcm
from voice_interview.infrastructure.data import JsonTranscriptSink, WavRecordingSink, create_conversation_workspace
from voice_interview.interview.models import Message, MessageKind, Sender


@pytest.mark.asyncio
async def test_transcript_lines_and_final_record(tmp_path):
    conversation_id, conversation_dir = create_conversation_workspace(str(tmp_path))
    sink = JsonTranscriptSink(conversation_dir, conversation_id)
    messages = [
        Message("Hello, I'm Mike.", Sender.INTERVIEWER),
        Message("Hi Mike", Sender.USER),
        Message("Sorry, could you repeat that?", Sender.INTERVIEWER, kind=MessageKind.ERROR),
    ]

    for message in messages:
        await sink.record_message(message)
    await sink.close(messages, {"interview_type": "coding", "end_reason": "user_ended", "warning_count": 0})

    with open(sink.transcript_path, encoding="utf-8") as f:
        lines = [json.loads(line) for line in f]
    assert [line["sender"] for line in lines] == ["interviewer", "user", "interviewer"]
    assert lines[2]["kind"] == "error"

    with open(sink.record_path, encoding="utf-8") as f:
        record = json.load(f)
    assert record["conversation_id"] == conversation_id
    assert record["interview_type"] == "coding"
    assert len(record["messages"]) == 3


def test_recording_sink_writes_wav_lazily(tmp_path):
    path = tmp_path / "candidate.wav"
    sink = WavRecordingSink(str(path), sample_rate=16000)

    assert WavRecordingSink(str(tmp_path / "unused.wav")).close() is None

    sink.write_frames(b"\x01\x00" * 160)
    sink.write_frames(b"\x02\x00" * 160)
    assert sink.close() == str(path)
    sink.write_frames(b"\x03\x00" * 160)

    with wave.open(str(path), "rb") as wf:
        assert wf.getnframes() == 320
        assert wf.getframerate() == 16000


def test_wav_payload_decodes():
    pcm = np.arange(-100, 100, dtype=np.int16).tobytes()

    audio = decode_wav(encode_wav(pcm, 24000))

    assert audio.pcm == pcm
    assert audio.sample_rate == 24000
    assert audio.channels == 1
    assert audio.duration == pytest.approx(200 / 24000)


def test_garbage_payload_is_rejected():
    with pytest.raises(ValueError):
        decode_wav(b"definitely not audio")


def test_gain_scales_samples():
    pcm = np.array([1000, -1000, 20000], dtype=np.int16).tobytes()

    assert apply_gain(pcm, 1.0) == pcm
    assert apply_gain(pcm, 0.0) == bytes(len(pcm))
    halved = np.frombuffer(apply_gain(pcm, 0.5), dtype=np.int16)
    assert halved.tolist() == [500, -500, 10000]


def test_microphone_frames_become_mono_recognition_pcm():
    stereo = np.zeros(4800 * 2, dtype=np.int16).tobytes()

    pcm = to_recognition_pcm(stereo, channels=2, sr_in=48000, sr_out=16000)

    assert len(pcm) == 1600 * 2
