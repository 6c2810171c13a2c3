"""
Conversation persistence.
Handles message-by-message transcript records, the final conversation record
and the candidate audio recording.
"""
import os
import json
import time
import wave
import asyncio
import logging
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...config import SAMPLE_RATE_TARGET
from ...interview.models import Message
from ...interview.services import RecordingSink, TranscriptSink

logger = logging.getLogger("conversations")


@dataclass
class ConversationRecord:
    """Complete record of a single interview session."""
    # Basic metadata
    conversation_id: str
    date_time: str  # ISO format timestamp
    interview_type: str = ""
    candidate_name: str = ""
    duration_minutes: Optional[float] = None

    # Conversation flow
    messages: List[Dict[str, Any]] = field(default_factory=list)

    # Outcome
    end_reason: str = ""
    final_stage: str = ""
    warning_count: int = 0
    terminated: bool = False

    # Technical details
    recording_path: Optional[str] = None
    metrics: Dict[str, int] = field(default_factory=dict)


def create_conversation_workspace(workdir: str) -> Tuple[str, str]:
    """
    Create unique conversation directory.

    Returns:
        Tuple of (conversation_id, conversation_dir)
    """
    conversation_id = f"conv_{int(time.time())}"
    conversation_dir = os.path.join(workdir, conversation_id)
    os.makedirs(conversation_dir, exist_ok=True)
    return conversation_id, conversation_dir


class JsonTranscriptSink(TranscriptSink):
    """Appends each message to transcript.jsonl and writes conversation.json at the end."""

    def __init__(self, conversation_dir: str, conversation_id: str):
        self.conversation_dir = conversation_dir
        self.conversation_id = conversation_id
        self.transcript_path = os.path.join(conversation_dir, "transcript.jsonl")
        self.record_path = os.path.join(conversation_dir, "conversation.json")
        self.started_at = time.time()
        self._lock = threading.Lock()

    def _append_line(self, payload: Dict[str, Any]) -> None:
        with self._lock:
            with open(self.transcript_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + "\n")

    async def record_message(self, message: Message) -> None:
        await asyncio.to_thread(self._append_line, message.to_dict())

    def _write_record(self, record: ConversationRecord) -> None:
        with open(self.record_path, "w", encoding="utf-8") as f:
            json.dump(asdict(record), f, indent=2, ensure_ascii=False)

    async def close(self, messages: Sequence[Message], summary: dict) -> None:
        record = ConversationRecord(
            conversation_id=self.conversation_id,
            date_time=datetime.fromtimestamp(self.started_at).isoformat(),
            duration_minutes=round((time.time() - self.started_at) / 60.0, 2),
            messages=[m.to_dict() for m in messages],
            **summary,
        )
        await asyncio.to_thread(self._write_record, record)
        logger.info(f"Conversation saved: {self.record_path}")


class WavRecordingSink(RecordingSink):
    """Writes candidate audio to a mono PCM16 WAV file as it arrives."""

    def __init__(self, path: str, sample_rate: int = SAMPLE_RATE_TARGET):
        self.path = path
        self.sample_rate = sample_rate
        self._wave: Optional[wave.Wave_write] = None
        self._lock = threading.Lock()
        self._closed = False

    def write_frames(self, pcm: bytes) -> None:
        with self._lock:
            if self._closed or not pcm:
                return
            if self._wave is None:
                self._wave = wave.open(self.path, "wb")
                self._wave.setnchannels(1)
                self._wave.setsampwidth(2)
                self._wave.setframerate(self.sample_rate)
            self._wave.writeframes(pcm)

    def close(self) -> Optional[str]:
        with self._lock:
            self._closed = True
            if self._wave is None:
                return None
            self._wave.close()
            self._wave = None
        logger.info(f"Recording saved: {self.path}")
        return self.path
