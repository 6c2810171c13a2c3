"""
Data management infrastructure for conversations and recordings.
"""

from .conversations import (
    ConversationRecord,
    JsonTranscriptSink,
    WavRecordingSink,
    create_conversation_workspace,
)

__all__ = [
    'ConversationRecord',
    'JsonTranscriptSink',
    'WavRecordingSink',
    'create_conversation_workspace',
]
