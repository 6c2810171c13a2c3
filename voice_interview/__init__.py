"""
voice_interview: real-time, voice-driven technical interviews.

An automated interviewer persona talks with a candidate over the microphone
and speaker, taking turns so the two never talk over each other, with Google
Cloud speech services and a Vertex AI model behind it.
"""

__version__ = "1.0.0"

# Main entry points
from .interview.orchestrator import InterviewSession
from .interview.models import InterviewResult, Message, TurnState

__all__ = ["InterviewSession", "InterviewResult", "Message", "TurnState"]
