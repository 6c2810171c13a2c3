"""
Interviewer replies generated by Vertex AI.
"""
import asyncio
import logging
from typing import Any, Dict, List, Sequence

import requests

from .client import VertexRestClient, VertexResponseError
from ...config import DIALOGUE_TEMPERATURE, MAX_OUTPUT_TOKENS, InterviewerPersona
from ...interview.errors import DialogueFailure, DialogueFailureKind
from ...interview.models import EscalationState, InterviewStage, Message, MessageKind, Sender
from ...interview.prompts import InterviewPrompts, PromptFormatter
from ...interview.services import DialogueReplyService

logger = logging.getLogger("dialogue")


def build_contents(transcript: Sequence[Message], text: str) -> List[Dict[str, Any]]:
    """
    Convert the transcript plus the new utterance into Gemini conversation turns.

    Moderation notices are left out so the model only sees the interview itself.
    Consecutive turns from the same role are merged, which the API requires.
    """
    contents: List[Dict[str, Any]] = []
    history = [m for m in transcript if m.kind != MessageKind.WARNING]
    for role, body in [("user" if m.sender == Sender.USER else "model", m.text) for m in history] + [("user", text)]:
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"][0]["text"] += "\n" + body
        else:
            contents.append({"role": role, "parts": [{"text": body}]})
    # A conversation must open with a user turn
    if contents and contents[0]["role"] == "model":
        contents.insert(0, {"role": "user", "parts": [{"text": "(The candidate has joined the interview.)"}]})
    return contents


class VertexDialogueService(DialogueReplyService):
    """Generates Mike's next line with the persona and stage prompts."""

    def __init__(self,
                 client: VertexRestClient,
                 persona: InterviewerPersona,
                 interview_type: str,
                 temperature: float = DIALOGUE_TEMPERATURE,
                 max_output_tokens: int = MAX_OUTPUT_TOKENS):
        self.client = client
        self.persona = persona
        self.interview_type = interview_type
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._persona_context = PromptFormatter.format_persona(persona)

    async def generate_reply(self,
                             text: str,
                             transcript: Sequence[Message],
                             stage: InterviewStage,
                             escalation: EscalationState) -> str:
        system_prompt = InterviewPrompts.dialogue_system_prompt(
            self._persona_context, self.interview_type, stage, escalation, self.persona.name
        )
        contents = build_contents(transcript, text)
        logger.debug(f"Requesting reply at stage {stage.value} with {len(contents)} turns")

        try:
            reply = await asyncio.to_thread(
                self.client.generate_content,
                contents,
                system_prompt,
                self.temperature,
                self.max_output_tokens,
            )
        except requests.RequestException as e:
            raise DialogueFailure(DialogueFailureKind.TRANSPORT, str(e)) from e
        except VertexResponseError as e:
            raise DialogueFailure(DialogueFailureKind.MALFORMED, str(e)) from e

        reply = reply.strip().strip('"').strip()
        logger.info(f"Generated reply: {reply}")
        return reply
