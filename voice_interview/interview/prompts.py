"""
Interview prompt templates and generation.

This module contains all the prompt templates used throughout the interview system,
keeping them separate from the business logic for easier maintenance and editing.
"""

import random
from typing import Dict, List, Optional

from .models import EscalationState, InterviewStage, InterviewType


INTERVIEW_TYPE_FOCUS: Dict[str, Dict[str, str]] = {
    InterviewType.TECHNICAL.value: {
        "focus": "System design and architecture concepts",
        "evaluation": "Technical depth and decision-making",
        "style": "Architectural discussions and trade-offs",
    },
    InterviewType.CODING.value: {
        "focus": "Algorithm implementation and optimization",
        "evaluation": "Code quality and algorithmic thinking",
        "style": "Interactive coding and discussion",
    },
    InterviewType.BEHAVIORAL.value: {
        "focus": "Past experiences and decision-making",
        "evaluation": "Communication and decision-making",
        "style": "STAR method responses",
    },
    InterviewType.FRONTEND.value: {
        "focus": "UI/UX implementation and best practices",
        "evaluation": "Frontend expertise and best practices",
        "style": "Component design and user experience",
    },
    InterviewType.BACKEND.value: {
        "focus": "Server architecture and API design",
        "evaluation": "Backend systems and scalability",
        "style": "Infrastructure and data flow",
    },
}

STAGE_PROMPTS: Dict[InterviewStage, str] = {
    InterviewStage.INTRODUCTION: "You are starting the interview. Introduce yourself as {name} and make the candidate comfortable.",
    InterviewStage.INITIAL_ASSESSMENT: "Assess candidate's general knowledge level. Ask broad but insightful questions.",
    InterviewStage.DEEP_DIVE: "Deep dive into specific concepts. Focus on understanding depth of knowledge.",
    InterviewStage.TECHNICAL_EVALUATION: "Evaluate practical implementation understanding. Focus on real-world scenarios.",
    InterviewStage.SCENARIO_BASED: "Present specific scenarios and evaluate problem-solving approach.",
    InterviewStage.WRAP_UP: "Begin concluding the interview. Ask final key questions and give candidate chance to ask questions.",
}


def _type_info(interview_type: str) -> Dict[str, str]:
    return INTERVIEW_TYPE_FOCUS.get(interview_type, INTERVIEW_TYPE_FOCUS[InterviewType.TECHNICAL.value])


class InterviewPrompts:
    """Collection of all interview-related prompts."""

    @staticmethod
    def persona_context_template() -> str:
        """Base template for the interviewer persona."""
        return """
You are {name}, an expert interviewer with years of experience. Your core traits:

Personality:
- Professional yet approachable
- Clear and articulate
- Adapts tone to candidate's experience level
- Shows genuine interest in candidate's responses
- Style: {style}
- Tone: {tone}

Interview Style:
- Always start by introducing yourself as {name}
- Ask focused, probing questions
- Follow up on incomplete answers
- Guide without providing solutions
- Keep responses concise and natural

Core Rules:
1. Maintain consistent personality throughout
2. Never provide direct solutions
3. Use the {questioning_style} method for guidance
4. Give clear, constructive feedback
5. Adapt difficulty based on responses
6. Keep responses under 3 sentences
7. Focus on understanding thought process

Assessment Areas:
- Problem-solving approach
- Technical knowledge depth
- Communication clarity
- Code quality and structure
- System design understanding
- Edge case consideration
        """.strip()

    @staticmethod
    def stage_prompt(stage: InterviewStage, interview_type: str, name: str = "Mike") -> str:
        """Stage-specific instruction with the interview type focus appended."""
        base = STAGE_PROMPTS[stage].format(name=name)
        return f"{base} Focus on {interview_type} concepts and scenarios."

    @staticmethod
    def dialogue_system_prompt(persona_context: str,
                               interview_type: str,
                               stage: InterviewStage,
                               escalation: EscalationState,
                               name: str = "Mike") -> str:
        """System instruction for a single dialogue turn."""
        info = _type_info(interview_type)
        stage_prompt = InterviewPrompts.stage_prompt(stage, interview_type, name)
        return f"""
{persona_context}

Current Interview Context:
- Type: {interview_type}
- Focus: {info["focus"]}
- Stage: {stage.value}
- Warning Count: {escalation.warning_count}

Interview Guidelines:
1. MAINTAIN consistent personality as {name} - experienced, knowledgeable, and professional
2. FOCUS on {info["focus"]}
3. EVALUATE based on {info["evaluation"]}
4. KEEP responses concise (2-3 sentences max)
5. ASK follow-up questions when answers are unclear
6. ADAPT difficulty based on candidate's responses
7. AVOID giving direct solutions
8. USE natural conversational tone

Stage-Specific Instructions:
{stage_prompt}

Response Format:
- Plain spoken sentences only, no markdown or lists
- Include one clear follow-up question when appropriate
- Maintain professional yet approachable tone
        """.strip()

    @staticmethod
    def greetings(interview_type: str, candidate_name: str, name: str = "Mike") -> List[str]:
        """Opening lines the interviewer can choose from."""
        return [
            f"Hello {candidate_name}! I'm {name}, your {interview_type} interviewer today. Thank you for joining us.",
            f"Welcome to your {interview_type} interview! I'm {name}, and I'm excited to learn more about your experience.",
            f"Hi {candidate_name}! I'm {name}, and I'll be conducting your {interview_type} interview today.",
        ]

    @staticmethod
    def greeting_follow_up(interview_type: str) -> str:
        if interview_type == InterviewType.CODING.value:
            return (" We'll be working through some coding challenges together."
                    " Could you start by telling me about your programming background?")
        return " Could you start by telling me about your background and experience?"

    @staticmethod
    def code_submission(language: str) -> str:
        """Utterance injected when the candidate submits code."""
        return f"I've submitted my solution in {language}. Please review it."


class PromptFormatter:
    """Helper class for formatting and customizing prompts."""

    @staticmethod
    def format_persona(persona) -> str:
        """Fill the persona template from an InterviewerPersona."""
        base = InterviewPrompts.persona_context_template().format(
            name=persona.name,
            style=persona.style,
            tone=persona.tone,
            questioning_style=persona.questioning_style,
        )
        return PromptFormatter.add_custom_context(base, persona.custom_context)

    @staticmethod
    def add_custom_context(base_prompt: str, custom_context: str) -> str:
        """Add custom context to a base prompt if provided."""
        if custom_context and custom_context.strip():
            return f"{base_prompt}\n\nADDITIONAL CONTEXT: {custom_context}"
        return base_prompt

    @staticmethod
    def initial_greeting(interview_type: str,
                         candidate_name: str,
                         name: str = "Mike",
                         rng: Optional[random.Random] = None) -> str:
        """Pick an opening line and append the type-specific follow-up."""
        chooser = rng or random
        greeting = chooser.choice(InterviewPrompts.greetings(interview_type, candidate_name, name))
        return greeting + InterviewPrompts.greeting_follow_up(interview_type)
