"""
Dialogue turn policy: interview stage and moderation escalation decisions.

The policy is stateless. Callers hand in the current EscalationState and get
the next one back in the decision.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import EscalationKind, ModerationEscalation
from .models import EscalationState, InterviewStage
from .services import ModerationCheck
from ..config import WARNING_LIMIT

logger = logging.getLogger("policy")


class PolicyAction(str, Enum):
    PROCEED = "proceed"
    WARN = "warn"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class PolicyDecision:
    """What to do with an utterance and the escalation state that follows."""
    action: PolicyAction
    escalation: EscalationState
    violation: bool = False

    @property
    def proceeds(self) -> bool:
        return self.action == PolicyAction.PROCEED

    def as_escalation(self) -> Optional[ModerationEscalation]:
        """The escalation this decision represents, or None when the turn proceeds."""
        if self.action == PolicyAction.PROCEED:
            return None
        kind = EscalationKind.WARN if self.action == PolicyAction.WARN else EscalationKind.TERMINATE
        return ModerationEscalation(kind, self.escalation.warning_count)


def determine_stage(message_count: int) -> InterviewStage:
    """Map transcript length to an interview stage."""
    if message_count <= 0:
        return InterviewStage.INTRODUCTION
    if message_count < 4:
        return InterviewStage.INITIAL_ASSESSMENT
    if message_count < 10:
        return InterviewStage.DEEP_DIVE
    if message_count < 15:
        return InterviewStage.TECHNICAL_EVALUATION
    if message_count < 20:
        return InterviewStage.SCENARIO_BASED
    return InterviewStage.WRAP_UP


class DialogueTurnPolicy:
    """Gate each finalized utterance through moderation before the dialogue call."""

    def __init__(self, moderation: ModerationCheck, warning_limit: int = WARNING_LIMIT):
        self.moderation = moderation
        self.warning_limit = warning_limit

    def decide(self,
               text: str,
               stage: InterviewStage,
               escalation: Optional[EscalationState] = None) -> PolicyDecision:
        """
        Classify an utterance.

        Args:
            text: Finalized candidate utterance
            stage: Current interview stage
            escalation: Current escalation state (fresh state if omitted)

        Returns:
            PolicyDecision with the action and the next escalation state
        """
        escalation = escalation or EscalationState()

        if escalation.ended:
            return PolicyDecision(PolicyAction.TERMINATE, escalation, violation=False)

        if not self.moderation.is_violation(text):
            return PolicyDecision(PolicyAction.PROCEED, escalation)

        if escalation.warning_count >= self.warning_limit:
            next_state = escalation.with_termination()
            logger.warning(f"Violation at stage {stage.value} after {escalation.warning_count} warnings, terminating")
            return PolicyDecision(PolicyAction.TERMINATE, next_state, violation=True)

        next_state = escalation.with_warning()
        logger.info(f"Violation at stage {stage.value}, warning {next_state.warning_count}")
        return PolicyDecision(PolicyAction.WARN, next_state, violation=True)
