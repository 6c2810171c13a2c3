from voice_interview.interview.errors import EscalationKind
from voice_interview.interview.models import EscalationState, InterviewStage
from voice_interview.interview.policy import DialogueTurnPolicy, PolicyAction, determine_stage
from voice_interview.interview.services import KeywordModerationCheck


def _policy(limit: int = 2) -> DialogueTurnPolicy:
    return DialogueTurnPolicy(KeywordModerationCheck(["darn", "heck"]), warning_limit=limit)


def test_stage_thresholds():
    assert determine_stage(0) == InterviewStage.INTRODUCTION
    assert determine_stage(1) == InterviewStage.INITIAL_ASSESSMENT
    assert determine_stage(3) == InterviewStage.INITIAL_ASSESSMENT
    assert determine_stage(4) == InterviewStage.DEEP_DIVE
    assert determine_stage(9) == InterviewStage.DEEP_DIVE
    assert determine_stage(10) == InterviewStage.TECHNICAL_EVALUATION
    assert determine_stage(15) == InterviewStage.SCENARIO_BASED
    assert determine_stage(20) == InterviewStage.WRAP_UP
    assert determine_stage(250) == InterviewStage.WRAP_UP


def test_clean_utterance_proceeds_without_touching_escalation():
    state = EscalationState(warning_count=1)
    decision = _policy().decide("I would use a hash map here", InterviewStage.DEEP_DIVE, state)

    assert decision.action == PolicyAction.PROCEED
    assert decision.proceeds
    assert decision.escalation is state
    assert decision.as_escalation() is None


def test_two_warnings_then_termination():
    policy = _policy()
    state = EscalationState()
    actions = []
    for _ in range(3):
        decision = policy.decide("what the heck", InterviewStage.DEEP_DIVE, state)
        actions.append(decision.action)
        state = decision.escalation

    assert actions == [PolicyAction.WARN, PolicyAction.WARN, PolicyAction.TERMINATE]
    assert state.ended
    assert state.warning_count == 3


def test_escalation_payload_carries_warning_count():
    decision = _policy().decide("darn it", InterviewStage.INTRODUCTION)

    escalation = decision.as_escalation()
    assert escalation is not None
    assert escalation.kind == EscalationKind.WARN
    assert escalation.warning_count == 1


def test_ended_state_latches():
    ended = EscalationState(warning_count=3, ended=True)
    decision = _policy().decide("a perfectly polite answer", InterviewStage.WRAP_UP, ended)

    assert decision.action == PolicyAction.TERMINATE
    assert decision.escalation.ended
    assert not decision.violation


def test_keyword_match_respects_word_boundaries():
    check = KeywordModerationCheck(["heck"])

    assert check.is_violation("What the HECK is that")
    assert not check.is_violation("Let me double-check the checkout flow")
    assert not check.is_violation("")
