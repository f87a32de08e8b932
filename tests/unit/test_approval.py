from __future__ import annotations

from typing import List

from patchwal.config import ApprovalMode, PatchSettings
from patchwal.engine.approval import ApprovalPolicy, decide_approval


class RecordingPrompt:
    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.questions: List[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer


def test_auto_mode_approves_within_threshold_without_prompting() -> None:
    prompt = RecordingPrompt(answer=False)
    policy = ApprovalPolicy(mode=ApprovalMode.AUTO, error_threshold=2)

    decision = decide_approval(policy, 2, prompt)

    assert decision.approved
    assert prompt.questions == []


def test_auto_mode_above_threshold_asks_and_explains() -> None:
    prompt = RecordingPrompt(answer=False)
    policy = ApprovalPolicy(mode=ApprovalMode.AUTO, error_threshold=0)

    decision = decide_approval(policy, 3, prompt)

    assert not decision.approved
    assert len(prompt.questions) == 1
    assert "threshold" in prompt.questions[0]
    assert "3" in prompt.questions[0]


def test_manual_mode_always_asks() -> None:
    prompt = RecordingPrompt(answer=True)

    decision = decide_approval(ApprovalPolicy(mode=ApprovalMode.MANUAL), 0, prompt)

    assert decision.approved
    assert decision.source == "prompt"
    assert len(prompt.questions) == 1


def test_channel_answer_is_final() -> None:
    prompt = RecordingPrompt(answer=True)
    policy = ApprovalPolicy(mode=ApprovalMode.MANUAL, channel_timeout=1.5)
    timeouts: List[float] = []

    def channel(timeout: float) -> str:
        timeouts.append(timeout)
        return "rejected"

    decision = decide_approval(policy, 0, prompt, channel)

    assert not decision.approved
    assert decision.source == "channel"
    assert timeouts == [1.5]
    assert prompt.questions == []


def test_channel_timeout_falls_through_to_prompt() -> None:
    prompt = RecordingPrompt(answer=True)

    decision = decide_approval(ApprovalPolicy(mode=ApprovalMode.MANUAL), 0, prompt, lambda timeout: "timeout")

    assert decision.approved
    assert decision.source == "prompt"


def test_unsupported_channel_falls_through_to_prompt() -> None:
    prompt = RecordingPrompt(answer=False)

    decision = decide_approval(ApprovalPolicy(mode=ApprovalMode.MANUAL), 0, prompt, lambda timeout: "unsupported")

    assert not decision.approved
    assert len(prompt.questions) == 1


def test_policy_from_settings() -> None:
    settings = PatchSettings(approval_mode="manual", approval_on_error_count=4, approval_timeout=5)

    policy = ApprovalPolicy.from_settings(settings)

    assert policy == ApprovalPolicy(mode=ApprovalMode.MANUAL, error_threshold=4, channel_timeout=5)
