"""Approval gate deciding between commit and rollback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import ApprovalMode, PatchSettings
from ..tools.notifier import ApprovalChannelResult

LOGGER = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]
ApprovalChannel = Callable[[float], ApprovalChannelResult]


@dataclass(slots=True, frozen=True)
class ApprovalPolicy:
    mode: ApprovalMode = ApprovalMode.AUTO
    error_threshold: int = 0
    channel_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: PatchSettings) -> "ApprovalPolicy":
        return cls(
            mode=settings.approval_mode,
            error_threshold=settings.approval_on_error_count,
            channel_timeout=settings.approval_timeout,
        )


@dataclass(slots=True, frozen=True)
class ApprovalDecision:
    approved: bool
    reason: str
    source: str = "auto"


def decide_approval(
    policy: ApprovalPolicy,
    error_count: int,
    confirm: ConfirmCallback,
    channel: Optional[ApprovalChannel] = None,
) -> ApprovalDecision:
    """Return whether a freshly applied transaction should be committed.

    ``auto`` mode approves silently while ``error_count`` stays within the
    threshold. Everything else needs a human: the out-of-band ``channel`` is
    asked first, bounded by the policy timeout, and only a ``timeout`` or
    ``unsupported`` answer falls through to ``confirm``.
    """
    if policy.mode == ApprovalMode.AUTO and error_count <= policy.error_threshold:
        return ApprovalDecision(
            approved=True,
            reason=f"Auto-approved: {error_count} error(s) within threshold {policy.error_threshold}.",
        )

    if policy.mode == ApprovalMode.AUTO:
        question = (
            f"Found {error_count} error(s), above the auto-approval threshold of "
            f"{policy.error_threshold}. Approve the changes anyway?"
        )
    else:
        question = "Changes applied. Do you want to approve and commit them?"

    if channel is not None:
        answer = channel(policy.channel_timeout)
        LOGGER.debug("Approval channel answered %s", answer)
        if answer == "approved":
            return ApprovalDecision(True, "Approved via notification.", source="channel")
        if answer == "rejected":
            return ApprovalDecision(False, "Rejected via notification.", source="channel")

    approved = bool(confirm(question))
    reason = "Approved by operator." if approved else "Rejected by operator."
    return ApprovalDecision(approved, reason, source="prompt")


__all__ = [
    "ApprovalChannel",
    "ApprovalDecision",
    "ApprovalPolicy",
    "ConfirmCallback",
    "decide_approval",
]
