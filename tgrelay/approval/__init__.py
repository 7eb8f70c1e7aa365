"""Remote approval over the Telegram chat."""

from tgrelay.approval.coordinator import ApprovalCoordinator, FailPolicy, PendingApproval
from tgrelay.approval.formatting import format_approval_prompt, format_tool_info, format_tool_result
from tgrelay.approval.tokens import TokenSets

__all__ = [
    "ApprovalCoordinator",
    "FailPolicy",
    "PendingApproval",
    "TokenSets",
    "format_approval_prompt",
    "format_tool_info",
    "format_tool_result",
]
