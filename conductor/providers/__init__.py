"""Invoker implementations: a scripted agent and an agent-backed judge."""

from .judge import AgentJudge, build_judge_prompt, detect_judge_index
from .mock import RecordedCall, ScriptedAgentInvoker, ScriptedReply

__all__ = [
    "AgentJudge",
    "build_judge_prompt",
    "detect_judge_index",
    "RecordedCall",
    "ScriptedAgentInvoker",
    "ScriptedReply",
]
