"""Judge Invoker built on top of an Agent Invoker."""

from __future__ import annotations

import logging
import re

from ..types import AgentCallOptions, AgentInvoker, JudgeCondition

logger = logging.getLogger(__name__)

JUDGE_TAG_RE = re.compile(r"\[JUDGE:(\d+)\]", re.IGNORECASE)


def detect_judge_index(content: str) -> int:
    """0-based index from a ``[JUDGE:N]`` tag, or -1."""
    match = JUDGE_TAG_RE.search(content)
    if not match:
        return -1
    index = int(match.group(1)) - 1
    return index if index >= 0 else -1


def build_judge_prompt(agent_output: str, conditions: list[JudgeCondition]) -> str:
    rows = "\n".join(f"| {c.index + 1} | {c.text} |" for c in conditions)
    return "\n".join(
        [
            "# Judge Task",
            "",
            "You are a judge evaluating an agent's output against a set of conditions.",
            "Read the agent output below, then determine which condition best matches.",
            "",
            "## Agent Output",
            "```",
            agent_output,
            "```",
            "",
            "## Conditions",
            "| # | Condition |",
            "|---|-----------|",
            rows,
            "",
            "## Instructions",
            "Output ONLY the tag `[JUDGE:N]` where N is the number of the best matching condition.",
            "Do not output anything else.",
        ]
    )


class AgentJudge:
    """Asks a (usually cheap) persona to pick a condition in one tool-less turn."""

    def __init__(
        self,
        invoker: AgentInvoker,
        persona: str = "judge",
        *,
        model: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.invoker = invoker
        self.persona = persona
        self.model = model
        self.provider = provider

    async def evaluate(self, content: str, conditions: list[JudgeCondition], *, cwd: str) -> int:
        if not conditions:
            return -1
        options = AgentCallOptions(
            cwd=cwd,
            allowed_capabilities=(),
            model=self.model,
            provider=self.provider,
            max_turns=1,
        )
        response = await self.invoker.call(self.persona, build_judge_prompt(content, conditions), options)
        if response.status != "done":
            logger.error("Judge call returned %s: %s", response.status, response.error or response.content)
            return -1

        index = detect_judge_index(response.content)
        valid = {c.index for c in conditions}
        if index not in valid:
            logger.debug("Judge reply had no usable tag: %r", response.content[:200])
            return -1
        return index
