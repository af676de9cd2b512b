"""Agent response types."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

AgentStatus = Literal["done", "blocked", "interrupted", "error"]

RuleMatchMethod = Literal[
    "aggregate",
    "phase3_tag",
    "phase1_tag",
    "ai_judge",
    "ai_judge_fallback",
    "auto_select",
]


@dataclass(frozen=True)
class RuleMatch:
    index: int
    method: RuleMatchMethod


@dataclass(frozen=True)
class AgentResponse:
    persona: str
    status: AgentStatus
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    error: str | None = None
    matched_rule_index: int | None = None
    matched_rule_method: RuleMatchMethod | None = None

    def with_match(self, match: RuleMatch | None) -> AgentResponse:
        """Return a copy carrying the resolved rule; the original is left untouched."""
        if match is None:
            return self
        return dataclasses.replace(
            self, matched_rule_index=match.index, matched_rule_method=match.method
        )

    @property
    def rule_match(self) -> RuleMatch | None:
        if self.matched_rule_index is None or self.matched_rule_method is None:
            return None
        return RuleMatch(self.matched_rule_index, self.matched_rule_method)
