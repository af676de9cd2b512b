"""Piece definition types: rules, movements, loop monitors, piece config.

Everything here is immutable. Rule conditions are classified once, at
normalization time (see ``conductor.config.normalize``), so the engine only
ever dispatches on the concrete rule and movement classes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

COMPLETE = "COMPLETE"
ABORT = "ABORT"
TERMINAL_MOVEMENTS = frozenset({COMPLETE, ABORT})

AggregateType = Literal["all", "any"]


@dataclass(frozen=True, kw_only=True)
class TagRule:
    """Plain condition, matched only by ``[MOVEMENT:N]`` tag detection (or the final judge)."""

    condition: str
    next: str | None = None
    appendix: str | None = None
    interactive_only: bool = False
    kind: Literal["tag"] = "tag"


@dataclass(frozen=True, kw_only=True)
class AiRule:
    """``ai("...")`` condition, eligible for the judge tier."""

    condition: str
    ai_condition: str
    next: str | None = None
    appendix: str | None = None
    interactive_only: bool = False
    kind: Literal["ai"] = "ai"


@dataclass(frozen=True, kw_only=True)
class AggregateRule:
    """``all("...")`` / ``any("...")`` condition over sub-movement results."""

    condition: str
    aggregate_type: AggregateType
    aggregate_conditions: tuple[str, ...]
    next: str | None = None
    appendix: str | None = None
    interactive_only: bool = False
    kind: Literal["aggregate"] = "aggregate"


Rule = TagRule | AiRule | AggregateRule


@dataclass(frozen=True, kw_only=True)
class SimpleMovement:
    name: str
    persona: str
    instruction_template: str = "{task}"
    rules: tuple[Rule, ...] = ()
    report: tuple[str, ...] = ()
    pass_previous_response: bool = True
    # Passed through to the Agent Invoker untouched.
    allowed_tools: tuple[str, ...] | None = None
    model: str | None = None
    provider: str | None = None
    permission_mode: str | None = None
    description: str | None = None

    @property
    def session_key(self) -> str:
        return self.persona


@dataclass(frozen=True, kw_only=True)
class ParallelMovement:
    """Container whose sub-movements run concurrently. Has no persona or instruction of its own."""

    name: str
    parallel: tuple[SimpleMovement, ...]
    rules: tuple[Rule, ...] = ()
    description: str | None = None


Movement = SimpleMovement | ParallelMovement


@dataclass(frozen=True, kw_only=True)
class LoopMonitorJudge:
    persona: str
    instruction_template: str | None = None
    rules: tuple[TagRule, ...] = ()


@dataclass(frozen=True, kw_only=True)
class LoopMonitor:
    cycle: tuple[str, ...]
    threshold: int
    judge: LoopMonitorJudge


@dataclass(frozen=True)
class LoopDetectionConfig:
    """Consecutive same-movement limits. ``None`` disables the signal."""

    warn_threshold: int | None = 10
    abort_threshold: int | None = None


@dataclass(frozen=True, kw_only=True)
class PieceConfig:
    name: str
    movements: tuple[Movement, ...]
    initial_movement: str
    max_iterations: int = 10
    loop_monitors: tuple[LoopMonitor, ...] = ()
    loop_detection: LoopDetectionConfig = field(default_factory=LoopDetectionConfig)
    answer_persona: str | None = None
    description: str | None = None

    def get_movement(self, name: str) -> Movement | None:
        for movement in self.movements:
            if movement.name == name:
                return movement
        return None

    @property
    def movement_names(self) -> list[str]:
        return [m.name for m in self.movements]
