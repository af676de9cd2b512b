"""Mutable execution state of a running piece."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .responses import AgentResponse

PieceStatus = Literal["running", "completed", "aborted"]


@dataclass
class PieceState:
    piece_name: str
    current_movement: str
    iteration: int = 0
    movement_iterations: dict[str, int] = field(default_factory=dict)
    movement_outputs: dict[str, AgentResponse] = field(default_factory=dict)
    # session key (persona, or sub-movement name for parallel branches) -> handle
    agent_sessions: dict[str, str] = field(default_factory=dict)
    user_inputs: list[str] = field(default_factory=list)
    status: PieceStatus = "running"
    abort_reason: str | None = None
    last_output: AgentResponse | None = None
