"""Lifecycle event types published by the piece engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .piece import Movement
from .responses import AgentResponse
from .state import PieceState

PhaseName = Literal["execute", "report", "judge"]


@dataclass
class MovementStartEvent:
    movement: Movement
    iteration: int
    type: str = "movement:start"


@dataclass
class MovementCompleteEvent:
    movement: Movement
    response: AgentResponse
    instruction: str
    type: str = "movement:complete"


@dataclass
class MovementBlockedEvent:
    movement: Movement
    response: AgentResponse
    type: str = "movement:blocked"


@dataclass
class MovementUserInputEvent:
    movement: Movement
    user_input: str
    type: str = "movement:user_input"


@dataclass
class LoopDetectedEvent:
    movement: Movement
    consecutive_count: int
    aborting: bool = False
    type: str = "movement:loop_detected"


@dataclass
class PhaseStartEvent:
    movement: str
    phase: int
    phase_name: PhaseName
    instruction: str
    type: str = "phase:start"


@dataclass
class PhaseCompleteEvent:
    movement: str
    phase: int
    phase_name: PhaseName
    content: str
    status: str
    error: str | None = None
    type: str = "phase:complete"


@dataclass
class LoopMonitorEvent:
    cycle: tuple[str, ...]
    cycle_count: int
    next_movement: str
    type: str = "loop_monitor:triggered"


@dataclass
class IterationLimitEvent:
    iteration: int
    max_iterations: int
    type: str = "iteration:limit"


@dataclass
class PieceCompleteEvent:
    state: PieceState
    type: str = "piece:complete"


@dataclass
class PieceAbortEvent:
    state: PieceState
    reason: str
    type: str = "piece:abort"


PieceEvent = (
    MovementStartEvent
    | MovementCompleteEvent
    | MovementBlockedEvent
    | MovementUserInputEvent
    | LoopDetectedEvent
    | PhaseStartEvent
    | PhaseCompleteEvent
    | LoopMonitorEvent
    | IterationLimitEvent
    | PieceCompleteEvent
    | PieceAbortEvent
)
