"""Requests handed to host callbacks when the engine needs a decision."""

from __future__ import annotations

from dataclasses import dataclass

from .piece import Movement
from .responses import AgentResponse


@dataclass(frozen=True)
class UserInputRequest:
    movement: Movement
    response: AgentResponse
    prompt: str


@dataclass(frozen=True)
class IterationLimitRequest:
    current_iteration: int
    max_iterations: int
    current_movement: str
