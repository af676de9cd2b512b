"""PieceState helpers. The engine is the only caller that mutates state."""

from __future__ import annotations

import dataclasses

from ..config import PieceEngineOptions
from ..types import AgentResponse, PieceConfig, PieceState

MAX_USER_INPUTS = 100
MAX_INPUT_LENGTH = 10_000


def create_initial_state(config: PieceConfig, options: PieceEngineOptions) -> PieceState:
    state = PieceState(
        piece_name=config.name,
        current_movement=config.initial_movement,
        agent_sessions=dict(options.initial_sessions),
    )
    for text in options.initial_user_inputs:
        add_user_input(state, text)
    return state


def increment_movement_iteration(state: PieceState, movement_name: str) -> int:
    count = state.movement_iterations.get(movement_name, 0) + 1
    state.movement_iterations[movement_name] = count
    return count


def add_user_input(state: PieceState, text: str) -> None:
    if len(state.user_inputs) >= MAX_USER_INPUTS:
        state.user_inputs.pop(0)
    state.user_inputs.append(text[:MAX_INPUT_LENGTH])


def previous_output(state: PieceState) -> AgentResponse | None:
    return state.last_output


def snapshot(state: PieceState) -> PieceState:
    """Copy with independent containers; responses are immutable and shared."""
    return dataclasses.replace(
        state,
        movement_iterations=dict(state.movement_iterations),
        movement_outputs=dict(state.movement_outputs),
        agent_sessions=dict(state.agent_sessions),
        user_inputs=list(state.user_inputs),
    )
