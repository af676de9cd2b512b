"""Blocked-state handling: ask the host for input to continue."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import UserInputCallback
from ..types import AgentResponse, Movement, UserInputRequest
from .transitions import extract_blocked_prompt


@dataclass(frozen=True)
class BlockedHandlerResult:
    should_continue: bool
    user_input: str | None = None


async def handle_blocked(
    movement: Movement,
    response: AgentResponse,
    on_user_input: UserInputCallback | None,
) -> BlockedHandlerResult:
    if on_user_input is None:
        return BlockedHandlerResult(should_continue=False)

    request = UserInputRequest(
        movement=movement,
        response=response,
        prompt=extract_blocked_prompt(response.content),
    )
    user_input = await on_user_input(request)
    # None (or an empty answer) means the host declined.
    if not user_input:
        return BlockedHandlerResult(should_continue=False)
    return BlockedHandlerResult(should_continue=True, user_input=user_input)
