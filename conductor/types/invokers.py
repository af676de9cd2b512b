"""Collaborator protocols: the Agent Invoker and the Judge Invoker."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .responses import AgentResponse

StreamCallback = Callable[[str], Any]


@dataclass(frozen=True)
class AgentCallOptions:
    cwd: str
    session_id: str | None = None
    # None means "whatever the persona is normally allowed"; an empty tuple means no tools.
    allowed_capabilities: tuple[str, ...] | None = None
    model: str | None = None
    provider: str | None = None
    permission_mode: str | None = None
    max_turns: int | None = None
    on_stream: StreamCallback | None = None


@runtime_checkable
class AgentInvoker(Protocol):
    async def call(
        self, persona: str, instruction: str, options: AgentCallOptions
    ) -> AgentResponse: ...


@dataclass(frozen=True)
class JudgeCondition:
    index: int
    text: str


@runtime_checkable
class JudgeInvoker(Protocol):
    async def evaluate(
        self, content: str, conditions: list[JudgeCondition], *, cwd: str
    ) -> int:
        """Return the ``index`` of the best matching condition, or -1."""
        ...
