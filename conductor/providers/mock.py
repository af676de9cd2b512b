"""
Scripted Agent Invoker for tests and dry runs.

Returns pre-arranged responses without calling any model, and records every
call so tests can assert on instructions, options and session handles.

Usage:
    invoker = ScriptedAgentInvoker([
        ScriptedReply("Plan drafted."),
        ScriptedReply("[PLAN:1]"),
    ])
    response = await invoker.call("planner", "...", options)
"""

from __future__ import annotations

import inspect
import itertools
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from ..types import AgentCallOptions, AgentResponse, AgentStatus

ScriptFunction = Callable[[str, str, AgentCallOptions], "ScriptedReply | AgentResponse | Awaitable[ScriptedReply | AgentResponse]"]


@dataclass(frozen=True)
class ScriptedReply:
    content: str
    status: AgentStatus = "done"
    # None: keep the caller's session, or open a fresh one.
    session_id: str | None = None
    error: str | None = None
    stream: tuple[str, ...] = ()


@dataclass(frozen=True)
class RecordedCall:
    persona: str
    instruction: str
    options: AgentCallOptions


class ScriptedAgentInvoker:
    """Agent Invoker driven by a queue of replies or by a callable.

    When a reply carries no session id the invoker behaves like a real
    backend: it resumes the requested session, or opens a new one named
    ``<persona>-session-<n>``.
    """

    def __init__(self, script: Iterable[ScriptedReply | AgentResponse] | ScriptFunction = ()) -> None:
        if callable(script):
            self._func: ScriptFunction | None = script
            self._queue: deque[ScriptedReply | AgentResponse] = deque()
        else:
            self._func = None
            self._queue = deque(script)
        self.calls: list[RecordedCall] = []
        self._session_counter = itertools.count(1)

    def enqueue(self, *replies: ScriptedReply | AgentResponse) -> None:
        self._queue.extend(replies)

    @property
    def remaining(self) -> int:
        return len(self._queue)

    async def call(self, persona: str, instruction: str, options: AgentCallOptions) -> AgentResponse:
        self.calls.append(RecordedCall(persona, instruction, options))

        if self._func is not None:
            reply = self._func(persona, instruction, options)
            if inspect.isawaitable(reply):
                reply = await reply
        elif self._queue:
            reply = self._queue.popleft()
        else:
            raise RuntimeError(f"No scripted reply left for persona {persona!r}")

        if isinstance(reply, AgentResponse):
            return reply

        if options.on_stream is not None:
            for chunk in reply.stream or (reply.content,):
                result = options.on_stream(chunk)
                if inspect.isawaitable(result):
                    await result

        session_id = reply.session_id or options.session_id or f"{persona}-session-{next(self._session_counter)}"
        return AgentResponse(
            persona=persona,
            status=reply.status,
            content=reply.content,
            session_id=session_id,
            error=reply.error,
        )

    def calls_for(self, persona: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.persona == persona]
