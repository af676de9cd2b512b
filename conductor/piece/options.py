"""Builds Agent Invoker options for each execution phase."""

from __future__ import annotations

from ..types import AgentCallOptions, SimpleMovement, StreamCallback

WRITE_CAPABILITIES = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
REPORT_CAPABILITIES: tuple[str, ...] = ("Write",)
RESUME_MAX_TURNS = 3


class OptionsBuilder:
    def __init__(
        self,
        cwd: str,
        on_stream: StreamCallback | None = None,
        project_cwd: str | None = None,
    ) -> None:
        self.cwd = cwd
        self.on_stream = on_stream
        self.project_cwd = project_cwd or cwd

    def execution_options(
        self,
        movement: SimpleMovement,
        session_id: str | None,
        on_stream: StreamCallback | None = None,
    ) -> AgentCallOptions:
        """Phase 1. Write/edit capabilities are withheld when a report phase follows.

        A session started in the project directory is not resumed from another
        working directory (e.g. an isolated clone).
        """
        if self.cwd != self.project_cwd:
            session_id = None
        allowed = movement.allowed_tools
        if movement.report and allowed is not None:
            allowed = tuple(t for t in allowed if t not in WRITE_CAPABILITIES)
        return AgentCallOptions(
            cwd=self.cwd,
            session_id=session_id,
            allowed_capabilities=allowed,
            model=movement.model,
            provider=movement.provider,
            permission_mode=movement.permission_mode,
            on_stream=on_stream or self.on_stream,
        )

    def resume_options(
        self,
        movement: SimpleMovement,
        session_id: str,
        allowed_capabilities: tuple[str, ...],
        on_stream: StreamCallback | None = None,
    ) -> AgentCallOptions:
        """Phases 2 and 3: resume ``session_id`` with a restricted tool set.

        The movement's permission mode is never forwarded to these phases.
        """
        return AgentCallOptions(
            cwd=self.cwd,
            session_id=session_id,
            allowed_capabilities=allowed_capabilities,
            model=movement.model,
            provider=movement.provider,
            max_turns=RESUME_MAX_TURNS,
            on_stream=on_stream or self.on_stream,
        )
