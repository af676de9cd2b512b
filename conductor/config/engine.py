"""Engine runtime options."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..types import IterationLimitRequest, StreamCallback, UserInputRequest

# Returns replacement user input, or None to abort.
UserInputCallback = Callable[[UserInputRequest], Awaitable[str | None]]
# Returns the number of additional iterations to grant, or None to stop.
IterationLimitCallback = Callable[[IterationLimitRequest], Awaitable[int | None]]
SessionUpdateCallback = Callable[[str, str], Any]


@dataclass
class PieceEngineOptions:
    project_cwd: str | None = None
    report_dir: str | None = None
    interactive: bool = False
    initial_sessions: dict[str, str] = field(default_factory=dict)
    initial_user_inputs: list[str] = field(default_factory=list)
    # Upper bound on concurrently running sub-movements; None = unbounded.
    max_concurrency: int | None = None
    on_stream: StreamCallback | None = None
    on_user_input: UserInputCallback | None = None
    on_iteration_limit: IterationLimitCallback | None = None
    on_session_update: SessionUpdateCallback | None = None
