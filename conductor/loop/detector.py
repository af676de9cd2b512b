"""Loop detection — consecutive executions of the same movement."""

from __future__ import annotations

from dataclasses import dataclass

from ..types import LoopDetectionConfig


@dataclass(frozen=True)
class LoopCheckResult:
    count: int
    should_warn: bool
    should_abort: bool

    @property
    def is_loop(self) -> bool:
        return self.should_warn or self.should_abort


class LoopDetector:
    """Tracks back-to-back re-entry into the same movement."""

    def __init__(self, config: LoopDetectionConfig | None = None) -> None:
        self.config = config or LoopDetectionConfig()
        self._last_movement: str | None = None
        self._consecutive = 0

    def check(self, movement_name: str) -> LoopCheckResult:
        """Register an upcoming execution of ``movement_name`` and classify it."""
        if self._last_movement == movement_name:
            self._consecutive += 1
        else:
            self._last_movement = movement_name
            self._consecutive = 1

        warn_at = self.config.warn_threshold
        abort_at = self.config.abort_threshold
        return LoopCheckResult(
            count=self._consecutive,
            should_warn=warn_at is not None and self._consecutive > warn_at,
            should_abort=abort_at is not None and self._consecutive > abort_at,
        )

    def reset(self) -> None:
        self._last_movement = None
        self._consecutive = 0

    @property
    def consecutive_count(self) -> int:
        return self._consecutive
