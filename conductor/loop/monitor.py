"""Cycle monitors — repeated sequences across several movements.

A monitor watches an ordered cycle such as ``review → fix``. Every time the
history of completed movements ends with the full cycle, the monitor's count
goes up; completing a movement outside the cycle resets it. When the count
reaches the threshold the monitor fires, and the engine runs the monitor's
judge to decide where to go next.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

from ..types import LoopMonitor, SimpleMovement

logger = logging.getLogger(__name__)

LOOP_JUDGE_MOVEMENT = "_loop_judge"

DEFAULT_JUDGE_TEMPLATE = """The following movements have repeated as a cycle {cycle_count} times:

{cycle}

Review the work produced across these repetitions. Decide whether the cycle
is making real progress or is stuck, and choose how to continue.

Original task:
{task}"""


@dataclass(frozen=True)
class CycleTrigger:
    monitor: LoopMonitor
    cycle_count: int


class CycleDetector:
    def __init__(self, monitors: Sequence[LoopMonitor] = ()) -> None:
        self.monitors = tuple(monitors)
        longest = max((len(m.cycle) for m in self.monitors), default=0)
        self._history: deque[str] = deque(maxlen=max(longest, 1))
        self._counts = [0] * len(self.monitors)

    def record(self, movement_name: str) -> CycleTrigger | None:
        """Record a completed movement; return the first monitor that fired, if any."""
        self._history.append(movement_name)
        fired: CycleTrigger | None = None

        for i, monitor in enumerate(self.monitors):
            if movement_name not in monitor.cycle:
                self._counts[i] = 0
                continue
            if not self._ends_with(monitor.cycle):
                continue
            self._counts[i] += 1
            logger.debug("Cycle %s completed (%d/%d)", monitor.cycle, self._counts[i], monitor.threshold)
            if self._counts[i] >= monitor.threshold and fired is None:
                fired = CycleTrigger(monitor=monitor, cycle_count=self._counts[i])
                self._counts[i] = 0
        return fired

    def count_for(self, monitor: LoopMonitor) -> int:
        return self._counts[self.monitors.index(monitor)]

    def reset(self) -> None:
        self._history.clear()
        self._counts = [0] * len(self.monitors)

    def _ends_with(self, cycle: tuple[str, ...]) -> bool:
        if len(self._history) < len(cycle):
            return False
        tail = list(self._history)[-len(cycle):]
        return tail == list(cycle)


def build_judge_movement(trigger: CycleTrigger) -> SimpleMovement:
    """Materialize a monitor's judge as a one-off movement outside the piece graph."""
    judge = trigger.monitor.judge
    template = judge.instruction_template or DEFAULT_JUDGE_TEMPLATE
    template = template.replace("{cycle_count}", str(trigger.cycle_count)).replace(
        "{cycle}", " → ".join(trigger.monitor.cycle)
    )
    return SimpleMovement(
        name=LOOP_JUDGE_MOVEMENT,
        persona=judge.persona,
        instruction_template=template,
        rules=judge.rules,
        pass_previous_response=True,
        allowed_tools=(),
    )
