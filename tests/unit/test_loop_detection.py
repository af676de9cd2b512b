"""Unit tests for consecutive-loop detection and cycle monitors."""

from conductor.loop import LOOP_JUDGE_MOVEMENT, CycleDetector, LoopDetector, build_judge_movement
from conductor.loop.monitor import CycleTrigger
from conductor.types import LoopDetectionConfig, LoopMonitor, LoopMonitorJudge
from tests.builders import tag


def _monitor(cycle=("review", "fix"), threshold=2, **judge_kwargs):
    judge = LoopMonitorJudge(
        persona=judge_kwargs.pop("persona", "supervisor"),
        rules=(tag("progressing", next="review"), tag("stuck", next="ABORT")),
        **judge_kwargs,
    )
    return LoopMonitor(cycle=tuple(cycle), threshold=threshold, judge=judge)


# ==================== Consecutive repetition ====================


class TestLoopDetector:
    def test_counts_consecutive(self):
        detector = LoopDetector(LoopDetectionConfig(warn_threshold=None, abort_threshold=None))
        assert detector.check("a").count == 1
        assert detector.check("a").count == 2
        assert detector.check("b").count == 1
        assert detector.consecutive_count == 1

    def test_warn_above_threshold(self):
        detector = LoopDetector(LoopDetectionConfig(warn_threshold=2))
        results = [detector.check("a") for _ in range(3)]
        assert [r.should_warn for r in results] == [False, False, True]
        assert results[-1].is_loop
        assert not results[-1].should_abort

    def test_abort_above_threshold(self):
        detector = LoopDetector(LoopDetectionConfig(warn_threshold=None, abort_threshold=3))
        results = [detector.check("a") for _ in range(4)]
        assert [r.should_abort for r in results] == [False, False, False, True]

    def test_default_config_never_aborts(self):
        detector = LoopDetector()
        results = [detector.check("a") for _ in range(50)]
        assert not any(r.should_abort for r in results)
        assert results[10].should_warn

    def test_reset(self):
        detector = LoopDetector()
        detector.check("a")
        detector.check("a")
        detector.reset()
        assert detector.consecutive_count == 0
        assert detector.check("a").count == 1


# ==================== Cycle monitors ====================


class TestCycleDetector:
    def test_fires_at_threshold(self):
        monitor = _monitor(threshold=2)
        detector = CycleDetector([monitor])
        assert detector.record("review") is None
        assert detector.record("fix") is None
        assert detector.count_for(monitor) == 1
        assert detector.record("review") is None
        trigger = detector.record("fix")
        assert trigger == CycleTrigger(monitor=monitor, cycle_count=2)
        assert detector.count_for(monitor) == 0

    def test_outside_movement_resets(self):
        monitor = _monitor(threshold=2)
        detector = CycleDetector([monitor])
        detector.record("review")
        detector.record("fix")
        detector.record("plan")
        assert detector.count_for(monitor) == 0
        detector.record("review")
        assert detector.record("fix") is None

    def test_partial_cycle_does_not_count(self):
        monitor = _monitor(threshold=1)
        detector = CycleDetector([monitor])
        assert detector.record("fix") is None
        assert detector.record("review") is None
        assert detector.record("fix") is not None

    def test_no_monitors(self):
        detector = CycleDetector()
        assert detector.record("anything") is None

    def test_reset(self):
        monitor = _monitor(threshold=2)
        detector = CycleDetector([monitor])
        detector.record("review")
        detector.record("fix")
        detector.reset()
        assert detector.count_for(monitor) == 0


class TestBuildJudgeMovement:
    def test_default_template(self):
        movement = build_judge_movement(CycleTrigger(_monitor(), 3))
        assert movement.name == LOOP_JUDGE_MOVEMENT
        assert movement.persona == "supervisor"
        assert movement.allowed_tools == ()
        assert "3 times" in movement.instruction_template
        assert "review → fix" in movement.instruction_template
        assert "{task}" in movement.instruction_template
        assert [r.condition for r in movement.rules] == ["progressing", "stuck"]

    def test_custom_template(self):
        monitor = _monitor(instruction_template="Cycle {cycle} ran {cycle_count}x. Task: {task}")
        movement = build_judge_movement(CycleTrigger(monitor, 2))
        assert movement.instruction_template == "Cycle review → fix ran 2x. Task: {task}"
