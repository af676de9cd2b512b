from .detector import LoopCheckResult, LoopDetector
from .monitor import LOOP_JUDGE_MOVEMENT, CycleDetector, CycleTrigger, build_judge_movement

__all__ = [
    "LoopCheckResult",
    "LoopDetector",
    "LOOP_JUDGE_MOVEMENT",
    "CycleDetector",
    "CycleTrigger",
    "build_judge_movement",
]
