"""Core type definitions — re-exported from sub-modules."""

from .responses import AgentStatus, AgentResponse, RuleMatch, RuleMatchMethod
from .piece import (
    ABORT, COMPLETE, TERMINAL_MOVEMENTS,
    AggregateRule, AggregateType, AiRule, TagRule, Rule,
    SimpleMovement, ParallelMovement, Movement,
    LoopDetectionConfig, LoopMonitor, LoopMonitorJudge, PieceConfig,
)
from .state import PieceState, PieceStatus
from .requests import IterationLimitRequest, UserInputRequest
from .invokers import AgentCallOptions, AgentInvoker, JudgeCondition, JudgeInvoker, StreamCallback
from .events import (
    PieceEvent, PhaseName,
    MovementStartEvent, MovementCompleteEvent, MovementBlockedEvent, MovementUserInputEvent,
    LoopDetectedEvent, PhaseStartEvent, PhaseCompleteEvent, LoopMonitorEvent,
    IterationLimitEvent, PieceCompleteEvent, PieceAbortEvent,
)

__all__ = [
    "AgentStatus", "AgentResponse", "RuleMatch", "RuleMatchMethod",
    "ABORT", "COMPLETE", "TERMINAL_MOVEMENTS",
    "AggregateRule", "AggregateType", "AiRule", "TagRule", "Rule",
    "SimpleMovement", "ParallelMovement", "Movement",
    "LoopDetectionConfig", "LoopMonitor", "LoopMonitorJudge", "PieceConfig",
    "PieceState", "PieceStatus", "IterationLimitRequest", "UserInputRequest",
    "AgentCallOptions", "AgentInvoker", "JudgeCondition", "JudgeInvoker", "StreamCallback",
    "PieceEvent", "PhaseName",
    "MovementStartEvent", "MovementCompleteEvent", "MovementBlockedEvent", "MovementUserInputEvent",
    "LoopDetectedEvent", "PhaseStartEvent", "PhaseCompleteEvent", "LoopMonitorEvent",
    "IterationLimitEvent", "PieceCompleteEvent", "PieceAbortEvent",
]
