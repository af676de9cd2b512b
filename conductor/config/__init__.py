"""
Piece configuration — raw models, normalization and engine options.
"""

from conductor.config.engine import (
    IterationLimitCallback,
    PieceEngineOptions,
    SessionUpdateCallback,
    UserInputCallback,
)
from conductor.config.models import (
    LoopDetectionRaw,
    LoopMonitorJudgeRaw,
    LoopMonitorRaw,
    MovementRaw,
    PieceConfigRaw,
    RuleRaw,
)
from conductor.config.normalize import (
    normalize_movement,
    normalize_piece_config,
    parse_aggregate_conditions,
    parse_rule,
)

__all__ = [
    # Raw models
    "RuleRaw",
    "MovementRaw",
    "LoopMonitorJudgeRaw",
    "LoopMonitorRaw",
    "LoopDetectionRaw",
    "PieceConfigRaw",

    # Normalization
    "normalize_piece_config",
    "normalize_movement",
    "parse_rule",
    "parse_aggregate_conditions",

    # Engine options
    "PieceEngineOptions",
    "UserInputCallback",
    "IterationLimitCallback",
    "SessionUpdateCallback",
]
