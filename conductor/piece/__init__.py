"""Piece execution: engine, step executor and parallel runner."""

from .blocked import BlockedHandlerResult, handle_blocked
from .engine import IterationOutcome, PieceEngine, validate_piece_config
from .executor import StepExecutor, StepResult
from .instructions import (
    InstructionContext,
    build_instruction,
    build_report_instruction,
    build_status_judgment_instruction,
    escape_template_chars,
    generate_status_rules,
)
from .options import OptionsBuilder
from .parallel import ParallelRunner, aggregate_content
from .state import MAX_INPUT_LENGTH, MAX_USER_INPUTS, create_initial_state
from .transitions import determine_next_movement, extract_blocked_prompt

__all__ = [
    "PieceEngine",
    "IterationOutcome",
    "validate_piece_config",
    "StepExecutor",
    "StepResult",
    "ParallelRunner",
    "aggregate_content",
    "OptionsBuilder",
    "BlockedHandlerResult",
    "handle_blocked",
    "InstructionContext",
    "build_instruction",
    "build_report_instruction",
    "build_status_judgment_instruction",
    "escape_template_chars",
    "generate_status_rules",
    "MAX_INPUT_LENGTH",
    "MAX_USER_INPUTS",
    "create_initial_state",
    "determine_next_movement",
    "extract_blocked_prompt",
]
