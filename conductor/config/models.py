"""
Raw configuration models

Pydantic models describing the piece file structure (YAML/JSON shaped,
snake_case keys) before normalization.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RuleRaw(BaseModel):
    """Transition rule as written in a piece file"""
    condition: str = Field(..., min_length=1, description='Condition text, ai("..."), all("...") or any("...")')
    next: str | None = Field(None, description="Target movement, COMPLETE or ABORT")
    appendix: str | None = Field(None, description="Extra output template requested with this tag")
    interactive_only: bool = Field(False, description="Only selectable in interactive runs")


class MovementRaw(BaseModel):
    """Movement definition"""
    name: str = Field(..., min_length=1, description="Movement name, unique within the piece")
    persona: str | None = Field(None, description="Persona reference; defaults to the movement name")
    description: str | None = None
    instruction_template: str | None = Field(None, description="Instruction template")
    instruction: str | None = Field(None, description="Alias of instruction_template")
    rules: list[RuleRaw] | None = None
    report: str | list[str | dict[str, str]] | dict[str, Any] | None = Field(
        None, description="Report file(s) written in phase 2"
    )
    parallel: list[MovementRaw] | None = Field(None, description="Concurrent sub-movements")
    pass_previous_response: bool = True
    allowed_tools: list[str] | None = None
    model: str | None = None
    provider: str | None = None
    permission_mode: str | None = None


class LoopMonitorJudgeRaw(BaseModel):
    persona: str = Field("supervisor", description="Judge persona")
    instruction_template: str | None = None
    rules: list[RuleRaw] = Field(..., min_length=1)


class LoopMonitorRaw(BaseModel):
    cycle: list[str] = Field(..., min_length=1, description="Movement names forming the watched cycle")
    threshold: int = Field(..., ge=1, description="Cycle repetitions before the judge runs")
    judge: LoopMonitorJudgeRaw


class LoopDetectionRaw(BaseModel):
    warn_threshold: int | None = Field(10, ge=1)
    abort_threshold: int | None = Field(None, ge=1)


class PieceConfigRaw(BaseModel):
    """Complete piece file"""
    name: str = Field(..., min_length=1)
    description: str | None = None
    movements: list[MovementRaw] = Field(..., min_length=1)
    initial_movement: str | None = Field(None, description="Defaults to the first movement")
    max_iterations: int = Field(10, gt=0)
    loop_monitors: list[LoopMonitorRaw] | None = None
    loop_detection: LoopDetectionRaw | None = None
    answer_persona: str | None = None
