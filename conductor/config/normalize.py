"""Raw piece mapping → immutable PieceConfig, classifying every rule condition once."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ..errors import ConfigError
from ..types import (
    AggregateRule,
    AiRule,
    LoopDetectionConfig,
    LoopMonitor,
    LoopMonitorJudge,
    Movement,
    ParallelMovement,
    PieceConfig,
    Rule,
    SimpleMovement,
    TagRule,
)
from .models import LoopMonitorRaw, MovementRaw, PieceConfigRaw, RuleRaw

AI_CONDITION_RE = re.compile(r'^ai\("(.+)"\)$')
AGGREGATE_CONDITION_RE = re.compile(r"^(all|any)\((.+)\)$")
_QUOTED_RE = re.compile(r'"([^"]+)"')


def parse_aggregate_conditions(args_text: str) -> tuple[str, ...]:
    conditions = tuple(_QUOTED_RE.findall(args_text))
    if not conditions:
        raise ConfigError(f"Invalid aggregate condition format: {args_text}")
    return conditions


def parse_rule(raw: RuleRaw) -> Rule:
    common = dict(
        condition=raw.condition,
        next=raw.next,
        appendix=raw.appendix,
        interactive_only=raw.interactive_only,
    )
    ai_match = AI_CONDITION_RE.match(raw.condition)
    if ai_match:
        return AiRule(ai_condition=ai_match.group(1), **common)

    agg_match = AGGREGATE_CONDITION_RE.match(raw.condition)
    if agg_match:
        return AggregateRule(
            aggregate_type=agg_match.group(1),  # type: ignore[arg-type]
            aggregate_conditions=parse_aggregate_conditions(agg_match.group(2)),
            **common,
        )

    return TagRule(**common)


def _report_files(report: Any) -> tuple[str, ...]:
    if report is None:
        return ()
    if isinstance(report, str):
        return (report,)
    if isinstance(report, Mapping):
        name = report.get("name")
        if not name:
            raise ConfigError(f"Report object requires a name: {report!r}")
        return (str(name),)
    files: list[str] = []
    for entry in report:
        if isinstance(entry, str):
            files.append(entry)
        else:
            # [{label: path}, ...]
            files.extend(str(path) for path in entry.values())
    return tuple(files)


def _simple_movement(raw: MovementRaw) -> SimpleMovement:
    return SimpleMovement(
        name=raw.name,
        persona=raw.persona or raw.name,
        description=raw.description,
        instruction_template=raw.instruction_template or raw.instruction or "{task}",
        rules=tuple(parse_rule(r) for r in raw.rules or ()),
        report=_report_files(raw.report),
        pass_previous_response=raw.pass_previous_response,
        allowed_tools=tuple(raw.allowed_tools) if raw.allowed_tools is not None else None,
        model=raw.model,
        provider=raw.provider,
        permission_mode=raw.permission_mode,
    )


def normalize_movement(raw: MovementRaw) -> Movement:
    if not raw.parallel:
        return _simple_movement(raw)

    subs: list[SimpleMovement] = []
    for sub in raw.parallel:
        if sub.parallel:
            raise ConfigError(
                f'Nested parallel movements are not supported ("{sub.name}" in "{raw.name}")'
            )
        subs.append(_simple_movement(sub))
    return ParallelMovement(
        name=raw.name,
        parallel=tuple(subs),
        description=raw.description,
        rules=tuple(parse_rule(r) for r in raw.rules or ()),
    )


def normalize_loop_monitor(raw: LoopMonitorRaw) -> LoopMonitor:
    judge_rules: list[TagRule] = []
    for r in raw.judge.rules:
        # Judge rules are matched by tag or judge; ai()/aggregate syntax has no meaning here.
        judge_rules.append(
            TagRule(
                condition=r.condition,
                next=r.next,
                appendix=r.appendix,
                interactive_only=r.interactive_only,
            )
        )
    return LoopMonitor(
        cycle=tuple(raw.cycle),
        threshold=raw.threshold,
        judge=LoopMonitorJudge(
            persona=raw.judge.persona,
            instruction_template=raw.judge.instruction_template,
            rules=tuple(judge_rules),
        ),
    )


def normalize_piece_config(raw: Mapping[str, Any] | PieceConfigRaw) -> PieceConfig:
    """Validate a raw piece mapping and convert it to a PieceConfig.

    Raises:
        ConfigError: on schema violations, malformed aggregate conditions,
            duplicate movement names or loop monitors naming unknown movements.
    """
    if isinstance(raw, PieceConfigRaw):
        parsed = raw
    else:
        try:
            parsed = PieceConfigRaw.model_validate(raw)
        except ValidationError as e:
            name = raw.get("name") if isinstance(raw, Mapping) else None
            raise ConfigError(f"Invalid piece configuration: {e}", piece_name=name) from e

    try:
        movements = tuple(normalize_movement(m) for m in parsed.movements)
    except ConfigError as e:
        e.piece_name = parsed.name
        raise

    seen: set[str] = set()
    for movement in movements:
        names = [movement.name]
        if isinstance(movement, ParallelMovement):
            names.extend(sub.name for sub in movement.parallel)
        for name in names:
            if name in seen:
                raise ConfigError(
                    f'Duplicate movement name "{name}"', piece_name=parsed.name
                )
            seen.add(name)

    monitors = tuple(normalize_loop_monitor(m) for m in parsed.loop_monitors or ())
    top_level = {m.name for m in movements}
    for monitor in monitors:
        unknown = [name for name in monitor.cycle if name not in top_level]
        if unknown:
            raise ConfigError(
                f"Loop monitor cycle references unknown movement(s): {', '.join(unknown)}",
                piece_name=parsed.name,
            )

    detection = parsed.loop_detection
    return PieceConfig(
        name=parsed.name,
        description=parsed.description,
        movements=movements,
        initial_movement=parsed.initial_movement or movements[0].name,
        max_iterations=parsed.max_iterations,
        loop_monitors=monitors,
        loop_detection=(
            LoopDetectionConfig(
                warn_threshold=detection.warn_threshold,
                abort_threshold=detection.abort_threshold,
            )
            if detection
            else LoopDetectionConfig()
        ),
        answer_persona=parsed.answer_persona,
    )
