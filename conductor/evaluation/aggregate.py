"""Aggregate condition evaluation for parallel movements."""

from __future__ import annotations

import logging

from ..types import AggregateRule, Movement, ParallelMovement, PieceState, SimpleMovement

logger = logging.getLogger(__name__)


class AggregateEvaluator:
    """Resolves ``all(...)`` / ``any(...)`` rules against sub-movement matches.

    - ``all("X")``: every sub-movement matched a rule whose condition is X.
    - ``all("A", "B")``: the i-th sub-movement matched the i-th condition.
    - ``any("X")``: at least one sub-movement matched X.
    - ``any("A", "B")``: at least one sub-movement matched A or B.

    A sub-movement without a recorded match fails ``all`` and is skipped by
    ``any``. Non-parallel movements and empty fan-outs never match.
    """

    def __init__(self, movement: Movement, state: PieceState) -> None:
        self.movement = movement
        self.state = state

    def evaluate(self) -> int:
        """Return the 0-based index of the first matching aggregate rule, or -1."""
        movement = self.movement
        if not isinstance(movement, ParallelMovement) or not movement.parallel:
            return -1

        subs = movement.parallel
        for i, rule in enumerate(movement.rules):
            if not isinstance(rule, AggregateRule):
                continue
            targets = rule.aggregate_conditions

            if rule.aggregate_type == "all":
                if len(targets) > 1:
                    if len(targets) != len(subs):
                        logger.error(
                            "all() condition count mismatch in %s: %d conditions, %d sub-movements",
                            movement.name, len(targets), len(subs),
                        )
                        continue
                    matched = all(
                        self._matched_condition(sub) == expected
                        for sub, expected in zip(subs, targets)
                    )
                else:
                    matched = all(self._matched_condition(sub) == targets[0] for sub in subs)
            else:
                matched = any(
                    cond is not None and cond in targets
                    for cond in (self._matched_condition(sub) for sub in subs)
                )

            if matched:
                logger.debug(
                    "Aggregate %s() matched in %s: %s (rule %d)",
                    rule.aggregate_type, movement.name, targets, i,
                )
                return i
        return -1

    def _matched_condition(self, sub: SimpleMovement) -> str | None:
        output = self.state.movement_outputs.get(sub.name)
        if output is None or output.matched_rule_index is None:
            return None
        if not 0 <= output.matched_rule_index < len(sub.rules):
            return None
        return sub.rules[output.matched_rule_index].condition
