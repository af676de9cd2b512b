"""Rule evaluation — determines which rule of a movement matched.

Resolution order (first match wins):

1. Aggregate conditions: ``all()`` / ``any()`` over sub-movement results
2. Tag detection in the phase 3 (status judgment) output
3. Tag detection in the phase 1 (execution) output
4. Judge over ``ai()`` conditions only
5. Judge over every condition (final fallback)

A movement with rules that matches nothing raises RuleResolutionError.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..errors import ExecutionError, RuleResolutionError
from ..types import (
    AggregateRule,
    AiRule,
    JudgeCondition,
    JudgeInvoker,
    Movement,
    PieceState,
    Rule,
    RuleMatch,
)
from .aggregate import AggregateEvaluator

logger = logging.getLogger(__name__)


def detect_rule_index(content: str, movement_name: str) -> int:
    """Find ``[MOVEMENT:N]`` in content. Returns the 0-based rule index, or -1.

    >>> detect_rule_index("... [PLAN:2] ...", "plan")
    1
    """
    pattern = re.compile(rf"\[{re.escape(movement_name.upper())}:(\d+)\]", re.IGNORECASE)
    match = pattern.search(content)
    if match:
        index = int(match.group(1)) - 1
        return index if index >= 0 else -1
    return -1


def has_tag_based_rules(movement: Movement) -> bool:
    """True unless every rule is an ai() or aggregate condition."""
    if not movement.rules:
        return False
    return not all(isinstance(r, (AiRule, AggregateRule)) for r in movement.rules)


@dataclass
class RuleEvaluatorContext:
    state: PieceState
    cwd: str
    judge: JudgeInvoker | None = None
    interactive: bool = False


class RuleEvaluator:
    def __init__(self, movement: Movement, ctx: RuleEvaluatorContext) -> None:
        self.movement = movement
        self.ctx = ctx
        # ai() rules the judge has already declined during this evaluation.
        self._rejected_ai: set[int] = set()

    def _eligible(self, rule: Rule) -> bool:
        return self.ctx.interactive or not rule.interactive_only

    async def evaluate(self, agent_content: str, tag_content: str) -> RuleMatch | None:
        """Return the matched rule, or None for a movement without rules."""
        rules = self.movement.rules
        if not rules:
            return None

        agg_index = AggregateEvaluator(self.movement, self.ctx.state).evaluate()
        if agg_index >= 0:
            return RuleMatch(agg_index, "aggregate")

        if tag_content:
            index = self._detect_tag(tag_content)
            if index >= 0:
                return RuleMatch(index, "phase3_tag")

        if agent_content:
            index = self._detect_tag(agent_content)
            if index >= 0:
                return RuleMatch(index, "phase1_tag")

        index = await self._evaluate_ai_conditions(agent_content)
        if index >= 0:
            return RuleMatch(index, "ai_judge")

        match = await self._evaluate_all_conditions(agent_content)
        if match is not None:
            return match

        raise RuleResolutionError(self.movement.name)

    def _detect_tag(self, content: str) -> int:
        index = detect_rule_index(content, self.movement.name)
        rules = self.movement.rules
        if 0 <= index < len(rules) and self._eligible(rules[index]):
            return index
        return -1

    async def _evaluate_ai_conditions(self, agent_output: str) -> int:
        ai_rules = [
            (i, rule)
            for i, rule in enumerate(self.movement.rules)
            if isinstance(rule, AiRule) and self._eligible(rule)
        ]
        if not ai_rules:
            return -1

        logger.debug(
            "Evaluating %d ai() condition(s) via judge for %s", len(ai_rules), self.movement.name
        )
        # The judge sees positions within the ai() subset; map back afterwards.
        conditions = [JudgeCondition(index=j, text=rule.ai_condition) for j, (_, rule) in enumerate(ai_rules)]
        result = await self._call_judge(agent_output, conditions)
        if 0 <= result < len(ai_rules):
            original_index = ai_rules[result][0]
            logger.debug(
                "Judge matched ai() condition %d -> rule %d in %s",
                result, original_index, self.movement.name,
            )
            return original_index

        logger.debug("Judge did not match any ai() condition in %s", self.movement.name)
        if self.ctx.judge is not None:
            self._rejected_ai = {i for i, _ in ai_rules}
        return -1

    async def _evaluate_all_conditions(self, agent_output: str) -> RuleMatch | None:
        # ai() rules were already offered to the judge in the previous tier and
        # are submitted again here together with every other condition.
        conditions = [
            JudgeCondition(index=i, text=rule.condition)
            for i, rule in enumerate(self.movement.rules)
            if self._eligible(rule)
        ]
        if not conditions:
            return None

        if len(conditions) == 1:
            if conditions[0].index in self._rejected_ai:
                logger.debug(
                    "Single ai() condition in %s was rejected by the judge, not auto-selecting",
                    self.movement.name,
                )
                return None
            logger.debug("Single branch in %s, auto-selecting rule %d", self.movement.name, conditions[0].index)
            return RuleMatch(conditions[0].index, "auto_select")

        logger.debug(
            "Evaluating all %d condition(s) via judge (final fallback) for %s",
            len(conditions), self.movement.name,
        )
        judge_conditions = [JudgeCondition(index=j, text=c.text) for j, c in enumerate(conditions)]
        result = await self._call_judge(agent_output, judge_conditions)
        if 0 <= result < len(conditions):
            logger.debug(
                "Judge (fallback) matched rule %d in %s", conditions[result].index, self.movement.name
            )
            return RuleMatch(conditions[result].index, "ai_judge_fallback")

        logger.debug("Judge (fallback) did not match any condition in %s", self.movement.name)
        return None

    async def _call_judge(self, content: str, conditions: list[JudgeCondition]) -> int:
        if self.ctx.judge is None:
            return -1
        try:
            return await self.ctx.judge.evaluate(content, conditions, cwd=self.ctx.cwd)
        except Exception as e:
            raise ExecutionError(
                self.movement.name, f'Judge call failed for movement "{self.movement.name}": {e}', e
            ) from e
