from .aggregate import AggregateEvaluator
from .rules import RuleEvaluator, RuleEvaluatorContext, detect_rule_index, has_tag_based_rules

__all__ = [
    "AggregateEvaluator",
    "RuleEvaluator",
    "RuleEvaluatorContext",
    "detect_rule_index",
    "has_tag_based_rules",
]
