"""Rule-based movement transitions."""

from __future__ import annotations

from ..types import Movement


def determine_next_movement(movement: Movement, rule_index: int) -> str | None:
    """Target of the rule at ``rule_index``, or None if out of range or untargeted."""
    if not 0 <= rule_index < len(movement.rules):
        return None
    return movement.rules[rule_index].next or None


def extract_blocked_prompt(content: str) -> str:
    """Pull the question out of a blocked response.

    Agents usually explain what they need after a ``Question:`` / ``Blocked:``
    marker; without one the whole response is the prompt.
    """
    for line_no, line in enumerate(content.splitlines()):
        stripped = line.strip()
        for marker in ("Question:", "Blocked:"):
            if stripped.lower().startswith(marker.lower()):
                rest = [stripped[len(marker):].strip(), *content.splitlines()[line_no + 1:]]
                prompt = "\n".join(rest).strip()
                if prompt:
                    return prompt
    return content.strip()
