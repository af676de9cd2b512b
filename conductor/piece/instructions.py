"""Instruction builders for the three execution phases.

Phase 1 expands the movement's template; phase 2 asks the resumed session to
write its report file(s); phase 3 asks for a single status tag.

Supported template placeholders:

- ``{task}``: the piece task
- ``{iteration}`` / ``{max_iterations}``: piece-wide counters
- ``{movement_iteration}``: executions of this movement so far
- ``{previous_response}``: last movement output (only with ``pass_previous_response``)
- ``{user_inputs}``: accumulated user inputs, one per line
- ``{report_dir}``: report directory
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from ..evaluation import has_tag_based_rules
from ..types import AgentResponse, Movement, Rule, SimpleMovement


@dataclass
class InstructionContext:
    task: str
    iteration: int
    max_iterations: int
    movement_iteration: int
    cwd: str
    user_inputs: list[str] = field(default_factory=list)
    previous_output: AgentResponse | None = None
    report_dir: str | None = None
    interactive: bool = False


def escape_template_chars(text: str) -> str:
    """Neutralize braces in dynamic content so it cannot inject placeholders."""
    return text.replace("{", "｛").replace("}", "｝")


def render_execution_metadata(cwd: str) -> str:
    return "\n".join(
        [
            "## Execution Context",
            f"- Working Directory: {cwd}",
            "",
            "## Execution Rules",
            "- **Do NOT run git commit.** Commits are handled by the system after the piece completes.",
            "- **Do NOT use `cd` in shell commands.** Your working directory is already set correctly.",
            "",
        ]
    )


def generate_status_rules(movement_name: str, rules: Sequence[Rule], interactive: bool = False) -> str:
    """Criteria table, output list and appendix blocks for ``[MOVEMENT:N]`` tags.

    Tags keep their 1-based position in the full rule list even when
    interactive-only rules are hidden.
    """
    tag = movement_name.upper()
    visible = [(i, r) for i, r in enumerate(rules) if interactive or not r.interactive_only]

    lines = [
        "## Decision Criteria",
        "",
        "| # | Condition | Tag |",
        "|---|------|------|",
    ]
    lines += [f"| {i + 1} | {r.condition} | `[{tag}:{i + 1}]` |" for i, r in visible]
    lines += ["", "## Output Format", "", "Output the tag corresponding to your decision:", ""]
    lines += [f"- `[{tag}:{i + 1}]` — {r.condition}" for i, r in visible]

    with_appendix = [(i, r) for i, r in visible if r.appendix]
    if with_appendix:
        lines += ["", "### Appendix Template"]
        for i, r in with_appendix:
            lines += [
                "",
                f"When outputting `[{tag}:{i + 1}]`, append the following:",
                "```",
                (r.appendix or "").rstrip(),
                "```",
            ]
    return "\n".join(lines)


def render_status_rules_header() -> str:
    return "\n".join(
        [
            "# Required: Status Output Rules",
            "",
            "**The piece will stop without this tag.**",
            "Your final output MUST include a status tag following the rules below.",
            "",
        ]
    )


def build_instruction(movement: Movement, ctx: InstructionContext) -> str:
    instruction = movement.instruction_template
    instruction = instruction.replace("{task}", escape_template_chars(ctx.task))
    instruction = instruction.replace("{iteration}", str(ctx.iteration))
    instruction = instruction.replace("{max_iterations}", str(ctx.max_iterations))
    instruction = instruction.replace("{movement_iteration}", str(ctx.movement_iteration))

    if movement.pass_previous_response:
        previous = ctx.previous_output.content if ctx.previous_output else ""
        instruction = instruction.replace("{previous_response}", escape_template_chars(previous))

    instruction = instruction.replace(
        "{user_inputs}", escape_template_chars("\n".join(ctx.user_inputs))
    )
    if ctx.report_dir:
        instruction = instruction.replace("{report_dir}", ctx.report_dir)

    if has_tag_based_rules(movement):
        rules_prompt = generate_status_rules(movement.name, movement.rules, ctx.interactive)
        instruction = f"{instruction}\n\n{render_status_rules_header()}\n{rules_prompt}"

    return f"{render_execution_metadata(ctx.cwd)}\n{instruction}"


def build_report_instruction(
    movement: SimpleMovement, *, cwd: str, report_dir: str | None, movement_iteration: int
) -> str:
    directory = report_dir or "."
    files = "\n".join(f"  - {directory}/{name}" for name in movement.report)
    return "\n".join(
        [
            render_execution_metadata(cwd),
            "## Report Output",
            "Write the report for the work you just completed in this conversation.",
            "",
            f"- Report Directory: {directory}/",
            "- Report File(s):",
            files,
            f"- Movement Iteration: {movement_iteration}",
            "",
            "Use only the file-writing tool. Do not modify any file other than the report(s).",
            "If a report file already exists, append a new section for this iteration.",
        ]
    )


def build_status_judgment_instruction(movement: Movement, interactive: bool = False) -> str:
    if not movement.rules:
        raise ValueError(f'Status judgment requested for movement "{movement.name}" which has no rules')
    return "\n".join(
        [
            "Review the work you just completed and decide which condition applies.",
            "Do not use any tools. Reply with the single status tag only.",
            "",
            generate_status_rules(movement.name, movement.rules, interactive),
        ]
    )
