"""Unit tests for concurrent sub-movement execution."""

import asyncio

import pytest

from conductor.errors import ExecutionError
from conductor.piece.executor import StepExecutor
from conductor.piece.instructions import InstructionContext
from conductor.piece.options import OptionsBuilder
from conductor.piece.parallel import ParallelRunner
from conductor.providers import ScriptedAgentInvoker, ScriptedReply
from tests.builders import all_of, any_of, parallel, phase_of, simple, tag


def _runner(invoker, state, judge=None, **kwargs):
    def context(movement, movement_iteration):
        return InstructionContext(
            task="Review", iteration=1, max_iterations=10, movement_iteration=movement_iteration, cwd="/work"
        )

    executor = StepExecutor(
        invoker=invoker,
        state=state,
        options_builder=OptionsBuilder("/work"),
        context_factory=context,
        judge=judge,
    )
    return ParallelRunner(executor, state, **kwargs)


def _sub_of(instruction, names):
    return next(name for name in names if f"[{name.upper()}:1]" in instruction)


def _reviewers(persona=None):
    subs = [
        simple("alpha", tag("approved"), tag("needs_fix"), persona=persona),
        simple("beta", tag("approved"), tag("needs_fix"), persona=persona),
    ]
    return parallel(
        "reviewers", subs, all_of("approved", next="COMPLETE"), any_of("needs_fix", next="fix")
    )


def _verdicts(**tags):
    """Script: phase 1 says '<sub> reviewed', phase 3 answers with the given tag number."""

    def script(persona, instruction, options):
        sub = _sub_of(instruction, list(tags))
        if phase_of(options) == 1:
            return ScriptedReply(f"{sub} reviewed")
        return ScriptedReply(f"[{sub.upper()}:{tags[sub]}]")

    return script


class TestParallelRunner:
    async def test_fan_in_aggregate(self, state, judge):
        invoker = ScriptedAgentInvoker(_verdicts(alpha=1, beta=1))
        result = await _runner(invoker, state, judge).run(_reviewers())

        response = result.response
        assert response.persona == "reviewers"
        assert response.status == "done"
        assert response.content == "## alpha\nalpha reviewed\n\n---\n\n## beta\nbeta reviewed"
        assert (response.matched_rule_index, response.matched_rule_method) == (0, "aggregate")
        judge.evaluate.assert_not_called()
        assert state.movement_outputs["reviewers"] is response
        assert state.movement_outputs["alpha"].matched_rule_index == 0
        assert state.movement_iterations == {"reviewers": 1, "alpha": 1, "beta": 1}

    async def test_any_rule(self, state):
        invoker = ScriptedAgentInvoker(_verdicts(alpha=1, beta=2))
        result = await _runner(invoker, state).run(_reviewers())
        assert result.response.matched_rule_index == 1

    async def test_branch_sessions_are_separate(self, state):
        invoker = ScriptedAgentInvoker(_verdicts(alpha=1, beta=1))
        await _runner(invoker, state).run(_reviewers(persona="reviewer"))

        assert state.agent_sessions["alpha"] != state.agent_sessions["beta"]
        assert "reviewer" not in state.agent_sessions
        for call in invoker.calls:
            if phase_of(call.options) == 3:
                sub = _sub_of(call.instruction, ["alpha", "beta"])
                assert call.options.session_id == state.agent_sessions[sub]

    async def test_failure_reraised_after_all_branches(self, state):
        def script(persona, instruction, options):
            sub = _sub_of(instruction, ["alpha", "beta"])
            if sub == "beta":
                raise RuntimeError("beta crashed")
            return ScriptedReply("alpha reviewed" if phase_of(options) == 1 else "[ALPHA:1]")

        with pytest.raises(ExecutionError, match="beta crashed"):
            await _runner(ScriptedAgentInvoker(script), state).run(_reviewers())
        assert state.movement_outputs["alpha"].matched_rule_index == 0
        assert "reviewers" not in state.movement_outputs

    async def test_stream_prefixed(self, state):
        chunks = []
        invoker = ScriptedAgentInvoker(_verdicts(alpha=1, beta=1))
        await _runner(invoker, state, on_stream=chunks.append).run(_reviewers())
        assert "[alpha] alpha reviewed" in chunks
        assert "[beta] [BETA:1]" in chunks

    async def test_max_concurrency(self, state):
        active = 0
        peak = 0
        verdicts = _verdicts(alpha=1, beta=1)

        async def script(persona, instruction, options):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return verdicts(persona, instruction, options)

        result = await _runner(ScriptedAgentInvoker(script), state, max_concurrency=1).run(_reviewers())
        assert peak == 1
        assert result.response.matched_rule_index == 0

    async def test_branches_overlap_without_limit(self, state):
        active = 0
        peak = 0
        verdicts = _verdicts(alpha=1, beta=1)

        async def script(persona, instruction, options):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return verdicts(persona, instruction, options)

        await _runner(ScriptedAgentInvoker(script), state).run(_reviewers())
        assert peak == 2
