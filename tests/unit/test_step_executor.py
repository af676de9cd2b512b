"""Unit tests for the three-phase step executor."""

from unittest.mock import MagicMock, call

import pytest

from conductor.errors import ExecutionError, SessionError
from conductor.piece.executor import StepExecutor
from conductor.piece.instructions import InstructionContext
from conductor.piece.options import OptionsBuilder
from conductor.providers import ScriptedAgentInvoker, ScriptedReply
from conductor.types import AgentResponse, PieceState
from tests.builders import ai, phase_of, simple, tag


def _executor(invoker, state, **kwargs):
    def context(movement, movement_iteration):
        return InstructionContext(
            task="Add login",
            iteration=1,
            max_iterations=10,
            movement_iteration=movement_iteration,
            cwd="/work",
        )

    return StepExecutor(
        invoker=invoker,
        state=state,
        options_builder=OptionsBuilder("/work"),
        context_factory=context,
        **kwargs,
    )


def _plan(**kwargs):
    return simple("plan", tag("clear", next="implement"), tag("unclear", next="ABORT"), **kwargs)


# ==================== Phases ====================


class TestPhases:
    async def test_all_three_phases(self, state):
        invoker = ScriptedAgentInvoker(
            [ScriptedReply("plan drafted"), ScriptedReply("report written"), ScriptedReply("[PLAN:1]")]
        )
        result = await _executor(invoker, state).execute(_plan(report=("plan.md",)))

        assert [phase_of(c.options) for c in invoker.calls] == [1, 2, 3]
        assert result.response.content == "plan drafted"
        assert result.response.rule_match.method == "phase3_tag"
        assert result.response.matched_rule_index == 0
        assert state.movement_outputs["plan"] is result.response
        assert state.movement_iterations == {"plan": 1}
        assert "Add login" in result.instruction

    async def test_report_phase_skipped_without_report(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("plan drafted"), ScriptedReply("[PLAN:2]")])
        result = await _executor(invoker, state).execute(_plan())
        assert [phase_of(c.options) for c in invoker.calls] == [1, 3]
        assert result.response.matched_rule_index == 1

    async def test_status_phase_skipped_for_ai_rules(self, state, judge):
        judge.evaluate.return_value = 0
        invoker = ScriptedAgentInvoker([ScriptedReply("all good")])
        movement = simple("check", ai("work is complete", next="COMPLETE"), ai("work is incomplete", next="check"))
        result = await _executor(invoker, state, judge=judge).execute(movement)
        assert len(invoker.calls) == 1
        assert result.response.rule_match.method == "ai_judge"

    async def test_movement_without_rules(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("hello")])
        result = await _executor(invoker, state).execute(simple("greet"))
        assert len(invoker.calls) == 1
        assert result.response.matched_rule_index is None

    @pytest.mark.parametrize("status", ["blocked", "error", "interrupted"])
    async def test_non_done_stops_after_phase1(self, state, status):
        invoker = ScriptedAgentInvoker([ScriptedReply("need help", status=status)])
        result = await _executor(invoker, state).execute(_plan(report=("plan.md",)))
        assert len(invoker.calls) == 1
        assert result.response.status == status
        assert result.response.matched_rule_index is None
        assert state.movement_outputs["plan"].status == status

    async def test_phase1_tag_used_when_phase3_has_none(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("[PLAN:2] unclear"), ScriptedReply("hmm")])
        result = await _executor(invoker, state).execute(_plan())
        assert result.response.rule_match.method == "phase1_tag"
        assert result.response.matched_rule_index == 1

    async def test_report_phase_write_only(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("y"), ScriptedReply("[PLAN:1]")])
        movement = _plan(report=("plan.md",), allowed_tools=("Read", "Write"))
        await _executor(invoker, state, report_dir="/reports").execute(movement)
        phase1, phase2, phase3 = invoker.calls
        assert phase1.options.allowed_capabilities == ("Read",)
        assert phase2.options.allowed_capabilities == ("Write",)
        assert "/reports/plan.md" in phase2.instruction
        assert phase3.options.allowed_capabilities == ()


# ==================== Sessions ====================


class TestSessions:
    async def test_resume_phases_use_phase1_session(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("y"), ScriptedReply("[PLAN:1]")])
        await _executor(invoker, state).execute(_plan(report=("plan.md",)))
        phase1, phase2, phase3 = invoker.calls
        assert phase1.options.session_id is None
        assert phase2.options.session_id == "plan-session-1"
        assert phase3.options.session_id == "plan-session-1"
        assert state.agent_sessions == {"plan": "plan-session-1"}

    async def test_existing_session_is_resumed(self, state):
        state.agent_sessions["plan"] = "saved"
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("[PLAN:1]")])
        await _executor(invoker, state).execute(_plan())
        assert [c.options.session_id for c in invoker.calls] == ["saved", "saved"]

    async def test_latest_handle_wins(self, state):
        on_update = MagicMock()
        invoker = ScriptedAgentInvoker(
            [ScriptedReply("x"), ScriptedReply("y", session_id="rotated"), ScriptedReply("[PLAN:1]")]
        )
        await _executor(invoker, state, on_session_update=on_update).execute(_plan(report=("plan.md",)))
        assert invoker.calls[2].options.session_id == "rotated"
        assert state.agent_sessions["plan"] == "rotated"
        assert on_update.call_args_list == [call("plan", "plan-session-1"), call("plan", "rotated")]

    async def test_missing_session_for_resume(self, state):
        invoker = ScriptedAgentInvoker([AgentResponse(persona="plan", status="done", content="x")])
        with pytest.raises(SessionError):
            await _executor(invoker, state).execute(_plan(report=("plan.md",)))
        # Phase 1 output is kept for inspection.
        assert state.movement_outputs["plan"].content == "x"

    async def test_session_key_override(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("[BRANCH:1]")])
        movement = simple("branch", tag("ok"), persona="reviewer")
        await _executor(invoker, state).execute(movement, session_key="branch")
        assert "branch" in state.agent_sessions
        assert "reviewer" not in state.agent_sessions


# ==================== Failures & events ====================


class TestFailures:
    async def test_invoker_exception_wrapped(self, state):
        invoker = ScriptedAgentInvoker()
        with pytest.raises(ExecutionError) as exc:
            await _executor(invoker, state).execute(_plan())
        assert exc.value.movement == "plan"
        assert isinstance(exc.value.cause, RuntimeError)

    async def test_failed_status_phase(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("overloaded", status="error")])
        with pytest.raises(ExecutionError, match="Status judgment phase failed"):
            await _executor(invoker, state).execute(_plan())

    async def test_failed_report_phase(self, state):
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("stopped", status="interrupted")])
        with pytest.raises(ExecutionError, match="Report phase failed"):
            await _executor(invoker, state).execute(_plan(report=("plan.md",)))

    async def test_phase_events(self, state, event_bus, recorded_events):
        invoker = ScriptedAgentInvoker([ScriptedReply("x"), ScriptedReply("[PLAN:1]")])
        await _executor(invoker, state, events=event_bus).execute(_plan())
        assert [(e.type, e.phase, e.phase_name) for e in recorded_events] == [
            ("phase:start", 1, "execute"),
            ("phase:complete", 1, "execute"),
            ("phase:start", 3, "judge"),
            ("phase:complete", 3, "judge"),
        ]
        assert recorded_events[-1].content == "[PLAN:1]"
        assert recorded_events[-1].status == "done"

    async def test_phase_complete_event_on_exception(self, state, event_bus, recorded_events):
        with pytest.raises(ExecutionError):
            await _executor(ScriptedAgentInvoker(), state, events=event_bus).execute(_plan())
        assert recorded_events[-1].type == "phase:complete"
        assert recorded_events[-1].status == "error"
