"""Step executor — the three-phase protocol for a single movement.

Phase 1 (execute) runs the movement's instruction. Phase 2 (report) resumes
the same session with write-only capability when the movement declares
report files; its text is discarded. Phase 3 (judge) resumes the session
with no tools and asks for a status tag, but only when some rule relies on
tag detection. The matched rule is then resolved from the phase 1 and
phase 3 outputs.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..config import SessionUpdateCallback
from ..errors import ExecutionError, SessionError
from ..evaluation import RuleEvaluator, RuleEvaluatorContext, has_tag_based_rules
from ..events import EventBus
from ..types import (
    AgentCallOptions,
    AgentInvoker,
    AgentResponse,
    JudgeInvoker,
    Movement,
    PhaseCompleteEvent,
    PhaseName,
    PhaseStartEvent,
    PieceState,
    RuleMatch,
    SimpleMovement,
    StreamCallback,
)
from .instructions import (
    InstructionContext,
    build_instruction,
    build_report_instruction,
    build_status_judgment_instruction,
)
from .options import REPORT_CAPABILITIES, OptionsBuilder
from .state import increment_movement_iteration

logger = logging.getLogger(__name__)

ContextFactory = Callable[[Movement, int], InstructionContext]


@dataclass(frozen=True)
class StepResult:
    response: AgentResponse
    instruction: str


class StepExecutor:
    def __init__(
        self,
        *,
        invoker: AgentInvoker,
        state: PieceState,
        options_builder: OptionsBuilder,
        context_factory: ContextFactory,
        judge: JudgeInvoker | None = None,
        events: EventBus | None = None,
        report_dir: str | None = None,
        interactive: bool = False,
        on_session_update: SessionUpdateCallback | None = None,
    ) -> None:
        self.invoker = invoker
        self.state = state
        self.options_builder = options_builder
        self.context_factory = context_factory
        self.judge = judge
        self.events = events
        self.report_dir = report_dir
        self.interactive = interactive
        self.on_session_update = on_session_update

    @property
    def cwd(self) -> str:
        return self.options_builder.cwd

    async def execute(
        self,
        movement: SimpleMovement,
        *,
        session_key: str | None = None,
        on_stream: StreamCallback | None = None,
    ) -> StepResult:
        key = session_key or movement.session_key
        movement_iteration = increment_movement_iteration(self.state, movement.name)
        instruction = build_instruction(movement, self.context_factory(movement, movement_iteration))
        logger.debug(
            "Running movement %s (persona=%s, movement_iteration=%d, session=%s)",
            movement.name, movement.persona, movement_iteration,
            self.state.agent_sessions.get(key, "new"),
        )

        # Phase 1: execution
        options = self.options_builder.execution_options(
            movement, self.state.agent_sessions.get(key), on_stream
        )
        response = await self._call(movement, 1, "execute", instruction, options)
        await self._update_session(key, response.session_id)
        self.state.movement_outputs[movement.name] = response

        if response.status != "done":
            logger.debug("Movement %s returned %s, skipping later phases", movement.name, response.status)
            return StepResult(response, instruction)

        # The session phase 1 actually ran in: the returned handle, or the one it resumed.
        session_id = response.session_id or options.session_id

        # Phase 2: report
        if movement.report:
            session_id = await self._run_report_phase(
                movement, key, session_id, movement_iteration, on_stream
            )

        # Phase 3: status judgment
        tag_content = ""
        if has_tag_based_rules(movement):
            tag_content, session_id = await self._run_status_judgment_phase(
                movement, key, session_id, on_stream
            )

        match = await self.evaluate_rules(movement, response.content, tag_content)
        response = response.with_match(match)
        self.state.movement_outputs[movement.name] = response
        return StepResult(response, instruction)

    async def evaluate_rules(
        self, movement: Movement, agent_content: str, tag_content: str
    ) -> RuleMatch | None:
        evaluator = RuleEvaluator(
            movement,
            RuleEvaluatorContext(
                state=self.state, cwd=self.cwd, judge=self.judge, interactive=self.interactive
            ),
        )
        match = await evaluator.evaluate(agent_content, tag_content)
        if match is not None:
            logger.debug("Rule matched in %s: index=%d method=%s", movement.name, match.index, match.method)
        return match

    async def _run_report_phase(
        self,
        movement: SimpleMovement,
        key: str,
        session_id: str | None,
        movement_iteration: int,
        on_stream: StreamCallback | None,
    ) -> str:
        if not session_id:
            raise SessionError(movement.name, key, "report")

        instruction = build_report_instruction(
            movement, cwd=self.cwd, report_dir=self.report_dir, movement_iteration=movement_iteration
        )
        options = self.options_builder.resume_options(movement, session_id, REPORT_CAPABILITIES, on_stream)
        response = await self._call(movement, 2, "report", instruction, options)
        if response.status != "done":
            raise ExecutionError(
                movement.name,
                f'Report phase failed for movement "{movement.name}": {response.error or response.content or response.status}',
            )
        await self._update_session(key, response.session_id)
        return response.session_id or session_id

    async def _run_status_judgment_phase(
        self,
        movement: SimpleMovement,
        key: str,
        session_id: str | None,
        on_stream: StreamCallback | None,
    ) -> tuple[str, str]:
        if not session_id:
            raise SessionError(movement.name, key, "status judgment")

        instruction = build_status_judgment_instruction(movement, self.interactive)
        options = self.options_builder.resume_options(movement, session_id, (), on_stream)
        response = await self._call(movement, 3, "judge", instruction, options)
        if response.status != "done":
            raise ExecutionError(
                movement.name,
                f'Status judgment phase failed for movement "{movement.name}": {response.error or response.content or response.status}',
            )
        await self._update_session(key, response.session_id)
        return response.content, response.session_id or session_id

    async def _call(
        self,
        movement: SimpleMovement,
        phase: int,
        phase_name: PhaseName,
        instruction: str,
        options: AgentCallOptions,
    ) -> AgentResponse:
        await self._emit(PhaseStartEvent(movement.name, phase, phase_name, instruction))
        try:
            response = await self.invoker.call(movement.persona, instruction, options)
        except Exception as e:
            await self._emit(PhaseCompleteEvent(movement.name, phase, phase_name, "", "error", str(e)))
            raise ExecutionError(
                movement.name, f'Agent call failed in {phase_name} phase of "{movement.name}": {e}', e
            ) from e
        await self._emit(
            PhaseCompleteEvent(
                movement.name, phase, phase_name, response.content, response.status, response.error
            )
        )
        return response

    async def _update_session(self, key: str, session_id: str | None) -> None:
        if not session_id:
            return
        previous = self.state.agent_sessions.get(key)
        self.state.agent_sessions[key] = session_id
        if self.on_session_update and session_id != previous:
            result = self.on_session_update(key, session_id)
            if inspect.isawaitable(result):
                await result

    async def _emit(self, event) -> None:
        if self.events is not None:
            await self.events.emit(event)
