"""Piece engine — the top-level movement state machine.

The engine owns the PieceState. Each iteration resolves the current
movement, checks the loop detector, executes the movement (a single agent
through the step executor, or a fan-out through the parallel runner),
then follows the matched rule to the next movement until a terminal
target, a limit or a failure stops the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import PieceEngineOptions
from ..errors import ConductorError, ConfigError, ExecutionError
from ..events import EventBus
from ..loop import CycleDetector, CycleTrigger, LoopDetector, build_judge_movement
from ..types import (
    ABORT,
    COMPLETE,
    TERMINAL_MOVEMENTS,
    AgentInvoker,
    AgentResponse,
    IterationLimitEvent,
    IterationLimitRequest,
    JudgeInvoker,
    LoopDetectedEvent,
    LoopMonitorEvent,
    Movement,
    MovementBlockedEvent,
    MovementCompleteEvent,
    MovementStartEvent,
    MovementUserInputEvent,
    ParallelMovement,
    PieceAbortEvent,
    PieceCompleteEvent,
    PieceConfig,
    PieceState,
    Rule,
)
from .blocked import handle_blocked
from .executor import StepExecutor, StepResult
from .instructions import InstructionContext
from .options import OptionsBuilder
from .parallel import ParallelRunner
from .state import add_user_input, create_initial_state, previous_output, snapshot
from .transitions import determine_next_movement

logger = logging.getLogger(__name__)

ABORT_REASONS = {
    "max_iterations": "Max iterations ({max_iterations}) reached",
    "loop_detected": 'Loop detected: movement "{movement}" ran {count} times consecutively',
    "blocked_no_input": 'Movement "{movement}" is blocked and no user input was provided',
    "agent_failed": 'Movement "{movement}" returned status "{status}": {detail}',
    "no_rule_target": 'No matching rule found for movement "{movement}"',
    "step_failed": "Movement execution failed: {message}",
    "aborted_by_rule": 'Piece aborted by movement "{movement}"',
}


@dataclass(frozen=True)
class IterationOutcome:
    """What one call to ``run_single_iteration`` did."""

    response: AgentResponse | None = None
    next_movement: str | None = None
    is_complete: bool = False
    loop_detected: bool = False


class PieceEngine:
    """Drives a piece from its initial movement to COMPLETE or ABORT.

    Construction validates the movement graph and raises ConfigError before
    any state exists. Afterwards ``run()`` never raises for piece-level
    failures: they end the run with status ``aborted`` and a reason.
    """

    def __init__(
        self,
        config: PieceConfig,
        cwd: str,
        task: str,
        options: PieceEngineOptions | None = None,
        *,
        agent_invoker: AgentInvoker,
        judge_invoker: JudgeInvoker | None = None,
        events: EventBus | None = None,
    ) -> None:
        validate_piece_config(config)

        self.config = config
        self.task = task
        self.options = options or PieceEngineOptions()
        self.events = events or EventBus(name=config.name)
        self.max_iterations = config.max_iterations

        self._state = create_initial_state(config, self.options)
        self._loop_detector = LoopDetector(config.loop_detection)
        self._cycle_detector = CycleDetector(config.loop_monitors)
        self._options_builder = OptionsBuilder(cwd, self.options.on_stream, self.options.project_cwd)
        self._executor = StepExecutor(
            invoker=agent_invoker,
            state=self._state,
            options_builder=self._options_builder,
            context_factory=self._instruction_context,
            judge=judge_invoker,
            events=self.events,
            report_dir=self.options.report_dir,
            interactive=self.options.interactive,
            on_session_update=self.options.on_session_update,
        )
        self._parallel = ParallelRunner(
            self._executor,
            self._state,
            on_stream=self.options.on_stream,
            max_concurrency=self.options.max_concurrency,
        )
        logger.debug(
            "PieceEngine created for %s (initial=%s, max_iterations=%d)",
            config.name, config.initial_movement, self.max_iterations,
        )

    # ==================== Accessors ====================

    @property
    def state(self) -> PieceState:
        return snapshot(self._state)

    @property
    def cwd(self) -> str:
        return self._options_builder.cwd

    @cwd.setter
    def cwd(self, value: str) -> None:
        self._options_builder.cwd = value

    def add_user_input(self, text: str) -> None:
        add_user_input(self._state, text)

    # ==================== Run loop ====================

    async def run(self) -> PieceState:
        """Run until the piece completes or aborts; return the final state."""
        while self._state.status == "running":
            await self.run_single_iteration()
        return self.state

    async def run_single_iteration(self) -> IterationOutcome:
        state = self._state
        if state.status != "running":
            return IterationOutcome(is_complete=True)

        if state.iteration >= self.max_iterations:
            if not await self._request_more_iterations():
                await self._abort(ABORT_REASONS["max_iterations"].format(max_iterations=self.max_iterations))
            return IterationOutcome(is_complete=state.status != "running")

        movement = self._get_movement(state.current_movement)
        loop_check = self._loop_detector.check(movement.name)
        if loop_check.is_loop:
            logger.warning("Movement %s repeated %d times consecutively", movement.name, loop_check.count)
            await self._emit(LoopDetectedEvent(movement, loop_check.count, loop_check.should_abort))
        if loop_check.should_abort:
            await self._abort(
                ABORT_REASONS["loop_detected"].format(movement=movement.name, count=loop_check.count)
            )
            return IterationOutcome(is_complete=True, loop_detected=True)

        state.iteration += 1
        await self._emit(MovementStartEvent(movement, state.iteration))

        try:
            result = await self._run_movement(movement)
            response = result.response
            await self._emit(MovementCompleteEvent(movement, response, result.instruction))
            state.last_output = response

            if response.status == "blocked":
                await self._handle_blocked(movement, response)
                return IterationOutcome(
                    response=response,
                    is_complete=state.status != "running",
                    loop_detected=loop_check.is_loop,
                )
            if response.status != "done":
                detail = response.error or response.content or "no details"
                await self._abort(
                    ABORT_REASONS["agent_failed"].format(
                        movement=movement.name, status=response.status, detail=detail
                    )
                )
                return IterationOutcome(response=response, is_complete=True, loop_detected=loop_check.is_loop)

            next_movement = self._resolve_next_movement(movement, response)
            if next_movement not in TERMINAL_MOVEMENTS:
                trigger = self._cycle_detector.record(movement.name)
                if trigger is not None:
                    next_movement = await self._run_loop_judge(trigger)
        except ConductorError as e:
            logger.debug("Movement %s failed: %s", movement.name, e)
            await self._abort(ABORT_REASONS["step_failed"].format(message=e.message))
            return IterationOutcome(is_complete=True, loop_detected=loop_check.is_loop)

        await self._transition(movement, next_movement)
        return IterationOutcome(
            response=response,
            next_movement=next_movement,
            is_complete=state.status != "running",
            loop_detected=loop_check.is_loop,
        )

    # ==================== Steps ====================

    async def _run_movement(self, movement: Movement) -> StepResult:
        if isinstance(movement, ParallelMovement):
            return await self._parallel.run(movement)
        return await self._executor.execute(movement)

    def _resolve_next_movement(self, movement: Movement, response: AgentResponse) -> str:
        if response.matched_rule_index is None:
            raise ExecutionError(movement.name, ABORT_REASONS["no_rule_target"].format(movement=movement.name))
        next_movement = determine_next_movement(movement, response.matched_rule_index)
        if next_movement is None:
            raise ExecutionError(movement.name, ABORT_REASONS["no_rule_target"].format(movement=movement.name))
        logger.debug(
            "Movement %s -> %s (rule %d via %s)",
            movement.name, next_movement, response.matched_rule_index, response.matched_rule_method,
        )
        return next_movement

    async def _run_loop_judge(self, trigger: CycleTrigger) -> str:
        """Run the monitor's judge; its matched rule replaces the pending transition."""
        judge_movement = build_judge_movement(trigger)
        logger.info(
            "Cycle %s repeated %d times, consulting %s",
            " -> ".join(trigger.monitor.cycle), trigger.cycle_count, judge_movement.persona,
        )
        result = await self._executor.execute(judge_movement)
        response = result.response
        if response.status != "done":
            raise ExecutionError(
                judge_movement.name,
                ABORT_REASONS["agent_failed"].format(
                    movement=judge_movement.name,
                    status=response.status,
                    detail=response.error or response.content or "no details",
                ),
            )
        next_movement = self._resolve_next_movement(judge_movement, response)
        await self._emit(LoopMonitorEvent(trigger.monitor.cycle, trigger.cycle_count, next_movement))
        return next_movement

    async def _handle_blocked(self, movement: Movement, response: AgentResponse) -> None:
        await self._emit(MovementBlockedEvent(movement, response))
        result = await handle_blocked(movement, response, self.options.on_user_input)
        if not result.should_continue:
            await self._abort(ABORT_REASONS["blocked_no_input"].format(movement=movement.name))
            return
        add_user_input(self._state, result.user_input)
        await self._emit(MovementUserInputEvent(movement, result.user_input))
        # Stay on the same movement; the new input is visible via {user_inputs}.

    async def _request_more_iterations(self) -> bool:
        await self._emit(IterationLimitEvent(self._state.iteration, self.max_iterations))
        callback = self.options.on_iteration_limit
        if callback is None:
            return False
        extra = await callback(
            IterationLimitRequest(
                current_iteration=self._state.iteration,
                max_iterations=self.max_iterations,
                current_movement=self._state.current_movement,
            )
        )
        if not extra or extra <= 0:
            return False
        self.max_iterations += extra
        logger.info("Iteration limit raised by %d to %d", extra, self.max_iterations)
        return True

    async def _transition(self, movement: Movement, next_movement: str) -> None:
        if next_movement == COMPLETE:
            self._state.status = "completed"
            logger.info("Piece %s completed after %d iterations", self.config.name, self._state.iteration)
            await self._emit(PieceCompleteEvent(self.state))
        elif next_movement == ABORT:
            await self._abort(ABORT_REASONS["aborted_by_rule"].format(movement=movement.name))
        else:
            self._state.current_movement = next_movement

    async def _abort(self, reason: str) -> None:
        self._state.status = "aborted"
        self._state.abort_reason = reason
        logger.info("Piece %s aborted: %s", self.config.name, reason)
        await self._emit(PieceAbortEvent(self.state, reason))

    # ==================== Helpers ====================

    def _get_movement(self, name: str) -> Movement:
        movement = self.config.get_movement(name)
        if movement is None:
            raise ConfigError(f"Unknown movement: {name}", self.config.name)
        return movement

    def _instruction_context(self, movement: Movement, movement_iteration: int) -> InstructionContext:
        return InstructionContext(
            task=self.task,
            iteration=self._state.iteration,
            max_iterations=self.max_iterations,
            movement_iteration=movement_iteration,
            cwd=self.cwd,
            user_inputs=list(self._state.user_inputs),
            previous_output=previous_output(self._state),
            report_dir=self.options.report_dir,
            interactive=self.options.interactive,
        )

    async def _emit(self, event) -> None:
        await self.events.emit(event)


def validate_piece_config(config: PieceConfig) -> None:
    """Fail fast on graphs the engine could not run."""
    names = set(config.movement_names)
    if config.initial_movement not in names:
        raise ConfigError(f"Unknown movement: {config.initial_movement}", config.name)

    valid_targets = names | set(TERMINAL_MOVEMENTS)

    def check(owner: str, rules: tuple[Rule, ...], *, require_target: bool) -> None:
        for i, rule in enumerate(rules):
            if rule.next is None:
                if require_target:
                    raise ConfigError(
                        f'Invalid rule {i + 1} in movement "{owner}": no target movement', config.name
                    )
                continue
            if rule.next not in valid_targets:
                raise ConfigError(
                    f'Invalid rule {i + 1} in movement "{owner}": target movement "{rule.next}" does not exist',
                    config.name,
                )

    for movement in config.movements:
        check(movement.name, movement.rules, require_target=True)
        if isinstance(movement, ParallelMovement):
            for sub in movement.parallel:
                check(sub.name, sub.rules, require_target=False)

    for monitor in config.loop_monitors:
        check(f"loop monitor {' -> '.join(monitor.cycle)}", monitor.judge.rules, require_target=True)
