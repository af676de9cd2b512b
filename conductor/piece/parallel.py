"""Parallel runner — fans a movement's sub-movements out concurrently."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..types import AgentResponse, ParallelMovement, PieceState, SimpleMovement, StreamCallback
from .executor import StepExecutor, StepResult
from .state import increment_movement_iteration

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"


def prefixed_stream(name: str, on_stream: StreamCallback) -> StreamCallback:
    prefix = f"[{name}] "

    def handler(chunk: str):
        return on_stream(prefix + chunk)

    return handler


def aggregate_content(results: list[tuple[SimpleMovement, StepResult]]) -> str:
    return SECTION_SEPARATOR.join(f"## {sub.name}\n{r.response.content}" for sub, r in results)


class ParallelRunner:
    """Runs every sub-movement through the full three-phase protocol at once.

    Each branch keeps its own session, keyed by the sub-movement name, and its
    own iteration counter. The parent waits for all branches before
    aggregating; if any branch failed, the first failure is re-raised once the
    rest have finished.
    """

    def __init__(
        self,
        executor: StepExecutor,
        state: PieceState,
        *,
        on_stream: StreamCallback | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.executor = executor
        self.state = state
        self.on_stream = on_stream
        self.max_concurrency = max_concurrency

    async def run(self, movement: ParallelMovement) -> StepResult:
        subs = movement.parallel
        movement_iteration = increment_movement_iteration(self.state, movement.name)
        logger.debug(
            "Running parallel movement %s: %s (movement_iteration=%d)",
            movement.name, [s.name for s in subs], movement_iteration,
        )

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def run_sub(sub: SimpleMovement) -> StepResult:
            stream = prefixed_stream(sub.name, self.on_stream) if self.on_stream else None
            async with semaphore if semaphore else contextlib.nullcontext():
                return await self.executor.execute(sub, session_key=sub.name, on_stream=stream)

        outcomes = await asyncio.gather(*(run_sub(sub) for sub in subs), return_exceptions=True)
        for sub, outcome in zip(subs, outcomes):
            if isinstance(outcome, BaseException):
                logger.debug("Sub-movement %s of %s failed: %s", sub.name, movement.name, outcome)
                raise outcome

        results: list[tuple[SimpleMovement, StepResult]] = list(zip(subs, outcomes))  # type: ignore[arg-type]
        for sub, result in results:
            logger.debug(
                "Sub-movement %s finished: status=%s rule=%s",
                sub.name, result.response.status, result.response.matched_rule_index,
            )

        content = aggregate_content(results)
        instruction = "\n\n".join(r.instruction for _, r in results)

        # Only aggregate conditions (or a judge) can say anything here: there is no phase 3.
        match = await self.executor.evaluate_rules(movement, content, "")
        response = AgentResponse(persona=movement.name, status="done", content=content).with_match(match)
        self.state.movement_outputs[movement.name] = response
        return StepResult(response, instruction)
