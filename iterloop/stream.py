"""
Streaming Loop - the loop as a sequence of intermediate snapshots.

Runs the same phases as IterationLoop but reports a snapshot after every
iteration instead of emitting events. Its policy differs from the batch
loop:
- iterations are counted from 1 (snapshot 0 is the initialized state)
- convergence follows `stream_converged`, which has no early stop
- transition runs after every iteration that did not converge
"""

from dataclasses import dataclass, replace
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Generic,
    Iterator,
    List,
    Optional,
    TypeVar,
)
import logging
import time

from iterloop.config import LoopConfig
from iterloop.loop import IterationLoop, build_config, call_phase
from iterloop.termination import stream_converged
from iterloop.types import (
    ActionResult,
    ActionT,
    Evaluation,
    HistoryEntry,
    InputT,
    IterationContext,
    IterationResult,
    LoopPhases,
    ResultT,
    StateT,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class StreamSnapshot(Generic[StateT, ActionT]):
    """State of the loop after one streaming iteration."""
    iteration: int
    state: StateT
    context: IterationContext
    evaluation: Optional[Evaluation] = None
    action_result: Optional[ActionResult[ActionT]] = None
    converged: bool = False
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "state": self.state,
            "context": self.context.to_dict(),
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "action_result": self.action_result.to_dict() if self.action_result else None,
            "converged": self.converged,
            "timed_out": self.timed_out,
        }


class SnapshotStream(Generic[T]):
    """
    Finite, restartable sequence over already computed items.
    Every iteration starts again from the first item.
    """

    def __init__(self, items: List[T]):
        self._items = list(items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def map(self, fn: Callable[[T], U]) -> "SnapshotStream[U]":
        return SnapshotStream([fn(item) for item in self._items])

    def filter(self, predicate: Callable[[T], bool]) -> "SnapshotStream[T]":
        return SnapshotStream([item for item in self._items if predicate(item)])

    def to_list(self) -> List[T]:
        return list(self._items)


class StreamingLoop(Generic[InputT, StateT, ActionT, ResultT]):
    """
    Loop controller that exposes every intermediate snapshot.

    `iterate` yields snapshots as they are computed; `execute_stream` runs
    to completion first and returns a restartable SnapshotStream.
    """

    def __init__(
        self,
        phases: LoopPhases[InputT, StateT, ActionT, ResultT],
        config: Optional[LoopConfig] = None,
        **options: Any,
    ):
        self.phases = phases
        self.config = build_config(config, **options)

    async def iterate(self, input: InputT) -> AsyncIterator[StreamSnapshot[StateT, ActionT]]:
        """Run the loop, yielding each snapshot right after it is computed."""
        config = self.config
        phases = self.phases
        start_time = time.monotonic()
        history: List[HistoryEntry[ActionT]] = []

        state = await call_phase("initialize", phases.initialize, input)
        iteration = 0
        converged = False

        yield StreamSnapshot(
            iteration=0,
            state=state,
            context=IterationContext(iteration=0, max_iterations=config.max_iterations),
        )

        while iteration < config.max_iterations and not converged:
            iteration_start = time.monotonic()
            previous = history[-1].evaluation if history else None

            # Checked before the counter moves on
            if config.timeout is not None and time.monotonic() - start_time > config.timeout:
                logger.debug(f"Streaming loop timed out before iteration {iteration + 1}")
                yield StreamSnapshot(
                    iteration=iteration + 1,
                    state=state,
                    context=IterationContext(
                        iteration=iteration + 1,
                        max_iterations=config.max_iterations,
                        elapsed_time=time.monotonic() - start_time,
                        previous_evaluation=previous,
                    ),
                    timed_out=True,
                )
                break

            iteration += 1
            context = IterationContext(
                iteration=iteration,
                max_iterations=config.max_iterations,
                elapsed_time=time.monotonic() - start_time,
                previous_evaluation=previous,
            )

            action_result = await call_phase("act", phases.act, state, context, iteration=iteration)
            evaluation = await call_phase(
                "evaluate", phases.evaluate, state, action_result, context, iteration=iteration
            )
            history.append(HistoryEntry(
                iteration=iteration,
                action_result=action_result,
                evaluation=evaluation,
                duration=time.monotonic() - iteration_start,
            ))

            converged = stream_converged(evaluation, iteration, config)
            if not converged and phases.transition is not None:
                state = await call_phase(
                    "transition", phases.transition, state, action_result, evaluation, context,
                    iteration=iteration,
                )

            yield StreamSnapshot(
                iteration=iteration,
                state=state,
                context=context,
                evaluation=evaluation,
                action_result=action_result,
                converged=converged,
            )

        if phases.finalize is not None:
            await call_phase("finalize", phases.finalize, state, history)

    async def execute_stream(self, input: InputT) -> SnapshotStream[StreamSnapshot[StateT, ActionT]]:
        """Run every phase to completion, then expose the snapshots."""
        return SnapshotStream([snapshot async for snapshot in self.iterate(input)])

    async def evaluation_stream(self, input: InputT) -> SnapshotStream[Evaluation]:
        """Only the evaluations, skipping snapshots that have none."""
        snapshots = await self.execute_stream(input)
        return snapshots.filter(lambda s: s.evaluation is not None).map(lambda s: s.evaluation)

    async def action_stream(self, input: InputT) -> SnapshotStream[ActionResult[ActionT]]:
        """Only the action results, skipping snapshots that have none."""
        snapshots = await self.execute_stream(input)
        return snapshots.filter(lambda s: s.action_result is not None).map(lambda s: s.action_result)

    async def execute(self, input: InputT) -> IterationResult[ResultT, ActionT]:
        """Non-streaming run through IterationLoop with the same phases and config."""
        phases = self.phases
        if phases.transition is None:
            phases = _with_identity_transition(phases)
        return await IterationLoop(phases, self.config).run(input)


def identity_transition(state, action_result, evaluation, context):
    return state


def _with_identity_transition(phases: LoopPhases) -> LoopPhases:
    return replace(phases, transition=identity_transition)


def create_streaming_loop(
    phases: LoopPhases[InputT, StateT, ActionT, ResultT],
    config: Optional[LoopConfig] = None,
    **options: Any,
) -> StreamingLoop[InputT, StateT, ActionT, ResultT]:
    """Factory function to create a StreamingLoop."""
    return StreamingLoop(phases, config, **options)
