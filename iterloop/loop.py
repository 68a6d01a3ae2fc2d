"""
Iteration Loop - the core convergent loop controller.

Each run:
1. Initialize the state from the input
2. Loop, at most max_iterations times:
   a. Act on the current state
   b. Evaluate the action
   c. Record the iteration in history
   d. Decide whether to stop, and whether to transition
3. Finalize the state (plus history) into the result

Invariants:
- Phases run strictly one after another, never concurrently
- History gets exactly one entry per completed act + evaluate
- State is only ever replaced by the value a transition returns
- Timeout is checked between iterations; a running phase is never interrupted
"""

from typing import Any, Callable, Generic, List, Optional
import inspect
import logging
import time

from iterloop.config import LoopConfig, default_config, derive_config, resolve_config, update_config
from iterloop.errors import ConfigValidationError, PhaseExecutionError
from iterloop.events import EventBus, EventListener, EventType, IterationEvent
from iterloop.termination import TerminationDecision, check_termination, should_run_transition
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
    TerminationReason,
    total_cost,
)

logger = logging.getLogger(__name__)


async def resolve(value: Any) -> Any:
    """Await `value` if it is awaitable, so phases may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


async def call_phase(phase: str, fn: Callable[..., Any], *args: Any, iteration: Optional[int] = None) -> Any:
    """Run one phase callback, normalizing whatever it raises."""
    try:
        return await resolve(fn(*args))
    except Exception as e:
        raise PhaseExecutionError.wrap(phase, e, iteration) from e


def build_config(config: Optional[LoopConfig] = None, **options: Any) -> LoopConfig:
    """Resolve the constructor arguments of a loop into one LoopConfig."""
    if config is None:
        return resolve_config(**options)
    if options:
        return update_config(config, **options)
    return config


class IterationLoop(Generic[InputT, StateT, ActionT, ResultT]):
    """
    Drives initialize -> (act -> evaluate -> transition) x N -> finalize
    until the evaluation converges or a limit is hit.

    Example:
        loop = IterationLoop(phases, max_iterations=10, target_score=80)
        outcome = await loop.run("What is the capital of France?")
    """

    def __init__(
        self,
        phases: LoopPhases[InputT, StateT, ActionT, ResultT],
        config: Optional[LoopConfig] = None,
        **options: Any,
    ):
        if phases.transition is None:
            raise ConfigValidationError("transition phase is required")
        if phases.finalize is None:
            raise ConfigValidationError("finalize phase is required")
        self.phases = phases
        self._config = build_config(config, **options)
        self._events = EventBus(error_logger=self._config.logger)

    # ══════════════════════════════════════════════════════════════════
    # CONFIGURATION
    # ══════════════════════════════════════════════════════════════════

    def get_config(self) -> LoopConfig:
        """Snapshot of the current configuration."""
        return derive_config(self._config)

    def update_config(self, **changes: Any) -> "IterationLoop[InputT, StateT, ActionT, ResultT]":
        """
        Validate `changes` and swap in the new config.
        On ConfigValidationError the current config stays in place.
        """
        self._set_config(update_config(self._config, **changes))
        return self

    def with_config(self, **changes: Any) -> "IterationLoop[InputT, StateT, ActionT, ResultT]":
        """A new loop with the same phases and adjusted config. Listeners are not copied."""
        return IterationLoop(self.phases, derive_config(self._config, **changes))

    def reset_config(self) -> "IterationLoop[InputT, StateT, ActionT, ResultT]":
        """Restore the documented defaults."""
        self._set_config(default_config())
        return self

    def _set_config(self, config: LoopConfig) -> None:
        self._config = config
        self._events.error_logger = config.logger

    # ══════════════════════════════════════════════════════════════════
    # EVENTS
    # ══════════════════════════════════════════════════════════════════

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Add an event listener. Returns an idempotent unsubscribe function."""
        return self._events.subscribe(listener)

    on = subscribe

    def _emit(self, event_type: EventType, **fields: Any) -> None:
        self._events.emit(IterationEvent(type=event_type, **fields))

    def _log(self, config: LoopConfig, message: str) -> None:
        if config.verbose:
            (config.logger or logger).info(f"[iterloop] {message}")

    # ══════════════════════════════════════════════════════════════════
    # RUN
    # ══════════════════════════════════════════════════════════════════

    async def run(self, input: InputT) -> IterationResult[ResultT, ActionT]:
        """
        Execute the loop until a stop condition is met.

        Raises PhaseExecutionError when a phase fails and no on_error
        handler is configured.
        """
        # One config snapshot per run; updates apply to the next run
        config = self._config
        phases = self.phases
        start_time = time.monotonic()
        history: List[HistoryEntry[ActionT]] = []
        state: Optional[StateT] = None
        last_evaluation: Optional[Evaluation] = None
        termination_reason = TerminationReason.MAX_ITERATIONS

        self._emit(EventType.START, input=input)
        self._log(config, f"Starting iteration loop (max_iterations={config.max_iterations})")

        try:
            state = await call_phase("initialize", phases.initialize, input)
            self._log(config, "Initialized state")

            for i in range(config.max_iterations):
                iteration_start = time.monotonic()

                if config.timeout is not None and time.monotonic() - start_time > config.timeout:
                    self._log(config, f"Timeout reached after {len(history)} iteration(s)")
                    termination_reason = TerminationReason.TIMEOUT
                    break

                context = IterationContext(
                    iteration=i,
                    max_iterations=config.max_iterations,
                    elapsed_time=time.monotonic() - start_time,
                    previous_evaluation=last_evaluation,
                )

                self._emit(EventType.ITERATION_START, iteration=i)
                self._log(config, f"Iteration {i + 1}/{config.max_iterations} started")

                # ── Act ──
                action_result: ActionResult[ActionT] = await call_phase(
                    "act", phases.act, state, context, iteration=i
                )
                self._emit(EventType.ACTION_COMPLETE, iteration=i, action_result=action_result)
                self._log(config, "Action complete")

                # ── Evaluate ──
                evaluation: Evaluation = await call_phase(
                    "evaluate", phases.evaluate, state, action_result, context, iteration=i
                )
                last_evaluation = evaluation
                self._emit(EventType.EVALUATION_COMPLETE, iteration=i, evaluation=evaluation)
                self._log(
                    config,
                    f"Evaluation complete (score={evaluation.score}, "
                    f"should_continue={evaluation.should_continue})"
                )

                # ── Record ──
                entry = HistoryEntry(
                    iteration=i,
                    action_result=action_result,
                    evaluation=evaluation,
                    duration=time.monotonic() - iteration_start,
                )
                history.append(entry)
                self._emit(EventType.ITERATION_COMPLETE, iteration=i, history_entry=entry)

                # ── Decide ──
                decision = await self._check_termination(state, evaluation, context, i, config)

                if should_run_transition(decision.terminate, i, config):
                    state = await call_phase(
                        "transition", phases.transition, state, action_result, evaluation, context, iteration=i
                    )
                    self._emit(EventType.TRANSITION_COMPLETE, iteration=i, state=state)
                    self._log(config, "Transition complete")

                if decision.terminate:
                    termination_reason = decision.reason
                    self._log(config, f"Terminating: {termination_reason.value} (score={evaluation.score})")
                    self._emit(EventType.CONVERGED, iteration=i, score=evaluation.score)
                    break

            result = await call_phase("finalize", phases.finalize, state, history)
            final_score = last_evaluation.score if last_evaluation else 0.0

            outcome = IterationResult(
                result=result,
                iterations=len(history),
                final_score=final_score,
                converged=final_score >= config.target_score,
                termination_reason=termination_reason,
                total_cost=total_cost(history),
                total_latency=time.monotonic() - start_time,
                history=history,
            )
            self._emit(EventType.COMPLETE, result=outcome)
            self._log(
                config,
                f"Loop complete: {outcome.termination_reason.value} after "
                f"{outcome.iterations} iteration(s), final score {outcome.final_score}"
            )
            return outcome

        except Exception as e:
            error = PhaseExecutionError.wrap("run", e, len(history))
            self._emit(EventType.ERROR, error=error, iteration=len(history), state=state)
            self._log(config, f"Error occurred: {error}")

            if phases.on_error is None:
                if error is e:
                    raise
                raise error from e

            context = IterationContext(
                iteration=len(history),
                max_iterations=config.max_iterations,
                elapsed_time=time.monotonic() - start_time,
                previous_evaluation=last_evaluation,
            )
            fallback = await resolve(phases.on_error(error, state, context))
            return IterationResult(
                result=fallback,
                iterations=len(history),
                final_score=last_evaluation.score if last_evaluation else 0.0,
                converged=False,
                termination_reason=TerminationReason.MANUAL_STOP,
                total_cost=total_cost(history),
                total_latency=time.monotonic() - start_time,
                history=history,
            )

    async def _check_termination(
        self,
        state: StateT,
        evaluation: Evaluation,
        context: IterationContext,
        iteration: int,
        config: LoopConfig,
    ) -> TerminationDecision:
        stop_requested = False
        if self.phases.should_terminate is not None:
            stop_requested = bool(await call_phase(
                "should_terminate", self.phases.should_terminate, state, evaluation, context, iteration=iteration
            ))
        return check_termination(
            state, evaluation, context, iteration, config, stop_requested=stop_requested
        )


def create_loop(
    phases: LoopPhases[InputT, StateT, ActionT, ResultT],
    config: Optional[LoopConfig] = None,
    **options: Any,
) -> IterationLoop[InputT, StateT, ActionT, ResultT]:
    """
    Factory function to create an IterationLoop.

    Example:
        loop = create_loop(phases, preset_config, max_iterations=3)
        outcome = await loop.run(question)
    """
    return IterationLoop(phases, config, **options)
