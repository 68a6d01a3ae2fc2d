"""
Stopping and transition policy.

The batch loop and the streaming loop use different rules on purpose:
`check_termination` / `should_run_transition` drive IterationLoop
(0-based iterations), `stream_converged` drives StreamingLoop (1-based).
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from iterloop.config import LoopConfig
from iterloop.types import Evaluation, IterationContext, TerminationReason


@dataclass(frozen=True)
class TerminationDecision:
    """Whether to stop after an iteration, and why."""
    terminate: bool
    reason: TerminationReason = TerminationReason.MAX_ITERATIONS


CONTINUE = TerminationDecision(terminate=False)


def check_termination(
    state: Any,
    evaluation: Evaluation,
    context: IterationContext,
    iteration: int,
    config: LoopConfig,
    custom_check: Optional[Callable[[Any, Evaluation, IterationContext], bool]] = None,
    stop_requested: bool = False,
) -> TerminationDecision:
    """
    Decide whether the loop stops after `iteration` (0-based).

    `stop_requested` carries the already awaited result of an async custom
    check.

    First match wins:
    1. custom check returns true (or stop_requested) -> manual_stop
    2. score >= early_stop_score -> early_stop
    3. evaluation asks to stop -> converged
    4. score >= target_score once min_iterations are done
       (or skip_min_iterations is set) -> converged
    """
    if stop_requested or (custom_check is not None and custom_check(state, evaluation, context)):
        return TerminationDecision(True, TerminationReason.MANUAL_STOP)

    # Early stop ignores the min_iterations floor
    if evaluation.score >= config.early_stop_score:
        return TerminationDecision(True, TerminationReason.EARLY_STOP)

    if not evaluation.should_continue:
        return TerminationDecision(True, TerminationReason.CONVERGED)

    if evaluation.score >= config.target_score:
        min_iterations_met = iteration >= config.min_iterations - 1
        if min_iterations_met or config.skip_min_iterations:
            return TerminationDecision(True, TerminationReason.CONVERGED)

    return CONTINUE


def should_run_transition(terminating: bool, iteration: int, config: LoopConfig) -> bool:
    """
    Transition gate for the batch loop.

    By default the transition after the terminating iteration, or after the
    last permitted one, is skipped.
    """
    is_last_iteration = iteration == config.max_iterations - 1
    return not ((terminating or is_last_iteration) and not config.always_run_transition)


def stream_converged(evaluation: Evaluation, iteration: int, config: LoopConfig) -> bool:
    """Convergence rule of the streaming loop; `iteration` is 1-based."""
    reached_target = evaluation.score >= config.target_score
    if config.skip_min_iterations and reached_target:
        return True
    if reached_target and iteration >= config.min_iterations:
        return True
    return not evaluation.should_continue and iteration >= config.min_iterations
