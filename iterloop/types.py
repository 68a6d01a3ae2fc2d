"""
Iterloop data model.

Records passed between the loop controller and the phase callbacks.
Evaluations are scored on a 0-100 scale; durations are in seconds.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from numbers import Real
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar, Union
import math

InputT = TypeVar("InputT")
StateT = TypeVar("StateT")
ActionT = TypeVar("ActionT")
ResultT = TypeVar("ResultT")

MIN_SCORE = 0.0
MAX_SCORE = 100.0


def clamp_score(score: Any) -> float:
    """
    Clamp a score into [0, 100].

    Non-numeric scores raise TypeError and NaN raises ValueError, so an
    invalid score never reaches a threshold comparison.
    """
    if isinstance(score, bool) or not isinstance(score, Real):
        raise TypeError(f"Evaluation score must be a number, got {type(score).__name__}")
    if math.isnan(score):
        raise ValueError("Evaluation score must not be NaN")
    return max(MIN_SCORE, min(MAX_SCORE, float(score)))


class TerminationReason(Enum):
    """Why a run stopped."""
    CONVERGED = "converged"
    EARLY_STOP = "early_stop"
    MAX_ITERATIONS = "max_iterations"
    TIMEOUT = "timeout"
    MANUAL_STOP = "manual_stop"


@dataclass(frozen=True)
class Evaluation:
    """Assessment of the state after one action. Immutable, so the score stays clamped."""
    score: float
    should_continue: bool = True
    feedback: str = ""
    missing_info: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        object.__setattr__(self, "score", clamp_score(self.score))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "should_continue": self.should_continue,
            "feedback": self.feedback,
            "missing_info": self.missing_info,
            "metadata": self.metadata,
        }


@dataclass
class ActionMetadata:
    """Bookkeeping attached to an action result."""
    sources: List[str] = field(default_factory=list)
    cost: float = 0.0
    latency: float = 0.0  # seconds
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": list(self.sources),
            "cost": self.cost,
            "latency": self.latency,
            "warnings": list(self.warnings),
        }


@dataclass
class ActionResult(Generic[ActionT]):
    """Data produced by the act phase."""
    data: ActionT
    metadata: Optional[ActionMetadata] = None

    @property
    def cost(self) -> float:
        if self.metadata is None or self.metadata.cost is None:
            return 0.0
        return self.metadata.cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


@dataclass(frozen=True)
class IterationContext:
    """Read-only per-iteration information handed to every phase."""
    iteration: int
    max_iterations: int
    elapsed_time: float = 0.0
    previous_evaluation: Optional[Evaluation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "max_iterations": self.max_iterations,
            "elapsed_time": self.elapsed_time,
            "previous_evaluation": (
                self.previous_evaluation.to_dict() if self.previous_evaluation else None
            ),
        }


@dataclass(frozen=True)
class HistoryEntry(Generic[ActionT]):
    """Record of one completed act + evaluate pass."""
    iteration: int
    action_result: ActionResult[ActionT]
    evaluation: Evaluation
    timestamp: datetime = field(default_factory=datetime.now)
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "action_result": self.action_result.to_dict(),
            "evaluation": self.evaluation.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
        }


@dataclass
class IterationResult(Generic[ResultT, ActionT]):
    """Outcome of a complete run."""
    result: ResultT
    iterations: int
    final_score: float
    converged: bool
    termination_reason: TerminationReason
    total_cost: float
    total_latency: float
    history: List[HistoryEntry[ActionT]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result,
            "iterations": self.iterations,
            "final_score": self.final_score,
            "converged": self.converged,
            "termination_reason": self.termination_reason.value,
            "total_cost": self.total_cost,
            "total_latency": self.total_latency,
            "history": [h.to_dict() for h in self.history],
        }


MaybeAwaitable = Union[Awaitable[Any], Any]


@dataclass
class LoopPhases(Generic[InputT, StateT, ActionT, ResultT]):
    """
    The callbacks that define a loop.

    initialize -> (act -> evaluate -> transition) x N -> finalize

    Phases may be coroutine functions or plain functions, `should_terminate`
    included.

    Note: unless `always_run_transition` is set, the state handed to
    `finalize` does not include the transition of the last iteration. The
    last action result is still available as `history[-1].action_result`.
    """
    initialize: Callable[[InputT], MaybeAwaitable]
    act: Callable[[StateT, IterationContext], MaybeAwaitable]
    evaluate: Callable[[StateT, ActionResult[ActionT], IterationContext], MaybeAwaitable]
    transition: Optional[Callable[[StateT, ActionResult[ActionT], Evaluation, IterationContext], MaybeAwaitable]] = None
    finalize: Optional[Callable[[StateT, List[HistoryEntry[ActionT]]], MaybeAwaitable]] = None
    should_terminate: Optional[Callable[[StateT, Evaluation, IterationContext], MaybeAwaitable]] = None
    on_error: Optional[Callable[[Exception, Optional[StateT], IterationContext], MaybeAwaitable]] = None


def total_cost(history: List[HistoryEntry]) -> float:
    """Sum of recorded action costs, absent costs counting as 0."""
    return sum(h.action_result.cost for h in history)
