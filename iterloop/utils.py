"""
Helpers for writing phase callbacks.

None of these are used by the loop controllers themselves.
"""

from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Sequence, TypeVar, Union
import asyncio
import logging
import math

from iterloop.types import ActionMetadata, ActionResult, Evaluation, HistoryEntry, clamp_score, total_cost

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONTINUE_BELOW = 70


def create_evaluation(
    score: float,
    should_continue: Optional[bool] = None,
    feedback: str = "",
    missing_info: Optional[List[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Evaluation:
    """
    Build an Evaluation. Unless given, `should_continue` is true while the
    score is below 70.
    """
    if should_continue is None:
        should_continue = clamp_score(score) < DEFAULT_CONTINUE_BELOW
    return Evaluation(
        score=score,
        should_continue=should_continue,
        feedback=feedback,
        missing_info=missing_info,
        metadata=metadata,
    )


def create_action_result(
    data: T,
    sources: Optional[List[str]] = None,
    cost: float = 0.0,
    latency: float = 0.0,
    warnings: Optional[List[str]] = None,
) -> ActionResult[T]:
    return ActionResult(
        data=data,
        metadata=ActionMetadata(
            sources=list(sources or []),
            cost=cost,
            latency=latency,
            warnings=list(warnings or []),
        ),
    )


def calculate_total_cost(history: List[HistoryEntry]) -> float:
    return total_cost(history)


def calculate_average_score(history: List[HistoryEntry]) -> float:
    if not history:
        return 0.0
    return sum(h.evaluation.score for h in history) / len(history)


def get_score_progression(history: List[HistoryEntry]) -> List[float]:
    return [h.evaluation.score for h in history]


def is_improving(history: List[HistoryEntry], window_size: int = 2) -> bool:
    """True when the last score in the window beats the first one."""
    if len(history) < window_size:
        return True
    scores = get_score_progression(history[-window_size:])
    return scores[-1] > scores[0]


def deduplicate_by(items: Sequence[T], get_key: Callable[[T], Hashable]) -> List[T]:
    """Keep the first item for every key, preserving order."""
    seen: Dict[Hashable, T] = {}
    for item in items:
        key = get_key(item)
        if key not in seen:
            seen[key] = item
    return list(seen.values())


def merge_action_results(
    results: List[ActionResult[T]],
    merge_strategy: Callable[[List[T]], T],
) -> ActionResult[T]:
    """Merge data with `merge_strategy`; costs and latencies add up, sources are deduplicated."""
    sources: List[str] = []
    warnings: List[str] = []
    for r in results:
        if r.metadata:
            sources.extend(r.metadata.sources)
            warnings.extend(r.metadata.warnings)
    return ActionResult(
        data=merge_strategy([r.data for r in results]),
        metadata=ActionMetadata(
            sources=list(dict.fromkeys(sources)),
            cost=sum(r.cost for r in results),
            latency=sum(r.metadata.latency for r in results if r.metadata),
            warnings=warnings,
        ),
    )


def merge_list_action_results(
    results: List[ActionResult[List[T]]],
    dedupe: Optional[Callable[[T], Hashable]] = None,
) -> ActionResult[List[T]]:
    """Concatenate list data, optionally deduplicating by key."""
    def strategy(lists: List[List[T]]) -> List[T]:
        flattened = [item for items in lists for item in items]
        return deduplicate_by(flattened, dedupe) if dedupe else flattened

    return merge_action_results(results, strategy)


def deep_merge(*dicts: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge dicts left to right. Nested dicts are merged, every
    other value (lists included) is replaced.
    """
    merged: Dict[str, Any] = {}
    for d in dicts:
        for key, value in d.items():
            if isinstance(value, dict):
                existing = merged.get(key)
                merged[key] = deep_merge(existing if isinstance(existing, dict) else {}, value)
            else:
                merged[key] = value
    return merged


def merge_dict_action_results(
    results: List[ActionResult[Dict[str, Any]]],
    merge_strategy: Union[str, Callable[[List[Dict[str, Any]]], Dict[str, Any]]] = "shallow",
) -> ActionResult[Dict[str, Any]]:
    """Merge dict data: "shallow" (later keys win), "deep", or a custom function."""
    if callable(merge_strategy):
        strategy = merge_strategy
    elif merge_strategy == "deep":
        def strategy(dicts):
            return deep_merge(*dicts)
    elif merge_strategy == "shallow":
        def strategy(dicts):
            merged: Dict[str, Any] = {}
            for d in dicts:
                merged.update(d)
            return merged
    else:
        raise ValueError(f"Unknown merge strategy: {merge_strategy!r}")
    return merge_action_results(results, strategy)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
) -> T:
    """Call `fn` until it succeeds, backing off exponentially. Re-raises the last error."""
    delay = initial_delay
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt == max_retries:
                raise
            logger.debug(f"Attempt {attempt + 1} failed ({e}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
            delay = min(delay * backoff_factor, max_delay)
    raise AssertionError("unreachable")


async def with_timeout(awaitable: Awaitable[T], timeout: float, message: str = "Operation timed out") -> T:
    """Await `awaitable`, raising TimeoutError(message) after `timeout` seconds."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise TimeoutError(message) from e


def combine_evaluations(evaluations: List[Evaluation], weights: Optional[List[float]] = None) -> Evaluation:
    """
    Weighted average of several evaluations. Continues if any of them
    wants to; feedback is joined and missing info deduplicated.
    """
    if not evaluations:
        return create_evaluation(0, should_continue=False, feedback="No evaluations provided")

    weights = weights or [1.0] * len(evaluations)
    total_weight = sum(weights)
    score = sum(e.score * (w / total_weight) for e, w in zip(evaluations, weights))

    missing = [info for e in evaluations for info in (e.missing_info or [])]
    return create_evaluation(
        score,
        should_continue=any(e.should_continue for e in evaluations),
        feedback="; ".join(e.feedback for e in evaluations if e.feedback),
        missing_info=list(dict.fromkeys(missing)) or None,
    )


def calculate_score(criteria: List[Dict[str, Any]]) -> int:
    """
    Percentage of met criteria, weighted.

    Each criterion is {"met": bool, "weight": float (default 1)}.
    """
    if not criteria:
        return 0
    total_weight = sum(c.get("weight", 1) for c in criteria)
    met_weight = sum(c.get("weight", 1) for c in criteria if c["met"])
    # Half-up rounding
    return math.floor(met_weight / total_weight * 100 + 0.5)
