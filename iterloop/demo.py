"""
Demo loop: numeric refinement.

Each iteration proposes a guess, scores it by its distance to a hidden
target, and moves the next guess halfway toward the target. Used by the
command-line runner and registered by default in the HTTP service.
"""

from typing import Any, Dict, List, Union

from iterloop.loop import IterationLoop
from iterloop.stream import StreamingLoop
from iterloop.types import ActionResult, Evaluation, HistoryEntry, IterationContext, LoopPhases
from iterloop.utils import create_action_result, create_evaluation

DEMO_COST_PER_GUESS = 0.01


async def initialize(input: Union[float, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(input, dict):
        target = float(input["target"])
        start = float(input.get("start", 0.0))
    else:
        target = float(input)
        start = 0.0
    return {"target": target, "guess": start, "guesses": []}


async def act(state: Dict[str, Any], context: IterationContext) -> ActionResult[float]:
    return create_action_result(
        round(state["guess"], 4),
        sources=["demo"],
        cost=DEMO_COST_PER_GUESS,
    )


async def evaluate(state: Dict[str, Any], action_result: ActionResult[float], context: IterationContext) -> Evaluation:
    distance = state["target"] - action_result.data
    if distance > 0:
        feedback = "too low"
    elif distance < 0:
        feedback = "too high"
    else:
        feedback = "exact"
    return create_evaluation(
        100 - abs(distance),
        feedback=feedback,
        metadata={"distance": distance},
    )


async def transition(
    state: Dict[str, Any],
    action_result: ActionResult[float],
    evaluation: Evaluation,
    context: IterationContext,
) -> Dict[str, Any]:
    guess = action_result.data
    return {
        **state,
        "guess": guess + (state["target"] - guess) / 2,
        "guesses": state["guesses"] + [guess],
    }


async def finalize(state: Dict[str, Any], history: List[HistoryEntry[float]]) -> Dict[str, Any]:
    # The last guess lives in history when its transition was skipped
    answer = history[-1].action_result.data if history else state["guess"]
    return {"target": state["target"], "answer": answer, "transitions": len(state["guesses"])}


def build_demo_phases() -> LoopPhases:
    return LoopPhases(
        initialize=initialize,
        act=act,
        evaluate=evaluate,
        transition=transition,
        finalize=finalize,
    )


def build_demo_loop(**options: Any) -> IterationLoop:
    return IterationLoop(build_demo_phases(), **options)


def build_demo_stream(**options: Any) -> StreamingLoop:
    return StreamingLoop(build_demo_phases(), **options)
