"""Pytest fixtures for iterloop tests."""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from iterloop import ActionMetadata, ActionResult, Evaluation, IterationEvent, LoopPhases


class ScriptedPhases:
    """
    Phases driven by a fixed score sequence.

    The state records which iterations were transitioned, so tests can see
    exactly which transitions reached finalize.
    """

    def __init__(
        self,
        scores: Sequence[float],
        should_continue: Optional[Sequence[bool]] = None,
        costs: Optional[Sequence[Optional[float]]] = None,
    ):
        self.scores = list(scores)
        self.should_continue = list(should_continue) if should_continue else None
        self.costs = list(costs) if costs else None
        self.calls: List[tuple] = []
        self.contexts: List[Any] = []
        self.final_state: Optional[Dict[str, Any]] = None
        self.final_history: Optional[list] = None
        self._evaluations = 0
        self._actions = 0

    async def initialize(self, input):
        self.calls.append(("initialize", input))
        return {"input": input, "transitions": []}

    async def act(self, state, context):
        self.calls.append(("act", context.iteration))
        self.contexts.append(context)
        index = self._actions
        self._actions += 1
        metadata = None
        if self.costs is not None:
            cost = self.costs[index] if index < len(self.costs) else None
            if cost is not None:
                metadata = ActionMetadata(cost=cost)
        return ActionResult(data=f"action-{context.iteration}", metadata=metadata)

    async def evaluate(self, state, action_result, context):
        self.calls.append(("evaluate", context.iteration))
        index = min(self._evaluations, len(self.scores) - 1)
        self._evaluations += 1
        keep_going = self.should_continue[index] if self.should_continue else True
        return Evaluation(score=self.scores[index], should_continue=keep_going, feedback=f"eval-{index}")

    async def transition(self, state, action_result, evaluation, context):
        self.calls.append(("transition", context.iteration))
        return {**state, "transitions": state["transitions"] + [context.iteration]}

    async def finalize(self, state, history):
        self.calls.append(("finalize", len(history)))
        self.final_state = state
        self.final_history = history
        return {"transitions": state["transitions"], "iterations": len(history)}

    def phase_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def phases(self, **extra: Any) -> LoopPhases:
        return LoopPhases(
            initialize=self.initialize,
            act=self.act,
            evaluate=self.evaluate,
            transition=self.transition,
            finalize=self.finalize,
            **extra,
        )


@pytest.fixture
def scripted():
    """Factory for ScriptedPhases."""
    return ScriptedPhases


@pytest.fixture
def event_log():
    """A listener that records every event, plus the recorded list."""
    events: List[IterationEvent] = []

    def listener(event: IterationEvent) -> None:
        events.append(event)

    listener.events = events
    return listener
