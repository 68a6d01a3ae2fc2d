"""Tests for the iterloop data model."""

import dataclasses
from datetime import datetime

import pytest

from iterloop import (
    ActionMetadata,
    ActionResult,
    Evaluation,
    HistoryEntry,
    IterationResult,
    TerminationReason,
)
from iterloop.types import clamp_score, total_cost


class TestScoreClamping:

    @pytest.mark.parametrize("raw, expected", [(-10, 0.0), (150, 100.0), (42.5, 42.5), (0, 0.0), (100, 100.0)])
    def test_evaluation_scores_are_clamped(self, raw, expected):
        assert Evaluation(score=raw).score == expected

    def test_nan_is_rejected(self):
        with pytest.raises(ValueError):
            Evaluation(score=float("nan"))

    @pytest.mark.parametrize("raw", ["80", None, True])
    def test_non_numeric_is_rejected(self, raw):
        with pytest.raises(TypeError):
            clamp_score(raw)

    def test_score_cannot_be_reassigned_past_the_clamp(self):
        evaluation = Evaluation(score=80)

        with pytest.raises(dataclasses.FrozenInstanceError):
            evaluation.score = 150
        assert evaluation.score == 80.0

    def test_infinity_clamps(self):
        assert clamp_score(float("inf")) == 100.0
        assert clamp_score(float("-inf")) == 0.0


def test_action_result_cost_defaults_to_zero():
    assert ActionResult(data="x").cost == 0.0
    assert ActionResult(data="x", metadata=ActionMetadata()).cost == 0.0
    assert ActionResult(data="x", metadata=ActionMetadata(cost=0.25)).cost == 0.25


def test_total_cost_treats_missing_metadata_as_zero():
    history = [
        HistoryEntry(0, ActionResult("a", ActionMetadata(cost=0.5)), Evaluation(10)),
        HistoryEntry(1, ActionResult("b"), Evaluation(20)),
        HistoryEntry(2, ActionResult("c", ActionMetadata(cost=1.5)), Evaluation(30)),
    ]
    assert total_cost(history) == 2.0


def test_history_entry_timestamp_defaults_to_now():
    before = datetime.now()
    entry = HistoryEntry(0, ActionResult("a"), Evaluation(50))
    assert before <= entry.timestamp <= datetime.now()


def test_iteration_result_to_dict():
    entry = HistoryEntry(0, ActionResult("a", ActionMetadata(sources=["web"], cost=0.1)), Evaluation(80))
    outcome = IterationResult(
        result={"answer": "a"},
        iterations=1,
        final_score=80.0,
        converged=True,
        termination_reason=TerminationReason.CONVERGED,
        total_cost=0.1,
        total_latency=0.02,
        history=[entry],
    )

    data = outcome.to_dict()

    assert data["termination_reason"] == "converged"
    assert data["history"][0]["action_result"]["metadata"]["sources"] == ["web"]
    assert data["history"][0]["evaluation"]["score"] == 80.0
    assert isinstance(data["history"][0]["timestamp"], str)
