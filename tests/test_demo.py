"""Tests for the numeric refinement demo."""

import pytest

from iterloop import TerminationReason
from iterloop.demo import build_demo_loop, build_demo_stream


@pytest.mark.asyncio
async def test_batch_run_skips_final_transition():
    outcome = await build_demo_loop().run(50)

    assert outcome.termination_reason == TerminationReason.CONVERGED
    assert outcome.result == {"target": 50.0, "answer": 25.0, "transitions": 1}


@pytest.mark.asyncio
async def test_dict_input_with_start():
    outcome = await build_demo_loop().run({"target": 10, "start": 10})

    assert outcome.iterations == 1
    assert outcome.final_score == 100.0
    assert outcome.termination_reason == TerminationReason.EARLY_STOP
    assert outcome.history[0].evaluation.feedback == "exact"


@pytest.mark.asyncio
async def test_stream_converges_on_second_snapshot():
    stream = await build_demo_stream().execute_stream(50)

    assert [s.iteration for s in stream] == [0, 1, 2]
    assert [s.state["guess"] for s in stream] == [0.0, 25.0, 25.0]
    assert stream[-1].converged is True


@pytest.mark.asyncio
async def test_overshoot_feedback():
    outcome = await build_demo_loop(max_iterations=1).run({"target": 10, "start": 60})

    assert outcome.history[0].evaluation.feedback == "too high"
    assert outcome.termination_reason == TerminationReason.MAX_ITERATIONS
