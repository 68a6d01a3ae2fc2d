"""Tests for the stopping and transition rules."""

import pytest

from iterloop import Evaluation, IterationContext, TerminationReason, resolve_config
from iterloop.termination import check_termination, should_run_transition, stream_converged


def decide(score, iteration=0, should_continue=True, custom_check=None, **options):
    evaluation = Evaluation(score=score, should_continue=should_continue)
    config = resolve_config(**options)
    context = IterationContext(iteration=iteration, max_iterations=config.max_iterations)
    return check_termination({}, evaluation, context, iteration, config, custom_check)


class TestCheckTermination:

    def test_below_target_continues(self):
        assert decide(50).terminate is False

    def test_target_reached(self):
        decision = decide(75)
        assert decision.terminate is True
        assert decision.reason == TerminationReason.CONVERGED

    def test_target_waits_for_min_iterations(self):
        assert decide(75, iteration=1, min_iterations=3).terminate is False
        assert decide(75, iteration=2, min_iterations=3).terminate is True

    def test_skip_min_iterations(self):
        assert decide(75, iteration=0, min_iterations=3, skip_min_iterations=True).terminate is True

    def test_early_stop_ignores_min_iterations(self):
        decision = decide(96, iteration=0, min_iterations=3)
        assert decision.reason == TerminationReason.EARLY_STOP

    def test_stop_request_ignores_min_iterations(self):
        decision = decide(10, iteration=0, should_continue=False, min_iterations=3)
        assert decision.terminate is True
        assert decision.reason == TerminationReason.CONVERGED

    def test_custom_check_wins(self):
        decision = decide(99, custom_check=lambda state, evaluation, context: True)
        assert decision.reason == TerminationReason.MANUAL_STOP

    def test_custom_check_false_falls_through(self):
        decision = decide(99, custom_check=lambda state, evaluation, context: False)
        assert decision.reason == TerminationReason.EARLY_STOP

    def test_resolved_stop_request_wins(self):
        evaluation = Evaluation(score=99)
        config = resolve_config()
        context = IterationContext(iteration=0, max_iterations=config.max_iterations)

        decision = check_termination({}, evaluation, context, 0, config, stop_requested=True)

        assert decision.reason == TerminationReason.MANUAL_STOP

    def test_early_stop_beats_stop_request(self):
        decision = decide(97, should_continue=False)
        assert decision.reason == TerminationReason.EARLY_STOP


@pytest.mark.parametrize(
    "terminating, iteration, always, expected",
    [
        (False, 0, False, True),
        (True, 0, False, False),
        (False, 4, False, False),
        (True, 4, False, False),
        (True, 0, True, True),
        (False, 4, True, True),
    ],
)
def test_transition_gate(terminating, iteration, always, expected):
    config = resolve_config(max_iterations=5, always_run_transition=always)
    assert should_run_transition(terminating, iteration, config) is expected


class TestStreamConverged:

    def test_target_with_min_floor(self):
        config = resolve_config(min_iterations=2)
        assert stream_converged(Evaluation(80), 1, config) is False
        assert stream_converged(Evaluation(80), 2, config) is True

    def test_stop_request_with_min_floor(self):
        config = resolve_config(min_iterations=2)
        assert stream_converged(Evaluation(10, should_continue=False), 1, config) is False
        assert stream_converged(Evaluation(10, should_continue=False), 2, config) is True

    def test_skip_min_only_applies_to_target(self):
        config = resolve_config(min_iterations=3, skip_min_iterations=True)
        assert stream_converged(Evaluation(80), 1, config) is True
        assert stream_converged(Evaluation(10, should_continue=False), 1, config) is False

    def test_no_early_stop(self):
        config = resolve_config(min_iterations=2)
        assert stream_converged(Evaluation(100), 1, config) is False
