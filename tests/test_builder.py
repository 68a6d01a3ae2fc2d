"""Tests for the fluent builders."""

import pytest

from iterloop import (
    ConfigValidationError,
    EventType,
    IterationLoop,
    LoopBuilder,
    StreamingLoop,
    StreamingLoopBuilder,
    TerminationReason,
)


def full_builder(script):
    return (
        LoopBuilder()
        .initialize(script.initialize)
        .act(script.act)
        .evaluate(script.evaluate)
        .transition(script.transition)
        .finalize(script.finalize)
    )


class TestLoopBuilder:

    def test_builds_iteration_loop_with_options(self, scripted):
        loop = full_builder(scripted([10])).max_iterations(7).target_score(80).verbose().build()

        assert isinstance(loop, IterationLoop)
        config = loop.get_config()
        assert config.max_iterations == 7
        assert config.target_score == 80
        assert config.verbose is True

    @pytest.mark.parametrize("missing", ["initialize", "act", "evaluate", "transition", "finalize"])
    def test_every_phase_is_required(self, scripted, missing):
        script = scripted([10])
        builder = LoopBuilder()
        for name in ("initialize", "act", "evaluate", "transition", "finalize"):
            if name != missing:
                getattr(builder, name)(getattr(script, name))

        with pytest.raises(ConfigValidationError, match=f"{missing} function is required"):
            builder.build()

    def test_later_setters_override_preset(self, scripted):
        loop = full_builder(scripted([10])).preset("thorough").max_iterations(7).build()
        config = loop.get_config()

        assert config.max_iterations == 7
        assert config.target_score == 90
        assert config.min_iterations == 3

    def test_unknown_preset(self):
        with pytest.raises(ConfigValidationError, match="Unknown preset"):
            LoopBuilder().preset("turbo")

    def test_custom_preset_and_configure_alias(self, scripted):
        loop = (
            full_builder(scripted([10]))
            .custom_preset({"max_iterations": 4})
            .configure({"early_stop_score": 90})
            .build()
        )
        config = loop.get_config()

        assert config.max_iterations == 4
        assert config.early_stop_score == 90

    def test_invalid_options_fail_at_build(self, scripted):
        builder = full_builder(scripted([10])).max_iterations(2).min_iterations(3)
        with pytest.raises(ConfigValidationError):
            builder.build()

    @pytest.mark.asyncio
    async def test_listeners_are_attached(self, scripted, event_log):
        outcome = await full_builder(scripted([40, 75])).on(event_log).run("in")

        assert outcome.termination_reason == TerminationReason.CONVERGED
        assert event_log.events[0].type == EventType.START
        assert event_log.events[-1].type == EventType.COMPLETE

    @pytest.mark.asyncio
    async def test_should_terminate_and_on_error_are_passed_through(self, scripted):
        outcome = await (
            full_builder(scripted([10]))
            .should_terminate(lambda state, evaluation, context: context.iteration == 1)
            .on_error(lambda error, state, context: "recovered")
            .run(None)
        )

        assert outcome.termination_reason == TerminationReason.MANUAL_STOP
        assert outcome.iterations == 2


class TestStreamingLoopBuilder:

    def test_requires_core_phases(self, scripted):
        script = scripted([10])
        builder = StreamingLoopBuilder().with_initialize(script.initialize).with_act(script.act)

        with pytest.raises(ConfigValidationError, match="initialize, act, and evaluate"):
            builder.build()

    def test_options_accumulate(self):
        builder = (
            StreamingLoopBuilder()
            .with_options(min_iterations=2)
            .with_max_iterations(6)
            .with_target_score(85)
            .with_timeout(3.0)
        )

        assert builder.options == {
            "min_iterations": 2,
            "max_iterations": 6,
            "target_score": 85,
            "timeout": 3.0,
        }

    @pytest.mark.asyncio
    async def test_transition_defaults_to_identity(self, scripted):
        script = scripted([40, 50, 75])
        loop = (
            StreamingLoopBuilder()
            .with_initialize(script.initialize)
            .with_act(script.act)
            .with_evaluate(script.evaluate)
            .build()
        )

        assert isinstance(loop, StreamingLoop)
        stream = await loop.execute_stream("in")
        assert [s.state for s in stream] == [{"input": "in", "transitions": []}] * 4
        assert "transition" not in script.phase_names()

    @pytest.mark.asyncio
    async def test_finalize_is_called_when_given(self, scripted):
        script = scripted([75])
        loop = (
            StreamingLoopBuilder()
            .with_initialize(script.initialize)
            .with_act(script.act)
            .with_evaluate(script.evaluate)
            .with_transition(script.transition)
            .with_finalize(script.finalize)
            .build()
        )

        await loop.execute_stream(None)

        assert script.phase_names()[-1] == "finalize"
