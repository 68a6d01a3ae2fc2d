"""
Fluent builders for IterationLoop and StreamingLoop.

Example:
    loop = (
        LoopBuilder()
        .initialize(plan)
        .act(search)
        .evaluate(score_answer)
        .transition(refine_query)
        .finalize(synthesize)
        .preset("thorough")
        .max_iterations(7)
        .build()
    )
"""

from typing import Any, Callable, Dict, List, Optional

from iterloop.config import PRESETS, resolve_config
from iterloop.errors import ConfigValidationError
from iterloop.events import EventListener
from iterloop.loop import IterationLoop
from iterloop.stream import StreamingLoop, identity_transition
from iterloop.types import IterationResult, LoopPhases

REQUIRED_PHASES = ("initialize", "act", "evaluate", "transition", "finalize")


class LoopBuilder:
    """Collects phases, options and listeners, then builds an IterationLoop."""

    def __init__(self):
        self._phases: Dict[str, Callable] = {}
        self._options: Dict[str, Any] = {}
        self._listeners: List[EventListener] = []

    # Phases

    def initialize(self, fn: Callable) -> "LoopBuilder":
        self._phases["initialize"] = fn
        return self

    def act(self, fn: Callable) -> "LoopBuilder":
        self._phases["act"] = fn
        return self

    def evaluate(self, fn: Callable) -> "LoopBuilder":
        self._phases["evaluate"] = fn
        return self

    def transition(self, fn: Callable) -> "LoopBuilder":
        self._phases["transition"] = fn
        return self

    def finalize(self, fn: Callable) -> "LoopBuilder":
        self._phases["finalize"] = fn
        return self

    def should_terminate(self, fn: Callable) -> "LoopBuilder":
        self._phases["should_terminate"] = fn
        return self

    def on_error(self, fn: Callable) -> "LoopBuilder":
        self._phases["on_error"] = fn
        return self

    # Options

    def max_iterations(self, value: int) -> "LoopBuilder":
        self._options["max_iterations"] = value
        return self

    def target_score(self, value: float) -> "LoopBuilder":
        self._options["target_score"] = value
        return self

    def early_stop_score(self, value: float) -> "LoopBuilder":
        self._options["early_stop_score"] = value
        return self

    def min_iterations(self, value: int) -> "LoopBuilder":
        self._options["min_iterations"] = value
        return self

    def timeout(self, seconds: float) -> "LoopBuilder":
        self._options["timeout"] = seconds
        return self

    def verbose(self, enabled: bool = True) -> "LoopBuilder":
        self._options["verbose"] = enabled
        return self

    def always_run_transition(self, enabled: bool = True) -> "LoopBuilder":
        self._options["always_run_transition"] = enabled
        return self

    def skip_min_iterations(self, enabled: bool = True) -> "LoopBuilder":
        self._options["skip_min_iterations"] = enabled
        return self

    def logger(self, logger) -> "LoopBuilder":
        self._options["logger"] = logger
        return self

    def preset(self, name: str) -> "LoopBuilder":
        """Apply a named preset from PRESETS; later setters still override it."""
        if name not in PRESETS:
            raise ConfigValidationError(
                f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}"
            )
        self._options.update(PRESETS[name])
        return self

    def custom_preset(self, options: Dict[str, Any]) -> "LoopBuilder":
        self._options.update(options)
        return self

    configure = custom_preset

    def on(self, listener: EventListener) -> "LoopBuilder":
        self._listeners.append(listener)
        return self

    # Build

    def build(self) -> IterationLoop:
        for name in REQUIRED_PHASES:
            if name not in self._phases:
                raise ConfigValidationError(f"{name} function is required")
        loop = IterationLoop(LoopPhases(**self._phases), resolve_config(**self._options))
        for listener in self._listeners:
            loop.subscribe(listener)
        return loop

    async def run(self, input: Any) -> IterationResult:
        """Build and run immediately."""
        return await self.build().run(input)


class StreamingLoopBuilder:
    """Builder for StreamingLoop; transition defaults to the identity."""

    def __init__(self):
        self._phases: Dict[str, Optional[Callable]] = {}
        self._options: Dict[str, Any] = {}

    def with_initialize(self, fn: Callable) -> "StreamingLoopBuilder":
        self._phases["initialize"] = fn
        return self

    def with_act(self, fn: Callable) -> "StreamingLoopBuilder":
        self._phases["act"] = fn
        return self

    def with_evaluate(self, fn: Callable) -> "StreamingLoopBuilder":
        self._phases["evaluate"] = fn
        return self

    def with_transition(self, fn: Callable) -> "StreamingLoopBuilder":
        self._phases["transition"] = fn
        return self

    def with_finalize(self, fn: Callable) -> "StreamingLoopBuilder":
        self._phases["finalize"] = fn
        return self

    def with_options(self, **options: Any) -> "StreamingLoopBuilder":
        self._options.update(options)
        return self

    def with_max_iterations(self, value: int) -> "StreamingLoopBuilder":
        self._options["max_iterations"] = value
        return self

    def with_target_score(self, value: float) -> "StreamingLoopBuilder":
        self._options["target_score"] = value
        return self

    def with_timeout(self, seconds: float) -> "StreamingLoopBuilder":
        self._options["timeout"] = seconds
        return self

    @property
    def options(self) -> Dict[str, Any]:
        return dict(self._options)

    def build(self) -> StreamingLoop:
        if not all(name in self._phases for name in ("initialize", "act", "evaluate")):
            raise ConfigValidationError("initialize, act, and evaluate functions are required")
        phases = {"transition": identity_transition, **self._phases}
        return StreamingLoop(LoopPhases(**phases), resolve_config(**self._options))
