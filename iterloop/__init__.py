"""
Iterloop - convergent iteration loops.

Drives an act -> evaluate -> transition cycle until the evaluation score
crosses a target, a limit is hit, or a custom check stops it. Built for
multi-step, imprecise work such as agentic LLM calls, whose quality is
only known after running them.
"""

from iterloop.types import (
    ActionMetadata,
    ActionResult,
    Evaluation,
    HistoryEntry,
    IterationContext,
    IterationResult,
    LoopPhases,
    TerminationReason,
    clamp_score,
)
from iterloop.errors import IterLoopError, ConfigValidationError, PhaseExecutionError
from iterloop.config import (
    LoopConfig,
    PRESETS,
    default_config,
    derive_config,
    resolve_config,
    resolve_preset,
    update_config,
)
from iterloop.termination import TerminationDecision, check_termination, should_run_transition, stream_converged
from iterloop.events import EventBus, EventType, IterationEvent
from iterloop.loop import IterationLoop, create_loop
from iterloop.stream import SnapshotStream, StreamingLoop, StreamSnapshot, create_streaming_loop
from iterloop.builder import LoopBuilder, StreamingLoopBuilder
from iterloop.utils import (
    calculate_average_score,
    calculate_score,
    calculate_total_cost,
    combine_evaluations,
    create_action_result,
    create_evaluation,
    deduplicate_by,
    get_score_progression,
    is_improving,
    merge_action_results,
    merge_dict_action_results,
    merge_list_action_results,
    with_retry,
    with_timeout,
)

__all__ = [
    # Core loop
    "IterationLoop",
    "create_loop",
    "LoopBuilder",
    # Streaming
    "StreamingLoop",
    "StreamSnapshot",
    "SnapshotStream",
    "StreamingLoopBuilder",
    "create_streaming_loop",
    # Types
    "ActionMetadata",
    "ActionResult",
    "Evaluation",
    "HistoryEntry",
    "IterationContext",
    "IterationResult",
    "LoopPhases",
    "TerminationReason",
    "clamp_score",
    # Config
    "LoopConfig",
    "PRESETS",
    "default_config",
    "derive_config",
    "resolve_config",
    "resolve_preset",
    "update_config",
    # Policy
    "TerminationDecision",
    "check_termination",
    "should_run_transition",
    "stream_converged",
    # Events
    "EventBus",
    "EventType",
    "IterationEvent",
    # Errors
    "IterLoopError",
    "ConfigValidationError",
    "PhaseExecutionError",
    # Utilities
    "calculate_average_score",
    "calculate_score",
    "calculate_total_cost",
    "combine_evaluations",
    "create_action_result",
    "create_evaluation",
    "deduplicate_by",
    "get_score_progression",
    "is_improving",
    "merge_action_results",
    "merge_dict_action_results",
    "merge_list_action_results",
    "with_retry",
    "with_timeout",
]
