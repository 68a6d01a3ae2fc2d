"""
Loop configuration.

A LoopConfig is never modified in place. Every change goes through
validation and produces a new instance, so a rejected update leaves the
previous configuration exactly as it was.
"""

from dataclasses import dataclass, fields, replace
from numbers import Real
from typing import Any, Dict, Optional
import logging
import math

from iterloop.errors import ConfigValidationError


@dataclass(frozen=True)
class LoopConfig:
    """Configuration for an iteration loop."""
    max_iterations: int = 5
    target_score: float = 70
    early_stop_score: float = 95
    # NOTE: a floor above 1 keeps iterating after the target score is reached,
    # which costs extra calls. `skip_min_iterations` waives it.
    min_iterations: int = 1
    timeout: Optional[float] = None  # seconds, checked between iterations
    verbose: bool = False
    # Run transition after the terminating (or last) iteration too, so the
    # state handed to finalize includes the last action.
    always_run_transition: bool = False
    skip_min_iterations: bool = False
    logger: Optional[logging.Logger] = None

    def __post_init__(self):
        validate_config(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_iterations": self.max_iterations,
            "target_score": self.target_score,
            "early_stop_score": self.early_stop_score,
            "min_iterations": self.min_iterations,
            "timeout": self.timeout,
            "verbose": self.verbose,
            "always_run_transition": self.always_run_transition,
            "skip_min_iterations": self.skip_min_iterations,
        }


CONFIG_KEYS = frozenset(f.name for f in fields(LoopConfig))


# Named bundles for common trade-offs between quality and cost.
PRESETS: Dict[str, Dict[str, Any]] = {
    "fast": {
        "max_iterations": 3,
        "target_score": 60,
        "early_stop_score": 80,
        "min_iterations": 1,
        "skip_min_iterations": True,
    },
    "thorough": {
        "max_iterations": 10,
        "target_score": 90,
        "early_stop_score": 98,
        "min_iterations": 3,
        "skip_min_iterations": False,
    },
    "balanced": {
        "max_iterations": 5,
        "target_score": 70,
        "early_stop_score": 95,
        "min_iterations": 1,
        "skip_min_iterations": False,
    },
    "cost-optimized": {
        "max_iterations": 3,
        "target_score": 65,
        "early_stop_score": 75,
        "min_iterations": 1,
        "skip_min_iterations": True,
        "always_run_transition": False,
    },
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_config(config: LoopConfig) -> LoopConfig:
    """Check every invariant of `config` and return it unchanged."""
    if not _is_int(config.max_iterations) or config.max_iterations < 1:
        raise ConfigValidationError(
            f"Invalid configuration: max_iterations must be a positive integer, got {config.max_iterations!r}"
        )
    if not _is_int(config.min_iterations) or config.min_iterations < 1:
        raise ConfigValidationError(
            f"Invalid configuration: min_iterations must be a positive integer, got {config.min_iterations!r}"
        )
    if config.min_iterations > config.max_iterations:
        raise ConfigValidationError(
            f"Invalid configuration: min_iterations ({config.min_iterations}) "
            f"cannot be greater than max_iterations ({config.max_iterations})"
        )
    for name in ("target_score", "early_stop_score"):
        value = getattr(config, name)
        if not _is_number(value) or math.isnan(value):
            raise ConfigValidationError(
                f"Invalid configuration: {name} must be a number, got {value!r}"
            )
    for name in ("verbose", "always_run_transition", "skip_min_iterations"):
        if not isinstance(getattr(config, name), bool):
            raise ConfigValidationError(
                f"Invalid configuration: {name} must be a boolean, got {getattr(config, name)!r}"
            )
    if config.timeout is not None and (
        not _is_number(config.timeout) or math.isnan(config.timeout) or config.timeout <= 0
    ):
        raise ConfigValidationError(
            f"Invalid configuration: timeout must be a positive number of seconds, got {config.timeout!r}"
        )
    return config


def _check_keys(options: Dict[str, Any]) -> None:
    unknown = sorted(set(options) - CONFIG_KEYS)
    if unknown:
        raise ConfigValidationError(f"Unknown configuration option(s): {', '.join(unknown)}")


def default_config() -> LoopConfig:
    """The documented defaults."""
    return LoopConfig()


def resolve_config(**options: Any) -> LoopConfig:
    """Merge `options` over the defaults and validate the result."""
    _check_keys(options)
    return LoopConfig(**options)


def update_config(existing: LoopConfig, **changes: Any) -> LoopConfig:
    """
    Return a validated copy of `existing` with `changes` applied.

    `existing` is never touched; on failure the caller keeps using it.
    """
    _check_keys(changes)
    return replace(existing, **changes)


def derive_config(existing: LoopConfig, **overrides: Any) -> LoopConfig:
    """Config for a sibling loop; same rules as update_config."""
    return update_config(existing, **overrides)


def resolve_preset(name: str, **overrides: Any) -> LoopConfig:
    """Config for a named preset, optionally adjusted by `overrides`."""
    if name not in PRESETS:
        raise ConfigValidationError(
            f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}"
        )
    return resolve_config(**{**PRESETS[name], **overrides})
