"""
Iterloop errors.

Timeouts are not errors: a run that exhausts its time budget ends normally
with a `timeout` termination reason.
"""

from typing import Optional


class IterLoopError(Exception):
    """Base class for all iterloop errors."""


class ConfigValidationError(IterLoopError, ValueError):
    """Raised when a loop configuration violates its invariants."""


class PhaseExecutionError(IterLoopError):
    """
    Uniform wrapper around anything raised by a phase callback.

    The original exception is kept as `__cause__` and as `original`.
    """

    def __init__(self, phase: str, original: BaseException, iteration: Optional[int] = None):
        self.phase = phase
        self.original = original
        self.iteration = iteration
        where = f" at iteration {iteration}" if iteration is not None else ""
        super().__init__(f"Phase '{phase}' failed{where}: {original}")

    @classmethod
    def wrap(cls, phase: str, error: BaseException, iteration: Optional[int] = None) -> "PhaseExecutionError":
        """Normalize `error`, leaving an existing PhaseExecutionError untouched."""
        if isinstance(error, PhaseExecutionError):
            return error
        wrapped = cls(phase, error, iteration)
        wrapped.__cause__ = error
        return wrapped
