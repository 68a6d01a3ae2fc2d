"""
Lifecycle events and the bus that delivers them.

Listeners are called synchronously, in subscription order. A listener that
raises is logged and skipped; it never stops the other listeners or the
loop that emitted the event.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Points in a run where an event is emitted."""
    START = "start"
    ITERATION_START = "iteration_start"
    ACTION_COMPLETE = "action_complete"
    EVALUATION_COMPLETE = "evaluation_complete"
    ITERATION_COMPLETE = "iteration_complete"
    TRANSITION_COMPLETE = "transition_complete"
    CONVERGED = "converged"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class IterationEvent:
    """
    A lifecycle event. Only the fields relevant to `type` are set:

    start{input}, iteration_start{iteration},
    action_complete{iteration, action_result},
    evaluation_complete{iteration, evaluation},
    iteration_complete{iteration, history_entry},
    transition_complete{iteration, state}, converged{iteration, score},
    complete{result}, error{error, iteration, state}
    """
    type: EventType
    iteration: Optional[int] = None
    input: Any = None
    action_result: Any = None
    evaluation: Any = None
    history_entry: Any = None
    state: Any = None
    score: Optional[float] = None
    result: Any = None
    error: Optional[BaseException] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Flat dict of the populated fields, records converted with to_dict()."""
        data: Dict[str, Any] = {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
        }
        for name in ("iteration", "input", "action_result", "evaluation",
                     "history_entry", "state", "score", "result"):
            value = getattr(self, name)
            if value is None:
                continue
            data[name] = value.to_dict() if hasattr(value, "to_dict") else value
        if self.error is not None:
            data["error"] = str(self.error)
        return data


EventListener = Callable[[IterationEvent], None]


class EventBus:
    """Ordered, fault-isolated multicast of IterationEvents."""

    def __init__(self, error_logger: Optional[logging.Logger] = None):
        self.error_logger = error_logger
        self._subscriptions: List[Tuple[object, EventListener]] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register `listener`. Returns a function that removes it again."""
        token = object()
        self._subscriptions.append((token, listener))

        def unsubscribe() -> None:
            self._subscriptions = [s for s in self._subscriptions if s[0] is not token]

        return unsubscribe

    def emit(self, event: IterationEvent) -> None:
        """Deliver `event` to every listener."""
        # Iterate over a snapshot so listeners may unsubscribe mid-emit
        for _, listener in list(self._subscriptions):
            try:
                listener(event)
            except Exception as e:
                sink = self.error_logger or logger
                sink.error(f"[iterloop] Event listener error: {e}", exc_info=True)
