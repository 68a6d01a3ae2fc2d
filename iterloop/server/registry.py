"""Named loops served by the API."""
from typing import Dict, List, Optional
import logging

from iterloop.config import resolve_preset
from iterloop.demo import build_demo_phases
from iterloop.loop import IterationLoop

logger = logging.getLogger(__name__)


class LoopNotFoundError(KeyError):
    """No loop is registered under the requested name."""


class LoopRegistry:
    """
    Registered loops act as templates: every request runs a sibling built
    with `with_config`, so listeners and config overrides never leak
    between requests.
    """

    def __init__(self):
        self._loops: Dict[str, IterationLoop] = {}

    def register(self, name: str, loop: IterationLoop) -> None:
        if name in self._loops:
            logger.warning(f"Replacing registered loop '{name}'")
        self._loops[name] = loop

    def get(self, name: str) -> IterationLoop:
        try:
            return self._loops[name]
        except KeyError:
            raise LoopNotFoundError(name) from None

    def names(self) -> List[str]:
        return sorted(self._loops)

    def __contains__(self, name: str) -> bool:
        return name in self._loops


def default_registry(preset: Optional[str] = None) -> LoopRegistry:
    """Registry holding the demo loop, configured from `preset` when given."""
    registry = LoopRegistry()
    config = resolve_preset(preset) if preset else None
    registry.register("demo", IterationLoop(build_demo_phases(), config))
    return registry
