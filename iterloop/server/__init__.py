"""
HTTP service for iterloop.

Run with:
    uvicorn iterloop.server.app:app --port 8811
"""

from iterloop.server.registry import LoopNotFoundError, LoopRegistry, default_registry

__all__ = [
    "LoopRegistry",
    "LoopNotFoundError",
    "default_registry",
]
