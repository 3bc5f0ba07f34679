"""Handler registry -- stores named TaskHandler implementations.

At startup the entrypoint instantiates the builtin handlers and registers
them here. Config-defined tasks and the HTTP API look handlers up by name.
"""

from __future__ import annotations

import logging

from core.errors import UnknownHandlerError
from core.protocols import TaskHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Central registry of task handlers.

    Usage:
        registry = HandlerRegistry()
        registry.register(HeartbeatHandler())

        handler = registry.get("heartbeat")
    """

    def __init__(self) -> None:
        self._handlers: dict[str, TaskHandler] = {}

    def register(self, handler: TaskHandler) -> None:
        """Register a handler instance under its `name`."""
        if not isinstance(handler, TaskHandler):
            raise TypeError(f"{handler!r} does not implement TaskHandler")

        name = handler.name
        if name in self._handlers:
            logger.warning("Overwriting existing task handler '%s'", name)

        self._handlers[name] = handler
        logger.info("Registered task handler: %s", name)

    def get(self, name: str) -> TaskHandler:
        """Get a handler by name. Raises UnknownHandlerError if missing."""
        if name not in self._handlers:
            raise UnknownHandlerError(
                f"No task handler named '{name}'. Available: {self.names()}"
            )
        return self._handlers[name]

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> list[str]:
        """List all registered handler names."""
        return list(self._handlers.keys())
