"""Core protocols -- the extension points of the task manager.

All protocols use Python's structural subtyping (typing.Protocol):
if your class has the right methods, it implements the protocol.
No inheritance required.
"""

from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol, runtime_checkable

from core.models.events import Event
from core.models.tasks import Task


# ---------------------------------------------------------------------------
# 1. EventBus -- where task lifecycle events are published
# ---------------------------------------------------------------------------

@runtime_checkable
class EventBus(Protocol):
    """Publish/subscribe event bus.

    Default implementation: AsyncIOBus (in-process pub/sub with JSONL audit).
    """

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers of its type."""
        ...

    def subscribe(self, event_type: str, callback: Callable[[Event], Coroutine[Any, Any, None]]) -> None:
        """Register a callback for events of the given type."""
        ...

    def unsubscribe(self, event_type: str, callback: Callable[[Event], Coroutine[Any, Any, None]]) -> None:
        """Remove a previously registered callback."""
        ...


# ---------------------------------------------------------------------------
# 2. TaskHandler -- named, reusable work a task can be bound to
# ---------------------------------------------------------------------------

@runtime_checkable
class TaskHandler(Protocol):
    """Executes the work of a background task.

    Handlers registered by name can be referenced from config.yaml
    (tasks.default_tasks) and from the HTTP API. The returned value is
    stored in the task history; a mapping carrying `is_discovery` or
    `discovery_type` is also recorded as a discovery.
    """

    @property
    def name(self) -> str:
        """Unique handler name, e.g. 'heartbeat'."""
        ...

    async def run(self, task: Task) -> Any:
        """Do one unit of work for `task`. Raise to record a failure."""
        ...
