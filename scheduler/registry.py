"""Task registry -- in-memory map of task id -> Task for the process lifetime.

Records are never removed. Iteration follows registration order, which is
also the tie-break between tasks of equal priority at dispatch time.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from core.errors import TaskRegistrationError
from core.models.tasks import Task, TaskHandlerFn, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Owns every Task record. Only the scheduler mutates them."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def register(
        self,
        name: str,
        handler: TaskHandlerFn,
        *,
        description: str = "",
        agent_id: str | None = None,
        priority: TaskPriority | int = TaskPriority.MEDIUM,
        interval_ms: int = 10_000,
        one_shot: bool = False,
        state: dict[str, Any] | None = None,
    ) -> str:
        """Create an IDLE task due immediately and return its id."""
        if not name or not str(name).strip():
            raise TaskRegistrationError("Task name is required")
        if handler is None or not callable(handler):
            raise TaskRegistrationError(f"Task '{name}' requires a callable handler")
        if interval_ms < 0:
            raise TaskRegistrationError(f"Task '{name}' interval must be >= 0, got {interval_ms}")
        try:
            priority = TaskPriority(priority)
        except ValueError:
            raise TaskRegistrationError(f"Task '{name}' has unknown priority {priority!r}") from None

        task = Task(
            name=str(name).strip(),
            description=description,
            agent_id=agent_id,
            priority=priority,
            interval_ms=int(interval_ms),
            one_shot=one_shot,
            handler=handler,
            state=dict(state or {}),
        )
        self._tasks[task.id] = task

        logger.info(
            "Registered task %s (%s) priority=%s interval=%dms agent=%s",
            task.name, task.id, task.priority.name, task.interval_ms, task.agent_id,
        )
        return task.id

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def all(self) -> list[Task]:
        return list(self._tasks.values())

    def by_agent(self, agent_id: str) -> list[Task]:
        return [t for t in self._tasks.values() if t.agent_id == agent_id]

    def by_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self._tasks.values() if t.status == status]

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))
