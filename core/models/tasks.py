"""Task model -- recurring units of work owned by the task registry."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from core.clock import now_ms

TaskHandlerFn = Callable[..., Awaitable[Any]]


class TaskPriority(IntEnum):
    """Dispatch priority. Lower values are more urgent."""

    CRITICAL = 0
    HIGH = 1
    MEDIUM = 2
    LOW = 3
    BACKGROUND = 4


class TaskStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"  # one-shot tasks only
    FAILED = "failed"  # one-shot tasks only


class HistoryEntry(BaseModel):
    """One run of a task, newest last in Task.history."""

    timestamp: int = Field(default_factory=now_ms)
    duration_ms: float = 0.0
    status: Literal["completed", "failed"]
    result: Any = None
    error: str | None = None


class Task(BaseModel):
    """A named, recurring unit of asynchronous work.

    The handler is an async callable receiving the task itself and returning
    a result (see TaskResult) or raising. It is never serialized.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: f"task_{uuid4().hex[:12]}")
    name: str
    description: str = ""
    agent_id: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    interval_ms: int = 10_000
    one_shot: bool = False
    handler: TaskHandlerFn | None = Field(default=None, exclude=True)

    # Scheduling
    status: TaskStatus = TaskStatus.IDLE
    last_run: int | None = None
    next_run: int = Field(default_factory=now_ms)

    # Execution history
    history: list[HistoryEntry] = Field(default_factory=list)
    run_count: int = 0
    failure_count: int = 0

    # Handler-private data
    state: dict[str, Any] = Field(default_factory=dict)

    def is_due(self, now: int) -> bool:
        """True when the task may be dispatched at `now` (epoch ms)."""
        return self.status == TaskStatus.IDLE and self.next_run <= now

    def summary(self) -> dict:
        """JSON-friendly view without the full history."""
        data = self.model_dump(mode="json", exclude={"history"})
        data["history_length"] = len(self.history)
        return data


class TaskResult(BaseModel):
    """Result a handler may return.

    Recognized keys:
        is_discovery    -- flag the result as a discovery
        discovery_type  -- discovery type; a truthy value also flags it
        discovery_data  -- payload stored on the discovery instead of the result
        confidence      -- discovery confidence, defaults to 0.5

    Any extra fields are kept and end up in the task history. Handlers may
    also return a plain dict using the same keys.
    """

    model_config = ConfigDict(extra="allow")

    status: str = "completed"
    is_discovery: bool = False
    discovery_type: str | None = None
    discovery_data: Any = None
    confidence: float | None = None


class TaskStateSnapshot(BaseModel):
    """Point-in-time export of one task's scheduling metadata."""

    id: str
    name: str
    agent_id: str | None = None
    status: TaskStatus
    last_run: int | None = None
    next_run: int
    state: dict[str, Any] = Field(default_factory=dict)
    saved_at: int = Field(default_factory=now_ms)

    @classmethod
    def of(cls, task: Task) -> TaskStateSnapshot:
        return cls(
            id=task.id,
            name=task.name,
            agent_id=task.agent_id,
            status=task.status,
            last_run=task.last_run,
            next_run=task.next_run,
            state=dict(task.state),
        )
