"""Pydantic data models shared across all components."""

from core.models.discoveries import Discovery
from core.models.events import Event, EventTypes
from core.models.tasks import (
    HistoryEntry,
    Task,
    TaskPriority,
    TaskResult,
    TaskStateSnapshot,
    TaskStatus,
)

__all__ = [
    "Discovery",
    "Event",
    "EventTypes",
    "HistoryEntry",
    "Task",
    "TaskPriority",
    "TaskResult",
    "TaskStateSnapshot",
    "TaskStatus",
]
