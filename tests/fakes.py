"""Test doubles for the task manager."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from core.models.events import Event
from core.models.tasks import Task


@dataclass
class EventRecorder:
    """Wildcard bus subscriber that keeps every published event."""

    events: list[Event] = field(default_factory=list)

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.type == event_type]


class GatedHandler:
    """Handler that blocks until released, so tests can observe RUNNING tasks."""

    def __init__(self, result: object = None) -> None:
        self.gate = asyncio.Event()
        self.started: list[str] = []
        self.result = result if result is not None else {"status": "completed"}

    async def __call__(self, task: Task) -> object:
        self.started.append(task.name)
        await self.gate.wait()
        return self.result

    def release(self) -> None:
        self.gate.set()


def returning(value: object):
    """Async handler returning `value`."""

    async def handler(task: Task) -> object:
        return value

    return handler


def failing(message: str = "boom"):
    """Async handler that always raises RuntimeError(message)."""

    async def handler(task: Task) -> object:
        raise RuntimeError(message)

    return handler
