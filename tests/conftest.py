"""Shared fixtures: a fresh bus, event recorder and manager per test."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.bus import AsyncIOBus
from core.config import TaskManagerConfig
from scheduler.manager import BackgroundTaskManager

from .fakes import EventRecorder


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def bus(recorder: EventRecorder) -> AsyncIOBus:
    """In-memory bus (no audit files) with the recorder subscribed to everything."""
    bus = AsyncIOBus()
    bus.subscribe("*", recorder)
    return bus


@pytest.fixture()
def task_config(tmp_path: Path) -> TaskManagerConfig:
    """Fast tick so loop-driven tests finish in well under a second."""
    return TaskManagerConfig(
        base_path=str(tmp_path / "tasks"),
        tick_interval="10ms",
        discovery_flush_interval="60s",
        max_concurrent_tasks=5,
        max_history_length=1000,
    )


@pytest.fixture()
def manager(bus: AsyncIOBus, task_config: TaskManagerConfig) -> BackgroundTaskManager:
    return BackgroundTaskManager(bus=bus, config=task_config)
