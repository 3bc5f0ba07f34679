"""Heartbeat task handler -- proves the scheduler is alive."""

from __future__ import annotations

import logging
import time

from core.models.tasks import Task, TaskResult

logger = logging.getLogger(__name__)

PLUGIN_META = {
    "name": "heartbeat",
    "display_name": "Heartbeat",
    "description": "Log a heartbeat and report process uptime",
    "category": "task_handler",
    "class_name": "HeartbeatHandler",
}


class HeartbeatHandler:
    """Report uptime and how many beats this task has produced."""

    def __init__(self) -> None:
        self._started = time.monotonic()

    @property
    def name(self) -> str:
        return "heartbeat"

    async def run(self, task: Task) -> TaskResult:
        beats = int(task.state.get("beats", 0)) + 1
        task.state["beats"] = beats
        uptime = time.monotonic() - self._started
        logger.info("Heartbeat #%d from %s (uptime %.0fs)", beats, task.name, uptime)
        return TaskResult(beats=beats, uptime_seconds=round(uptime, 3))
