"""Task runner -- executes one task's handler and records the outcome.

For every run:
1. Mark the task RUNNING and stamp last_run (begin)
2. Await the handler, timing it with a monotonic clock
3. Append a history entry (bounded, oldest dropped)
4. Record a discovery if the result flags one
5. Publish task.completed / agent_task.completed or task.failed
6. Reschedule: next_run = last_run + interval_ms, whatever the outcome

Handler errors never propagate; a failing task is retried at its normal
interval forever.
"""

from __future__ import annotations

import inspect
import logging
import time

from pydantic import BaseModel

from core.clock import now_ms
from core.models.events import Event, EventTypes
from core.models.tasks import HistoryEntry, Task, TaskStatus
from core.protocols import EventBus
from scheduler.discoveries import DiscoveryLog, is_discovery, result_mapping

logger = logging.getLogger(__name__)


class RunStats(BaseModel):
    """Aggregate counters across all runs."""

    total_runs: int = 0
    completed_runs: int = 0
    failed_runs: int = 0
    total_duration_ms: float = 0.0

    @property
    def average_duration_ms(self) -> float:
        if not self.total_runs:
            return 0.0
        return self.total_duration_ms / self.total_runs

    def record(self, duration_ms: float, ok: bool) -> None:
        self.total_runs += 1
        self.total_duration_ms += duration_ms
        if ok:
            self.completed_runs += 1
        else:
            self.failed_runs += 1

    def as_dict(self) -> dict:
        data = self.model_dump()
        data["average_duration_ms"] = self.average_duration_ms
        return data


class TaskRunner:
    """Runs task handlers on behalf of the manager."""

    def __init__(
        self,
        bus: EventBus,
        discoveries: DiscoveryLog,
        max_history_length: int = 1000,
    ) -> None:
        self._bus = bus
        self._discoveries = discoveries
        self._max_history_length = max_history_length
        self.stats = RunStats()

    def begin(self, task: Task) -> int:
        """Synchronously claim the task for a run. Returns the dispatch time."""
        task.status = TaskStatus.RUNNING
        task.last_run = now_ms()
        return task.last_run

    async def execute(self, task: Task) -> HistoryEntry:
        """Execute a task already claimed with begin()."""
        dispatched_at = task.last_run if task.last_run is not None else now_ms()
        started = time.perf_counter()

        try:
            result = task.handler(task)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.exception("Task %s (%s) failed", task.name, task.id)
            entry = HistoryEntry(duration_ms=duration_ms, status="failed", error=str(exc))
            self._finish(task, dispatched_at, entry, ok=False)
            await self._bus.publish(Event(
                type=EventTypes.TASK_FAILED,
                source="scheduler",
                payload={
                    "task_id": task.id,
                    "name": task.name,
                    "agent_id": task.agent_id,
                    "error": str(exc),
                },
            ))
            return entry

        duration_ms = (time.perf_counter() - started) * 1000
        mapping = result_mapping(result)
        stored = mapping if mapping is not None else result
        entry = HistoryEntry(duration_ms=duration_ms, status="completed", result=stored)
        self._finish(task, dispatched_at, entry, ok=True)

        logger.debug("Task %s completed in %.1fms", task.name, duration_ms)

        if is_discovery(result):
            try:
                await self._discoveries.record(task, result)
            except Exception:
                logger.exception("Failed to record discovery from task %s (%s)", task.name, task.id)

        payload = {
            "task_id": task.id,
            "name": task.name,
            "agent_id": task.agent_id,
            "duration_ms": duration_ms,
            "result": stored,
        }
        await self._bus.publish(Event(
            type=EventTypes.TASK_COMPLETED,
            source="scheduler",
            payload=payload,
        ))
        if task.agent_id:
            await self._bus.publish(Event(
                type=EventTypes.AGENT_TASK_COMPLETED,
                source="scheduler",
                payload=payload,
            ))
        return entry

    def _finish(self, task: Task, dispatched_at: int, entry: HistoryEntry, ok: bool) -> None:
        """Append history, update counters and reschedule."""
        task.history.append(entry)
        if len(task.history) > self._max_history_length:
            del task.history[: len(task.history) - self._max_history_length]

        task.run_count += 1
        if not ok:
            task.failure_count += 1
        self.stats.record(entry.duration_ms, ok)

        task.next_run = dispatched_at + task.interval_ms

        if task.one_shot:
            task.status = TaskStatus.COMPLETED if ok else TaskStatus.FAILED
        elif task.status == TaskStatus.RUNNING:
            task.status = TaskStatus.IDLE
        # PAUSED while running stays PAUSED until resume_task()

