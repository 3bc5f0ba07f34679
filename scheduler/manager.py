"""BackgroundTaskManager -- priority-ordered polling scheduler for recurring tasks.

Every tick (default 100ms):
1. Collect IDLE tasks whose next_run has passed
2. Sort them by priority (0 = most urgent), registration order on ties
3. Dispatch as many as free concurrency slots allow

A second loop flushes the discovery log to disk (default every 60s).
Dispatch is fire-and-forget: a tick never waits for handlers. stop() ends
both loops but lets in-flight handlers finish; their results are still
recorded and published.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from core.clock import now_ms
from core.config import DefaultTaskConfig, TaskManagerConfig
from core.data.store import Store
from core.models.discoveries import Discovery
from core.models.tasks import Task, TaskHandlerFn, TaskPriority, TaskStateSnapshot, TaskStatus
from core.protocols import EventBus
from core.registry import HandlerRegistry
from scheduler.discoveries import DiscoveryLog
from scheduler.registry import TaskRegistry
from scheduler.runner import TaskRunner
from scheduler.snapshots import TaskStateStore

logger = logging.getLogger(__name__)


class BackgroundTaskManager:
    """Owns the task registry, runner, discovery log and snapshot store.

    Usage:
        manager = BackgroundTaskManager(bus=bus, config=config.tasks)
        task_id = manager.register_task("scan", handler, priority=TaskPriority.HIGH)
        await manager.start()
        ...
        await manager.cleanup()
    """

    def __init__(
        self,
        bus: EventBus,
        config: TaskManagerConfig | None = None,
        store: Store | None = None,
    ) -> None:
        self._config = config or TaskManagerConfig()
        self._bus = bus
        self._store = store or Store(self._config.base_dir)

        self._registry = TaskRegistry()
        self._discoveries = DiscoveryLog(
            self._store, bus, max_length=self._config.max_history_length,
        )
        self._snapshots = TaskStateStore(self._store)
        self._runner = TaskRunner(
            bus, self._discoveries, max_history_length=self._config.max_history_length,
        )

        self._running = False
        self._tick_task: asyncio.Task | None = None
        self._flush_task: asyncio.Task | None = None
        self._inflight: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> TaskManagerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_task(
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
        """Register a task, due immediately. Raises TaskRegistrationError."""
        return self._registry.register(
            name,
            handler,
            description=description,
            agent_id=agent_id,
            priority=priority,
            interval_ms=interval_ms,
            one_shot=one_shot,
            state=state,
        )

    def register_from_config(
        self,
        tasks: list[DefaultTaskConfig],
        handlers: HandlerRegistry,
    ) -> list[str]:
        """Register config-defined tasks against named handlers.

        Tasks naming an unknown handler are logged and skipped.
        """
        task_ids: list[str] = []
        for cfg in tasks:
            if not handlers.has(cfg.handler):
                logger.error(
                    "Task %s references unknown handler '%s' (available: %s)",
                    cfg.name, cfg.handler, handlers.names(),
                )
                continue
            task_ids.append(self.register_task(
                cfg.name,
                handlers.get(cfg.handler).run,
                description=cfg.description,
                agent_id=cfg.agent_id,
                priority=cfg.priority,
                interval_ms=cfg.interval_ms,
                one_shot=cfg.one_shot,
                state=cfg.state,
            ))
        return task_ids

    def get_task(self, task_id: str) -> Task | None:
        return self._registry.get(task_id)

    def get_all_tasks(self) -> list[Task]:
        return self._registry.all()

    def get_tasks_by_agent(self, agent_id: str) -> list[Task]:
        return self._registry.by_agent(agent_id)

    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return self._registry.by_status(status)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load the latest discoveries and start the tick and flush loops."""
        if self._running:
            return
        self._running = True

        await self._discoveries.load()

        self._tick_task = asyncio.create_task(self._tick_loop(), name="task-manager-tick")
        self._flush_task = asyncio.create_task(self._flush_loop(), name="task-manager-flush")
        logger.info(
            "Task manager started (tick %s, flush %s, max %d concurrent)",
            self._config.tick_interval,
            self._config.discovery_flush_interval,
            self._config.max_concurrent_tasks,
        )

    async def stop(self) -> None:
        """Stop scheduling new runs. In-flight handlers are not cancelled."""
        if not self._running:
            return
        self._running = False

        for loop_task in (self._tick_task, self._flush_task):
            if loop_task is None:
                continue
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        self._tick_task = None
        self._flush_task = None

        logger.info("Task manager stopped (%d run(s) still in flight)", len(self._inflight))

    async def cleanup(self) -> None:
        """Stop, flush discoveries, and snapshot every task. Never raises."""
        await self.stop()

        try:
            await self._discoveries.save()
        except Exception:
            logger.exception("Failed to flush discoveries during cleanup")

        for task in self._registry:
            try:
                self._snapshots.save(task)
            except Exception:
                logger.exception("Failed to save state for %s during cleanup", task.id)

        logger.info("Task manager cleanup complete")

    async def wait_idle(self) -> None:
        """Wait until every in-flight run has finished."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _tick_loop(self) -> None:
        while self._running:
            try:
                self.tick()
            except Exception:
                logger.exception("Error in scheduler tick")
            await asyncio.sleep(self._config.tick_seconds)

    async def _flush_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._config.flush_seconds)
            try:
                await self._discoveries.save()
            except Exception:
                logger.exception("Error flushing discoveries")

    def running_count(self) -> int:
        """Number of handler executions currently in flight."""
        return len(self._inflight)

    def tick(self) -> list[Task]:
        """Dispatch due tasks into free slots. Returns the dispatched tasks.

        Must be called from a running event loop.
        """
        now = now_ms()
        eligible = sorted(
            (t for t in self._registry if t.is_due(now) and t.id not in self._inflight),
            key=lambda t: t.priority,
        )
        available = max(0, self._config.max_concurrent_tasks - self.running_count())
        batch = eligible[:available]

        for task in batch:
            self._dispatch(task)

        if len(eligible) > len(batch):
            logger.debug(
                "%d due task(s) waiting for a free slot", len(eligible) - len(batch),
            )
        return batch

    def _dispatch(self, task: Task) -> None:
        self._runner.begin(task)
        run = asyncio.create_task(self._runner.execute(task), name=f"task-run:{task.id}")
        self._inflight[task.id] = run
        run.add_done_callback(lambda _: self._inflight.pop(task.id, None))

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------

    def pause_task(self, task_id: str) -> bool:
        """RUNNING -> PAUSED. Any other status (or unknown id) returns False."""
        task = self._registry.get(task_id)
        if task is None or task.status != TaskStatus.RUNNING:
            return False
        task.status = TaskStatus.PAUSED
        logger.info("Paused task %s (%s)", task.name, task.id)
        return True

    def resume_task(self, task_id: str) -> bool:
        """PAUSED -> IDLE, due on the next tick. Any other status returns False."""
        task = self._registry.get(task_id)
        if task is None or task.status != TaskStatus.PAUSED:
            return False
        task.status = TaskStatus.IDLE
        task.next_run = now_ms()
        logger.info("Resumed task %s (%s)", task.name, task.id)
        return True

    def pause_all_tasks(self) -> int:
        return sum(1 for task in self._registry if self.pause_task(task.id))

    def resume_all_tasks(self) -> int:
        return sum(1 for task in self._registry if self.resume_task(task.id))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_task_state(self, task_id: str) -> bool:
        task = self._registry.get(task_id)
        if task is None:
            logger.warning("Cannot save state: unknown task %s", task_id)
            return False
        return self._snapshots.save(task)

    def load_task_state(self, task_id: str) -> TaskStateSnapshot | None:
        """Most recent snapshot for `task_id`. Does not modify the live task."""
        return self._snapshots.load(task_id)

    def restore_task_state(self, task_id: str) -> bool:
        """Copy the latest snapshot's `state` bag into the live task."""
        task = self._registry.get(task_id)
        if task is None:
            return False
        snapshot = self._snapshots.load(task_id)
        if snapshot is None:
            return False
        task.state = dict(snapshot.state)
        logger.info("Restored state for task %s from snapshot", task.id)
        return True

    def list_task_snapshots(self, task_id: str) -> list[str]:
        return self._snapshots.history(task_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_discoveries(
        self,
        limit: int | None = None,
        task_id: str | None = None,
        agent_id: str | None = None,
    ) -> list[Discovery]:
        return self._discoveries.list(limit=limit, task_id=task_id, agent_id=agent_id)

    def get_stats(self) -> dict:
        by_status = {status.value: 0 for status in TaskStatus}
        for task in self._registry:
            by_status[task.status.value] += 1
        return {
            "running": self._running,
            "tasks": len(self._registry),
            "by_status": by_status,
            "in_flight": self.running_count(),
            "max_concurrent_tasks": self._config.max_concurrent_tasks,
            "discoveries": len(self._discoveries),
            "runs": self._runner.stats.as_dict(),
        }
