"""Registry, dispatch ordering, concurrency cap and rescheduling."""

from __future__ import annotations

import asyncio

import pytest

from core.clock import now_ms
from core.config import TaskManagerConfig
from core.errors import TaskRegistrationError
from core.models.events import EventTypes
from core.models.tasks import Task, TaskPriority, TaskStatus
from scheduler.manager import BackgroundTaskManager

from .fakes import GatedHandler, failing, returning


def test_register_task_defaults(manager: BackgroundTaskManager) -> None:
    before = now_ms()
    task_id = manager.register_task("scan", returning(None))
    task = manager.get_task(task_id)

    assert task is not None
    assert task.id == task_id
    assert task.status == TaskStatus.IDLE
    assert task.priority == TaskPriority.MEDIUM
    assert task.interval_ms == 10_000
    assert before <= task.next_run <= now_ms()
    assert task.history == []
    assert set(task.summary()) == {
        "id", "name", "description", "agent_id", "priority", "interval_ms",
        "one_shot", "status", "last_run", "next_run", "run_count",
        "failure_count", "state", "history_length",
    }


def test_register_task_requires_name_and_handler(manager: BackgroundTaskManager) -> None:
    with pytest.raises(TaskRegistrationError):
        manager.register_task("", returning(None))
    with pytest.raises(TaskRegistrationError):
        manager.register_task("   ", returning(None))
    with pytest.raises(ValueError):
        manager.register_task("no-handler", None)  # type: ignore[arg-type]
    assert manager.get_all_tasks() == []


def test_lookup_helpers(manager: BackgroundTaskManager) -> None:
    a = manager.register_task("a", returning(None), agent_id="scout")
    b = manager.register_task("b", returning(None), agent_id="scout")
    manager.register_task("c", returning(None), agent_id="builder")

    assert manager.get_task("task_missing") is None
    assert [t.name for t in manager.get_all_tasks()] == ["a", "b", "c"]
    assert [t.id for t in manager.get_tasks_by_agent("scout")] == [a, b]
    assert manager.get_tasks_by_agent("nobody") == []
    assert len(manager.get_tasks_by_status(TaskStatus.IDLE)) == 3


@pytest.mark.asyncio
async def test_dispatch_follows_priority_order(manager: BackgroundTaskManager) -> None:
    started: list[str] = []

    def recording(name: str):
        async def handler(task: Task) -> dict:
            started.append(name)
            return {}
        return handler

    manager.register_task("low", recording("low"), priority=TaskPriority.LOW)
    manager.register_task("critical", recording("critical"), priority=TaskPriority.CRITICAL)
    manager.register_task("background", recording("background"), priority=TaskPriority.BACKGROUND)
    manager.register_task("high", recording("high"), priority=TaskPriority.HIGH)

    batch = manager.tick()
    await manager.wait_idle()

    expected = ["critical", "high", "low", "background"]
    assert [t.name for t in batch] == expected
    assert started == expected


@pytest.mark.asyncio
async def test_equal_priority_keeps_registration_order(manager: BackgroundTaskManager) -> None:
    for name in ("first", "second", "third"):
        manager.register_task(name, returning(None), priority=TaskPriority.HIGH)

    batch = manager.tick()
    await manager.wait_idle()

    assert [t.name for t in batch] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_concurrency_cap_holds_back_extra_tasks(manager: BackgroundTaskManager) -> None:
    gated = GatedHandler()
    ids = [
        manager.register_task(f"bg-{i}", gated, priority=TaskPriority.BACKGROUND)
        for i in range(6)
    ]

    batch = manager.tick()
    await asyncio.sleep(0)

    assert len(batch) == 5
    statuses = [manager.get_task(i).status for i in ids]
    assert statuses.count(TaskStatus.RUNNING) == 5
    assert manager.get_task(ids[5]).status == TaskStatus.IDLE
    assert manager.running_count() == 5

    # No free slot: nothing else goes out
    assert manager.tick() == []

    gated.release()
    await manager.wait_idle()

    late = manager.tick()
    assert [t.id for t in late] == [ids[5]]
    await manager.wait_idle()
    assert len(manager.get_task(ids[5]).history) == 1


@pytest.mark.asyncio
async def test_running_tasks_are_not_dispatched_twice(manager: BackgroundTaskManager) -> None:
    gated = GatedHandler()
    task_id = manager.register_task("slow", gated, interval_ms=0)

    assert len(manager.tick()) == 1
    await asyncio.sleep(0)
    assert manager.tick() == []

    gated.release()
    await manager.wait_idle()
    assert manager.get_task(task_id).run_count == 1


@pytest.mark.asyncio
async def test_next_run_is_dispatch_time_plus_interval(manager: BackgroundTaskManager) -> None:
    ok_id = manager.register_task("ok", returning({"value": 1}), interval_ms=5_000)
    bad_id = manager.register_task("bad", failing(), interval_ms=7_000)

    manager.tick()
    await manager.wait_idle()

    ok = manager.get_task(ok_id)
    bad = manager.get_task(bad_id)
    assert ok.next_run == ok.last_run + 5_000
    assert bad.next_run == bad.last_run + 7_000
    assert ok.status == TaskStatus.IDLE
    assert bad.status == TaskStatus.IDLE


@pytest.mark.asyncio
async def test_history_is_bounded_to_most_recent_entries(bus, tmp_path) -> None:
    config = TaskManagerConfig(base_path=str(tmp_path), max_history_length=3)
    manager = BackgroundTaskManager(bus=bus, config=config)

    async def counting(task: Task) -> dict:
        task.state["n"] = task.state.get("n", 0) + 1
        return {"n": task.state["n"]}

    task_id = manager.register_task("counter", counting, interval_ms=0)
    for _ in range(5):
        manager.tick()
        await manager.wait_idle()

    task = manager.get_task(task_id)
    assert task.run_count == 5
    assert len(task.history) == 3
    assert [entry.result["n"] for entry in task.history] == [3, 4, 5]


@pytest.mark.asyncio
async def test_success_records_history_and_events(manager: BackgroundTaskManager, recorder) -> None:
    task_id = manager.register_task("agent-job", returning({"status": "completed"}), agent_id="scout")
    manager.tick()
    await manager.wait_idle()

    entry = manager.get_task(task_id).history[0]
    assert entry.status == "completed"
    assert entry.result == {"status": "completed"}
    assert entry.duration_ms >= 0
    assert entry.error is None

    completed = recorder.of_type(EventTypes.TASK_COMPLETED)
    agent_completed = recorder.of_type(EventTypes.AGENT_TASK_COMPLETED)
    assert len(completed) == 1
    assert len(agent_completed) == 1
    assert completed[0].payload["task_id"] == task_id
    assert completed[0].payload["agent_id"] == "scout"
    assert completed[0].payload["result"] == {"status": "completed"}


@pytest.mark.asyncio
async def test_no_agent_event_without_agent_id(manager: BackgroundTaskManager, recorder) -> None:
    manager.register_task("plain", returning({}))
    manager.tick()
    await manager.wait_idle()

    assert len(recorder.of_type(EventTypes.TASK_COMPLETED)) == 1
    assert recorder.of_type(EventTypes.AGENT_TASK_COMPLETED) == []


@pytest.mark.asyncio
async def test_failure_is_recorded_not_raised(manager: BackgroundTaskManager, recorder) -> None:
    task_id = manager.register_task("broken", failing("disk on fire"))
    manager.tick()
    await manager.wait_idle()

    task = manager.get_task(task_id)
    assert task.status == TaskStatus.IDLE
    assert task.failure_count == 1
    assert task.history[0].status == "failed"
    assert task.history[0].error == "disk on fire"

    failed = recorder.of_type(EventTypes.TASK_FAILED)
    assert len(failed) == 1
    assert failed[0].payload["error"] == "disk on fire"
    assert failed[0].payload["name"] == "broken"


@pytest.mark.asyncio
async def test_sync_handler_is_supported(manager: BackgroundTaskManager) -> None:
    task_id = manager.register_task("sync", lambda task: {"sync": True})
    manager.tick()
    await manager.wait_idle()

    assert manager.get_task(task_id).history[0].result == {"sync": True}


@pytest.mark.asyncio
async def test_one_shot_tasks_reach_terminal_status(manager: BackgroundTaskManager) -> None:
    done_id = manager.register_task("once", returning({}), one_shot=True, interval_ms=0)
    fail_id = manager.register_task("once-bad", failing(), one_shot=True, interval_ms=0)

    manager.tick()
    await manager.wait_idle()

    assert manager.get_task(done_id).status == TaskStatus.COMPLETED
    assert manager.get_task(fail_id).status == TaskStatus.FAILED
    assert manager.tick() == []


@pytest.mark.asyncio
async def test_run_stats(manager: BackgroundTaskManager) -> None:
    manager.register_task("ok", returning({}))
    manager.register_task("bad", failing())
    manager.tick()
    await manager.wait_idle()

    stats = manager.get_stats()
    assert stats["tasks"] == 2
    assert stats["in_flight"] == 0
    assert stats["runs"]["total_runs"] == 2
    assert stats["runs"]["completed_runs"] == 1
    assert stats["runs"]["failed_runs"] == 1
    assert stats["by_status"]["idle"] == 2
