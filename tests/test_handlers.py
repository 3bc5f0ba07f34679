"""Builtin task handlers, handler discovery and config-defined tasks."""

from __future__ import annotations

import httpx
import pytest

from core.config import DefaultTaskConfig
from core.errors import UnknownHandlerError
from core.models.tasks import Task, TaskPriority
from core.protocols import TaskHandler
from core.registry import HandlerRegistry
from plugins.loader import discover_handlers, load_handlers
from plugins.task_handlers.heartbeat import HeartbeatHandler
from plugins.task_handlers.http_probe import HttpProbeHandler
from scheduler.manager import BackgroundTaskManager


def _probe_client(*statuses: int) -> httpx.AsyncClient:
    """Client whose successive responses carry `statuses` in order."""
    remaining = list(statuses)

    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(remaining.pop(0), json={"ok": True})

    return httpx.AsyncClient(transport=httpx.MockTransport(respond))


# ---------------------------------------------------------------------------
# Heartbeat
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_heartbeat_counts_beats_in_task_state() -> None:
    handler = HeartbeatHandler()
    task = Task(name="pulse")

    first = await handler.run(task)
    second = await handler.run(task)

    assert isinstance(handler, TaskHandler)
    assert first.beats == 1
    assert second.beats == 2
    assert task.state["beats"] == 2
    assert second.uptime_seconds >= 0
    assert not second.is_discovery


# ---------------------------------------------------------------------------
# HTTP probe
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_http_probe_requires_url() -> None:
    handler = HttpProbeHandler()
    with pytest.raises(ValueError):
        await handler.run(Task(name="probe"))


@pytest.mark.asyncio
async def test_http_probe_flags_status_change() -> None:
    async with _probe_client(200, 200, 503) as client:
        handler = HttpProbeHandler(client=client)
        task = Task(name="probe", state={"url": "https://feed.example.com/health"})

        first = await handler.run(task)
        second = await handler.run(task)
        third = await handler.run(task)

    assert first.status_code == 200
    assert first.previous_status is None
    assert first.discovery_type is None
    assert second.discovery_type is None

    assert third.discovery_type == "endpoint_status_change"
    assert third.confidence == 0.9
    assert third.discovery_data["previous_status"] == 200
    assert third.discovery_data["status_code"] == 503
    assert task.state["last_status"] == 503


@pytest.mark.asyncio
async def test_http_probe_flags_slow_response() -> None:
    async with _probe_client(200) as client:
        handler = HttpProbeHandler(client=client)
        task = Task(name="probe", state={"url": "https://feed.example.com", "max_latency_ms": 0})
        result = await handler.run(task)

    assert result.discovery_type == "slow_response"
    assert result.confidence == 0.6
    assert task.state["last_latency_ms"] >= 0


@pytest.mark.asyncio
async def test_http_probe_discovery_reaches_manager(manager: BackgroundTaskManager) -> None:
    async with _probe_client(200, 500) as client:
        probe = HttpProbeHandler(client=client)
        task_id = manager.register_task(
            "feed", probe.run, agent_id="arbitrage-scout", interval_ms=0,
            state={"url": "https://feed.example.com"},
        )
        for _ in range(2):
            manager.tick()
            await manager.wait_idle()

    [discovery] = manager.get_discoveries(task_id=task_id)
    assert discovery.type == "endpoint_status_change"
    assert discovery.agent_id == "arbitrage-scout"
    assert discovery.data["status_code"] == 500


# ---------------------------------------------------------------------------
# Registry and discovery
# ---------------------------------------------------------------------------

def test_registry_rejects_non_handlers() -> None:
    registry = HandlerRegistry()
    with pytest.raises(TypeError):
        registry.register(object())  # type: ignore[arg-type]


def test_registry_lookup() -> None:
    registry = HandlerRegistry()
    registry.register(HeartbeatHandler())

    assert registry.has("heartbeat")
    assert registry.names() == ["heartbeat"]
    assert isinstance(registry.get("heartbeat"), HeartbeatHandler)
    with pytest.raises(UnknownHandlerError):
        registry.get("missing")
    with pytest.raises(KeyError):
        registry.get("missing")


def test_discover_builtin_handlers() -> None:
    names = {info.name for info in discover_handlers()}
    assert {"heartbeat", "http_probe"} <= names


def test_load_handlers_honours_disabled() -> None:
    registry = HandlerRegistry()
    loaded = load_handlers(registry, disabled=["http_probe"])

    assert "heartbeat" in loaded
    assert "http_probe" not in loaded
    assert not registry.has("http_probe")


# ---------------------------------------------------------------------------
# Config-defined tasks
# ---------------------------------------------------------------------------

def test_register_from_config(manager: BackgroundTaskManager) -> None:
    registry = HandlerRegistry()
    registry.register(HeartbeatHandler())
    configs = [
        DefaultTaskConfig(
            name="pulse", handler="heartbeat", priority="background",
            interval="30s", agent_id="ops", state={"beats": 10},
        ),
        DefaultTaskConfig(name="ghost", handler="does_not_exist"),
    ]

    task_ids = manager.register_from_config(configs, registry)

    assert len(task_ids) == 1
    task = manager.get_task(task_ids[0])
    assert task.name == "pulse"
    assert task.priority == TaskPriority.BACKGROUND
    assert task.interval_ms == 30_000
    assert task.agent_id == "ops"
    assert task.state == {"beats": 10}


@pytest.mark.asyncio
async def test_config_task_runs_through_manager(manager: BackgroundTaskManager) -> None:
    registry = HandlerRegistry()
    registry.register(HeartbeatHandler())
    [task_id] = manager.register_from_config(
        [DefaultTaskConfig(name="pulse", handler="heartbeat")], registry,
    )

    manager.tick()
    await manager.wait_idle()

    task = manager.get_task(task_id)
    assert task.history[0].status == "completed"
    assert task.history[0].result["beats"] == 1
    assert task.history[0].result["status"] == "completed"
