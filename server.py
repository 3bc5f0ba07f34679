"""Lightweight aiohttp server -- HTTP control API for the task manager.

Lets dashboards and orchestrators list tasks, register new ones against
named handlers, pause/resume, take snapshots, read discoveries, and follow
the event stream. No framework magic, no middleware stack.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from aiohttp import web
from pydantic import ValidationError

from core.config import DefaultTaskConfig
from core.errors import TaskRegistrationError

if TYPE_CHECKING:
    from core.bus import AsyncIOBus
    from core.models.events import Event
    from core.registry import HandlerRegistry
    from scheduler.manager import BackgroundTaskManager

logger = logging.getLogger(__name__)


def create_app(
    manager: BackgroundTaskManager,
    bus: AsyncIOBus,
    handlers: HandlerRegistry,
) -> web.Application:
    """Create and configure the aiohttp application."""
    app = web.Application()

    # Store references for route handlers
    app["manager"] = manager
    app["bus"] = bus
    app["handlers"] = handlers

    # Register routes
    app.router.add_get("/health", handle_health)
    app.router.add_get("/stats", handle_stats)
    app.router.add_get("/tasks", handle_list_tasks)
    app.router.add_post("/tasks", handle_create_task)
    app.router.add_post("/tasks/pause", handle_pause_all)
    app.router.add_post("/tasks/resume", handle_resume_all)
    app.router.add_get("/tasks/{task_id}", handle_get_task)
    app.router.add_post("/tasks/{task_id}/pause", handle_pause_task)
    app.router.add_post("/tasks/{task_id}/resume", handle_resume_task)
    app.router.add_get("/tasks/{task_id}/state", handle_load_state)
    app.router.add_post("/tasks/{task_id}/state", handle_save_state)
    app.router.add_get("/discoveries", handle_list_discoveries)
    app.router.add_get("/events", handle_stream_events)

    return app


def _not_found(task_id: str) -> web.Response:
    return web.json_response({"error": f"Task not found: {task_id}"}, status=404)


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------

async def handle_health(request: web.Request) -> web.Response:
    """GET /health -- health check."""
    manager: BackgroundTaskManager = request.app["manager"]
    handlers: HandlerRegistry = request.app["handlers"]
    return web.json_response({
        "status": "ok" if manager.is_running else "stopped",
        "handlers": handlers.names(),
    })


async def handle_stats(request: web.Request) -> web.Response:
    """GET /stats -- scheduler and run counters."""
    manager: BackgroundTaskManager = request.app["manager"]
    return web.json_response(manager.get_stats())


async def handle_list_tasks(request: web.Request) -> web.Response:
    """GET /tasks[?agent_id=...] -- list registered tasks (without history)."""
    manager: BackgroundTaskManager = request.app["manager"]
    agent_id = request.query.get("agent_id")
    tasks = manager.get_tasks_by_agent(agent_id) if agent_id else manager.get_all_tasks()
    return web.json_response([t.summary() for t in tasks])


async def handle_get_task(request: web.Request) -> web.Response:
    """GET /tasks/{task_id}[?history=N] -- one task with its latest history."""
    manager: BackgroundTaskManager = request.app["manager"]
    task_id = request.match_info["task_id"]
    task = manager.get_task(task_id)
    if task is None:
        return _not_found(task_id)

    try:
        limit = int(request.query.get("history", "20"))
    except ValueError:
        return web.json_response({"error": "history must be an integer"}, status=400)

    data = task.summary()
    recent = task.history[-limit:] if limit > 0 else []
    data["history"] = [entry.model_dump(mode="json") for entry in recent]
    return web.json_response(data)


async def handle_create_task(request: web.Request) -> web.Response:
    """POST /tasks -- register a task bound to a named handler.

    Body: {"name": "...", "handler": "heartbeat", "priority": "HIGH", "interval": "30s"}
    """
    manager: BackgroundTaskManager = request.app["manager"]
    handlers: HandlerRegistry = request.app["handlers"]

    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "Invalid JSON"}, status=400)

    if not isinstance(body, dict) or "name" not in body or "handler" not in body:
        return web.json_response(
            {"error": "Missing required fields: name, handler"},
            status=400,
        )

    try:
        task_cfg = DefaultTaskConfig(**body)
    except ValidationError as e:
        return web.json_response({"error": str(e)}, status=400)

    if not handlers.has(task_cfg.handler):
        return web.json_response(
            {"error": f"Unknown handler '{task_cfg.handler}'", "available": handlers.names()},
            status=400,
        )

    try:
        task_ids = manager.register_from_config([task_cfg], handlers)
    except TaskRegistrationError as e:
        return web.json_response({"error": str(e)}, status=400)

    task = manager.get_task(task_ids[0])
    return web.json_response(task.summary(), status=201)


async def handle_pause_task(request: web.Request) -> web.Response:
    """POST /tasks/{task_id}/pause -- only a RUNNING task can be paused."""
    manager: BackgroundTaskManager = request.app["manager"]
    task_id = request.match_info["task_id"]
    if manager.get_task(task_id) is None:
        return _not_found(task_id)
    paused = manager.pause_task(task_id)
    return web.json_response({"task_id": task_id, "paused": paused}, status=200 if paused else 409)


async def handle_resume_task(request: web.Request) -> web.Response:
    """POST /tasks/{task_id}/resume -- only a PAUSED task can be resumed."""
    manager: BackgroundTaskManager = request.app["manager"]
    task_id = request.match_info["task_id"]
    if manager.get_task(task_id) is None:
        return _not_found(task_id)
    resumed = manager.resume_task(task_id)
    return web.json_response({"task_id": task_id, "resumed": resumed}, status=200 if resumed else 409)


async def handle_pause_all(request: web.Request) -> web.Response:
    """POST /tasks/pause -- pause every running task."""
    manager: BackgroundTaskManager = request.app["manager"]
    return web.json_response({"paused": manager.pause_all_tasks()})


async def handle_resume_all(request: web.Request) -> web.Response:
    """POST /tasks/resume -- resume every paused task."""
    manager: BackgroundTaskManager = request.app["manager"]
    return web.json_response({"resumed": manager.resume_all_tasks()})


async def handle_save_state(request: web.Request) -> web.Response:
    """POST /tasks/{task_id}/state -- write a new snapshot."""
    manager: BackgroundTaskManager = request.app["manager"]
    task_id = request.match_info["task_id"]
    if manager.get_task(task_id) is None:
        return _not_found(task_id)
    saved = manager.save_task_state(task_id)
    return web.json_response({"task_id": task_id, "saved": saved}, status=201 if saved else 500)


async def handle_load_state(request: web.Request) -> web.Response:
    """GET /tasks/{task_id}/state -- most recent snapshot plus snapshot filenames."""
    manager: BackgroundTaskManager = request.app["manager"]
    task_id = request.match_info["task_id"]
    snapshot = manager.load_task_state(task_id)
    if snapshot is None:
        return web.json_response({"error": f"No snapshot for task {task_id}"}, status=404)
    return web.json_response({
        "snapshot": snapshot.model_dump(mode="json"),
        "files": manager.list_task_snapshots(task_id),
    })


async def handle_list_discoveries(request: web.Request) -> web.Response:
    """GET /discoveries -- newest discoveries, optionally filtered."""
    manager: BackgroundTaskManager = request.app["manager"]

    try:
        limit = int(request.query.get("limit", "50"))
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)

    discoveries = manager.get_discoveries(
        limit=limit,
        task_id=request.query.get("task_id"),
        agent_id=request.query.get("agent_id"),
    )
    return web.json_response([d.model_dump(mode="json") for d in discoveries])


async def handle_stream_events(request: web.Request) -> web.StreamResponse:
    """GET /events -- Server-Sent Events stream of everything on the bus."""
    bus: AsyncIOBus = request.app["bus"]

    response = web.StreamResponse(
        status=200,
        reason="OK",
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
    await response.prepare(request)

    queue: asyncio.Queue[Event] = asyncio.Queue()

    async def forward_event(event: Event) -> None:
        await queue.put(event)

    bus.subscribe("*", forward_event)

    try:
        while True:
            event = await queue.get()
            try:
                data = event.model_dump_json()
            except ValueError:
                logger.warning("Skipping unserializable %s event on stream", event.type)
                continue
            await response.write(f"event: {event.type}\ndata: {data}\n\n".encode())
    except (asyncio.CancelledError, ConnectionResetError):
        pass
    finally:
        bus.unsubscribe("*", forward_event)

    return response
