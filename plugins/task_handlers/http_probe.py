"""HTTP probe task handler.

Requests a URL on every run and flags a discovery when the endpoint's
status code changes or it answers slower than allowed. Per-task settings
live in the task state:

    url             -- required
    max_latency_ms  -- optional, default 2000
    method          -- optional, default GET
"""

from __future__ import annotations

import logging
import time

import httpx

from core.models.tasks import Task, TaskResult

logger = logging.getLogger(__name__)

PLUGIN_META = {
    "name": "http_probe",
    "display_name": "HTTP Probe",
    "description": "Poll an HTTP endpoint and flag status changes or slow responses",
    "category": "task_handler",
    "class_name": "HttpProbeHandler",
}

DEFAULT_MAX_LATENCY_MS = 2000


class HttpProbeHandler:
    """Probe task.state['url'] and remember the last status in task.state."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "http_probe"

    async def run(self, task: Task) -> TaskResult:
        url = str(task.state.get("url", "")).strip()
        if not url:
            raise ValueError(f"Task {task.name} has no 'url' in its state")

        method = str(task.state.get("method", "GET")).upper()
        max_latency = float(task.state.get("max_latency_ms", DEFAULT_MAX_LATENCY_MS))

        started = time.perf_counter()
        if self._client is not None:
            response = await self._client.request(method, url)
        else:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": "syndicate-tasks/0.1"},
            ) as client:
                response = await client.request(method, url)
        latency_ms = (time.perf_counter() - started) * 1000

        previous = task.state.get("last_status")
        task.state["last_status"] = response.status_code
        task.state["last_latency_ms"] = round(latency_ms, 1)

        observed = {
            "url": url,
            "status_code": response.status_code,
            "previous_status": previous,
            "latency_ms": round(latency_ms, 1),
        }

        if previous is not None and previous != response.status_code:
            logger.warning(
                "%s changed status %s -> %s", url, previous, response.status_code,
            )
            return TaskResult(
                discovery_type="endpoint_status_change",
                discovery_data=observed,
                confidence=0.9,
                **observed,
            )

        if latency_ms > max_latency:
            logger.warning("%s answered in %.0fms (limit %.0fms)", url, latency_ms, max_latency)
            return TaskResult(
                discovery_type="slow_response",
                discovery_data=observed,
                confidence=0.6,
                **observed,
            )

        return TaskResult(**observed)
