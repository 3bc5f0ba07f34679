"""Discovery log -- noteworthy handler results, flushed to disk as snapshots.

Each flush writes the full in-memory list to a new timestamped file under
<base>/discoveries/. On startup only the most recent file is loaded and it
replaces the in-memory list; files are never merged or pruned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from core.clock import file_stamp
from core.data.store import Store
from core.models.discoveries import DEFAULT_CONFIDENCE, Discovery
from core.models.events import Event, EventTypes
from core.models.tasks import Task
from core.protocols import EventBus

logger = logging.getLogger(__name__)

DISCOVERIES_DIR = "discoveries"


def result_mapping(result: Any) -> dict | None:
    """Handler result as a dict, or None when it is not mapping-like."""
    if isinstance(result, BaseModel):
        return result.model_dump()
    if isinstance(result, Mapping):
        return dict(result)
    return None


def is_discovery(result: Any) -> bool:
    """True when a result carries a truthy is_discovery or discovery_type."""
    data = result_mapping(result)
    if data is None:
        return False
    return bool(data.get("is_discovery") or data.get("discovery_type"))


def _confidence(value: Any, task: Task) -> float:
    """Result confidence as a float; missing or non-numeric falls back to the default."""
    if value is None:
        return DEFAULT_CONFIDENCE
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(
            "Task %s returned non-numeric confidence %r, using %.1f",
            task.name, value, DEFAULT_CONFIDENCE,
        )
        return DEFAULT_CONFIDENCE


class DiscoveryLog:
    """Process-wide bounded list of discoveries (oldest dropped first)."""

    def __init__(self, store: Store, bus: EventBus, max_length: int = 1000) -> None:
        self._store = store
        self._bus = bus
        self._max_length = max_length
        self._items: list[Discovery] = []

    def __len__(self) -> int:
        return len(self._items)

    async def record(self, task: Task, result: Any) -> Discovery:
        """Build a Discovery from a handler result and append it."""
        mapping = result_mapping(result)
        data = mapping or {}

        payload = data.get("discovery_data")
        discovery = Discovery(
            task_id=task.id,
            task_name=task.name,
            agent_id=task.agent_id,
            type=str(data.get("discovery_type") or "general"),
            data=payload if payload is not None else (mapping if mapping is not None else result),
            confidence=_confidence(data.get("confidence"), task),
        )

        self._items.append(discovery)
        if len(self._items) > self._max_length:
            del self._items[: len(self._items) - self._max_length]

        logger.info(
            "Discovery %s (%s) from task %s confidence=%.2f",
            discovery.id, discovery.type, task.name, discovery.confidence,
        )

        await self._bus.publish(Event(
            type=EventTypes.DISCOVERY_RECORDED,
            source="discovery_log",
            payload={
                "discovery_id": discovery.id,
                "task_id": task.id,
                "task_name": task.name,
                "agent_id": task.agent_id,
                "type": discovery.type,
                "confidence": discovery.confidence,
            },
        ))
        return discovery

    async def save(self) -> Path | None:
        """Write the full list to a new snapshot file. No-op when empty."""
        if not self._items:
            return None

        filename = f"discoveries-{file_stamp()}.json"
        try:
            path = self._store.write_json_list(DISCOVERIES_DIR, filename, self._items)
        except (OSError, ValueError):
            logger.exception("Failed to save %d discoveries", len(self._items))
            return None

        logger.debug("Saved %d discoveries to %s", len(self._items), path)
        await self._bus.publish(Event(
            type=EventTypes.DISCOVERIES_SAVED,
            source="discovery_log",
            payload={"count": len(self._items), "file": path.name},
        ))
        return path

    async def load(self) -> int:
        """Replace the in-memory list with the most recent snapshot file.

        A missing directory or no snapshot files means "no discoveries".
        Other read or parse failures are logged and leave the list untouched.
        Returns the number of discoveries now in memory.
        """
        try:
            self._store.ensure_dir(DISCOVERIES_DIR)
            latest = self._store.latest_file(DISCOVERIES_DIR)
        except OSError:
            logger.exception("Failed to list discovery snapshots")
            return len(self._items)

        if latest is None:
            logger.debug("No discovery snapshots found")
            return len(self._items)

        try:
            items = self._store.read_json_list(DISCOVERIES_DIR, latest, Discovery)
        except (OSError, ValueError):
            logger.exception("Failed to load discoveries from %s", latest)
            return len(self._items)

        self._items = items[-self._max_length:]
        logger.info("Loaded %d discoveries from %s", len(self._items), latest)

        await self._bus.publish(Event(
            type=EventTypes.DISCOVERIES_LOADED,
            source="discovery_log",
            payload={"count": len(self._items), "file": latest},
        ))
        return len(self._items)

    def list(
        self,
        limit: int | None = None,
        task_id: str | None = None,
        agent_id: str | None = None,
    ) -> list[Discovery]:
        """Discoveries oldest-first, optionally filtered; `limit` keeps the newest."""
        items = self._items
        if task_id is not None:
            items = [d for d in items if d.task_id == task_id]
        if agent_id is not None:
            items = [d for d in items if d.agent_id == agent_id]
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return list(items)
