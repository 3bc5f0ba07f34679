"""Event model -- the message format published on the event bus."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field


class Event(BaseModel):
    """A typed event that flows through the EventBus.

    Task completions and failures, discoveries and discovery snapshot
    loads/saves are all published as Events so dashboards and
    orchestrators can subscribe to them.
    """

    id: str = Field(default_factory=lambda: f"evt_{uuid4().hex[:12]}")
    type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    source: str
    payload: dict = Field(default_factory=dict)
    metadata: dict | None = None


# -- Event type constants --

class EventTypes:
    """Well-known event type strings."""

    # Runner
    TASK_COMPLETED = "task.completed"
    AGENT_TASK_COMPLETED = "agent_task.completed"
    TASK_FAILED = "task.failed"

    # Discovery log
    DISCOVERY_RECORDED = "discovery.recorded"
    DISCOVERIES_LOADED = "discoveries.loaded"
    DISCOVERIES_SAVED = "discoveries.saved"
