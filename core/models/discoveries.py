"""Discovery model -- noteworthy handler results, logged apart from history."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from core.clock import now_ms

DEFAULT_CONFIDENCE = 0.5


class Discovery(BaseModel):
    id: str = Field(default_factory=lambda: f"disc_{uuid4().hex[:12]}")
    timestamp: int = Field(default_factory=now_ms)
    task_id: str
    task_name: str
    agent_id: str | None = None
    type: str = "general"
    data: Any = None
    confidence: float = DEFAULT_CONFIDENCE
