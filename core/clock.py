"""Wall-clock helpers.

Task timestamps (last_run, next_run, history, discoveries) are epoch
milliseconds. Durations are measured separately with time.perf_counter().
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def file_stamp(dt: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp safe for filenames.

    Colons and periods are replaced with dashes, e.g.
    2026-10-18T09-15-02-123456Z. Lexicographic order equals chronological
    order, which the snapshot loaders rely on.
    """
    dt = dt or datetime.now(timezone.utc)
    iso = dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return iso.replace(":", "-").replace(".", "-")
