"""Handler discovery -- collects PLUGIN_META from plugins/task_handlers/.

Every module in plugins/task_handlers/ that defines a module-level
PLUGIN_META with category "task_handler" is imported, its class is
instantiated without arguments, and the instance is registered by name.
Drop a new file in that directory and its handler becomes available to
config-defined tasks and the HTTP API.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from pathlib import Path

from core.registry import HandlerRegistry

logger = logging.getLogger(__name__)

HANDLERS_DIR = Path(__file__).parent / "task_handlers"


@dataclass
class HandlerInfo:
    """Discovered handler metadata."""

    name: str
    display_name: str
    description: str
    class_name: str
    module_path: str  # e.g., "plugins.task_handlers.heartbeat"


def discover_handlers(handlers_dir: Path | None = None) -> list[HandlerInfo]:
    """Scan the task handler directory and collect all PLUGIN_META."""
    handlers_dir = handlers_dir or HANDLERS_DIR
    found: list[HandlerInfo] = []

    for filepath in sorted(handlers_dir.glob("*.py")):
        if filepath.name.startswith("_"):
            continue
        info = _load_handler_meta(filepath)
        if info:
            found.append(info)
    return found


def _load_handler_meta(filepath: Path) -> HandlerInfo | None:
    """Import a handler file and extract its PLUGIN_META."""
    module_path = f"plugins.task_handlers.{filepath.stem}"

    try:
        module = importlib.import_module(module_path)
    except Exception:
        logger.exception("Could not import %s", module_path)
        return None

    meta = getattr(module, "PLUGIN_META", None)
    if not meta or not isinstance(meta, dict):
        return None
    if meta.get("category") != "task_handler":
        return None

    return HandlerInfo(
        name=meta.get("name", filepath.stem),
        display_name=meta.get("display_name", meta.get("name", filepath.stem)),
        description=meta.get("description", ""),
        class_name=meta.get("class_name", ""),
        module_path=module_path,
    )


def load_handlers(
    registry: HandlerRegistry,
    disabled: list[str] | None = None,
    handlers_dir: Path | None = None,
) -> list[str]:
    """Instantiate and register every discovered handler not in `disabled`."""
    disabled_names = set(disabled or [])
    loaded: list[str] = []

    for info in discover_handlers(handlers_dir):
        if info.name in disabled_names:
            logger.info("Task handler %s disabled by config", info.name)
            continue
        if not info.class_name:
            logger.error("Task handler plugin %s missing class_name in PLUGIN_META", info.name)
            continue

        try:
            module = importlib.import_module(info.module_path)
            handler_cls = getattr(module, info.class_name)
            instance = handler_cls()
            registry.register(instance)
            loaded.append(instance.name)
        except Exception as e:
            logger.error("Failed to load task handler %s: %s", info.name, e)

    return loaded
