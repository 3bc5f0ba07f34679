"""Syndicate task manager entrypoint -- wires components and runs until interrupted.

Usage:
    python main.py
    python main.py --config /path/to/config.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from aiohttp import web

from core.bus import AsyncIOBus
from core.config import AppConfig, load_config
from core.registry import HandlerRegistry
from plugins.loader import load_handlers
from scheduler.manager import BackgroundTaskManager
from server import create_app


def setup_logging(level: str) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quiet down noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Background task manager for syndicate agents")
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to config.yaml (default: ~/.syndicate/config.yaml)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Path to .env file (default: ~/.syndicate/.env)",
    )
    return parser.parse_args()


def build(config: AppConfig) -> tuple[AsyncIOBus, HandlerRegistry, BackgroundTaskManager]:
    """Create the bus, handler registry and manager, and register default tasks."""
    events_dir = config.tasks.base_dir / "events" if config.logging.audit_events else None
    bus = AsyncIOBus(events_dir=events_dir)

    handlers = HandlerRegistry()
    load_handlers(handlers, disabled=config.tasks.disabled_handlers)

    manager = BackgroundTaskManager(bus=bus, config=config.tasks)
    manager.register_from_config(config.tasks.default_tasks, handlers)
    return bus, handlers, manager


async def run(config_path: str | None = None, env_path: str | None = None) -> None:
    """Initialize all components, start the manager and the HTTP server."""
    config = load_config(config_path=config_path, env_path=env_path)
    logging.getLogger().setLevel(getattr(logging, config.logging.level.upper(), logging.INFO))
    logger = logging.getLogger("syndicate")
    logger.info("Task data directory: %s", config.tasks.base_dir)

    bus, handlers, manager = build(config)
    logger.info("Handlers: %s", handlers.names())

    await manager.start()

    runner: web.AppRunner | None = None
    if config.server.enabled:
        app = create_app(manager=manager, bus=bus, handlers=handlers)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, config.server.host, config.server.port)
        await site.start()
        logger.info(
            "Control API at http://%s:%d",
            config.server.host,
            config.server.port,
        )

    # Run until interrupted
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        logger.info("Shutting down...")
        await manager.cleanup()
        if runner is not None:
            await runner.cleanup()
        logger.info("Shutdown complete")


def main() -> None:
    args = parse_args()
    setup_logging("INFO")
    try:
        asyncio.run(run(config_path=args.config, env_path=args.env))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
