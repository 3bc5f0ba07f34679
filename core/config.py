"""Configuration loader -- reads config.yaml + .env, validates with Pydantic.

Resolves ${ENV_VAR} references in YAML values from environment variables.
Fails fast with clear errors if the config is invalid.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from core.duration import parse_duration, to_seconds
from core.models.tasks import TaskPriority

logger = logging.getLogger(__name__)

# Default home directory for config.yaml and .env
DEFAULT_HOME = Path.home() / ".syndicate"
HOME_ENV_VAR = "SYNDICATE_HOME"


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} references in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{(\w+)\}")
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                logger.warning("Environment variable %s not set", var_name)
                return match.group(0)  # leave unresolved
            return env_value
        return pattern.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Config models (Pydantic)
# ---------------------------------------------------------------------------

class ServerConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8322


class DefaultTaskConfig(BaseModel):
    """A task registered at startup against a named handler."""

    name: str
    handler: str
    description: str = ""
    agent_id: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    interval: str = "10s"
    one_shot: bool = False
    state: dict = Field(default_factory=dict)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority_by_name(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        raw = value.strip()
        if raw.isdigit():
            return int(raw)
        try:
            return TaskPriority[raw.upper()]
        except KeyError:
            raise ValueError(f"Unknown priority: {value!r}") from None

    @field_validator("interval")
    @classmethod
    def _valid_interval(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def interval_ms(self) -> int:
        return int(parse_duration(self.interval).total_seconds() * 1000)


class TaskManagerConfig(BaseModel):
    base_path: str = "./data/tasks"
    tick_interval: str = "100ms"
    discovery_flush_interval: str = "60s"
    max_concurrent_tasks: int = Field(default=5, ge=1)
    max_history_length: int = Field(default=1000, ge=1)
    default_tasks: list[DefaultTaskConfig] = Field(default_factory=list)
    disabled_handlers: list[str] = Field(default_factory=list)

    @field_validator("tick_interval", "discovery_flush_interval")
    @classmethod
    def _valid_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def base_dir(self) -> Path:
        return Path(self.base_path).expanduser()

    @property
    def tick_seconds(self) -> float:
        return to_seconds(self.tick_interval)

    @property
    def flush_seconds(self) -> float:
        return to_seconds(self.discovery_flush_interval)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    audit_events: bool = False


class AppConfig(BaseModel):
    """Top-level application configuration."""

    home_dir: str = str(DEFAULT_HOME)
    server: ServerConfig = Field(default_factory=ServerConfig)
    tasks: TaskManagerConfig = Field(default_factory=TaskManagerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def home_path(self) -> Path:
        """Resolved home directory as a Path."""
        return Path(self.home_dir).expanduser()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    env_path: str | Path | None = None,
) -> AppConfig:
    """Load configuration from YAML + .env files.

    1. Load .env into environment variables
    2. Load config.yaml and resolve ${ENV_VAR} references
    3. Validate against Pydantic models
    """
    home = Path(os.environ.get(HOME_ENV_VAR, str(DEFAULT_HOME))).expanduser()

    if env_path is None:
        env_path = home / ".env"
    if config_path is None:
        config_path = home / "config.yaml"

    env_path = Path(env_path)
    config_path = Path(config_path)

    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)
    else:
        logger.debug("No .env file at %s", env_path)

    raw_config: dict = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
        logger.info("Loaded config from %s", config_path)
    else:
        logger.warning("No config file at %s, using defaults", config_path)

    resolved = _resolve_env_vars(raw_config)

    if HOME_ENV_VAR in os.environ:
        resolved["home_dir"] = os.environ[HOME_ENV_VAR]

    return AppConfig(**resolved)
