"""Configuration helpers for dnd_rules."""

from __future__ import annotations

import logging
import os
from pathlib import Path

DEFAULT_DB_PATH = Path("data/sqlite/dnd_rules.db")
DB_PATH_ENV_VAR = "DND_RULES_DB_PATH"
LOG_LEVEL_ENV_VAR = "DND_RULES_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_db_path() -> str:
    """Return the absolute database path, honoring environment overrides."""
    env_value = os.getenv(DB_PATH_ENV_VAR)
    if env_value:
        return str(Path(env_value).expanduser().resolve())
    return str(DEFAULT_DB_PATH.resolve())


def get_log_level() -> int:
    """Return the configured logging level, honoring environment overrides."""
    env_value = os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL
    level = logging.getLevelName(env_value.strip().upper())
    if isinstance(level, int):
        return level
    return logging.WARNING


def configure_logging(level: int | None = None) -> None:
    """Install a root handler for command-line use."""
    logging.basicConfig(
        level=level if level is not None else get_log_level(),
        format=LOG_FORMAT,
    )
