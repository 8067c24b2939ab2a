"""Configuration discovery and YAML loading."""

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog
from ruamel.yaml import YAML

from .models import Config

logger = structlog.get_logger()

SEARCH_PATHS = (
    "./streamgrid.yaml",
    "~/.streamgrid/config.yaml",
    "/etc/streamgrid/config.yaml",
)


class ConfigNotFoundError(Exception):
    """Raised when an explicitly requested config file does not exist."""


def load_config(path: str | None = None, search_paths: Sequence[str] = SEARCH_PATHS) -> Config:
    """Load configuration for a replay session.

    An explicit path must exist. Without one, the first existing file in
    ``search_paths`` is used, and built-in defaults when none exists.

    Raises:
        ConfigNotFoundError: If ``path`` is given and missing.
        ValidationError: If the file holds invalid settings.
    """
    if path is not None:
        config_file = Path(path).expanduser()
        if not config_file.exists():
            raise ConfigNotFoundError(f"Config file not found: {path}")
    else:
        config_file = find_config_file(search_paths)
        if config_file is None:
            logger.info("no config file found, using defaults")
            return Config()

    with open(config_file) as f:
        data = YAML(typ="safe").load(f) or {}
    logger.info("config loaded", path=str(config_file))

    config = Config(**data)
    _log_adjusted_thresholds(data, config)
    return config


def find_config_file(search_paths: Sequence[str] = SEARCH_PATHS) -> Path | None:
    """First existing file among ``search_paths``, if any."""
    for path_str in search_paths:
        path = Path(path_str).expanduser().resolve()
        if path.exists():
            return path
    return None


def _log_adjusted_thresholds(data: dict[str, Any], config: Config) -> None:
    # validation lowers upgrade thresholds that sit too close to their downgrade pair
    raw = data.get("adaptation") or {}
    for key in ("upgrade_cpu_below", "upgrade_memory_below", "upgrade_max_dropped_frames"):
        if key not in raw:
            continue
        adjusted = getattr(config.adaptation, key)
        if adjusted != raw[key]:
            logger.warning(
                "adjusted upgrade threshold to prevent oscillation",
                setting=key,
                original=raw[key],
                adjusted=adjusted,
            )
