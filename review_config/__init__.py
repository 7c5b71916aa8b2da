"""
review_config -- single public entrypoint for runtime configuration.

``get_active_config()`` is the only way components obtain configuration.
It reads the YAML file named by ``REVIEW_CONFIG_PATH`` (or the bundled
``defaults.yaml``) and applies the ``REVIEW_DATABASE_URL`` override.

Every successful call emits a ``REVIEW_CONFIG_TRACE`` log entry with the
source path and checksum, tying a running process to the exact
configuration that governed it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from review_config.loader import load_config
from review_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    ReviewConfig,
)

_logger = logging.getLogger("review_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "REVIEW_CONFIG_PATH"
DATABASE_URL_ENV = "REVIEW_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> ReviewConfig:
    """
    Load the active configuration.

    Resolution order for the file: ``path`` argument, then
    ``REVIEW_CONFIG_PATH``, then the bundled defaults.  A non-empty
    ``REVIEW_DATABASE_URL`` replaces ``database.url``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError / KeyError: If the file is malformed.
    """
    source = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = load_config(source)

    url_override = os.environ.get(DATABASE_URL_ENV)
    if url_override:
        config = replace(config, database=replace(config.database, url=url_override))

    _logger.info(
        "REVIEW_CONFIG_TRACE",
        extra={
            "trace_type": "REVIEW_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": config.checksum,
            "database_url_overridden": bool(url_override),
            "notification_channel": config.notifications.channel,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "ReviewConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "NotificationConfig",
]
