"""
Configuration Loader (``review_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``review_config.schema`` dataclasses.  Runtime callers go through
``review_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for malformed sections.
* Unknown keys are rejected, so a misspelt setting never goes unnoticed.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from review_config.schema import (
    NOTIFICATION_CHANNELS,
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    ReviewConfig,
)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return section


def _non_negative_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{section}.{key} must be a non-negative integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    section = _section(data, "database", {"url", "echo", "pool_size", "max_overflow"})
    url = section["url"]
    if not isinstance(url, str) or not url:
        raise ValueError("database.url must be a non-empty string")
    return DatabaseConfig(
        url=url,
        echo=bool(section.get("echo", False)),
        pool_size=_non_negative_int("database", "pool_size", section.get("pool_size", 10)),
        max_overflow=_non_negative_int(
            "database", "max_overflow", section.get("max_overflow", 5),
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    section = _section(data, "logging", {"level"})
    level = str(section.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {_LOG_LEVELS}, got {level!r}")
    return LoggingConfig(level=level)


def parse_notifications(data: dict[str, Any]) -> NotificationConfig:
    section = _section(data, "notifications", {"channel", "name"})
    channel = section.get("channel", "log")
    if channel not in NOTIFICATION_CHANNELS:
        raise ValueError(
            f"notifications.channel must be one of {NOTIFICATION_CHANNELS}, got {channel!r}"
        )
    return NotificationConfig(channel=channel, name=str(section.get("name", "review")))


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> ReviewConfig:
    """Parse a full configuration document."""
    unknown = set(data) - {"database", "logging", "notifications"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    if "database" not in data:
        raise KeyError("database")
    return ReviewConfig(
        database=parse_database(data),
        logging=parse_logging(data),
        notifications=parse_notifications(data),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ReviewConfig:
    return parse_config(load_yaml_file(path))
