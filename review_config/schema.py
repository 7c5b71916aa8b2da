"""
Review configuration schema.

Frozen dataclasses parsed from YAML by ``review_config.loader``.  The
gate rule table is NOT configuration: gates, stages and role mappings are
fixed in ``review_kernel.domain``.  Only the runtime environment is
configurable here.
"""

from __future__ import annotations

from dataclasses import dataclass, field

NOTIFICATION_CHANNELS = ("log", "none")


@dataclass(frozen=True)
class DatabaseConfig:
    """Where assignments live."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class NotificationConfig:
    """How post-commit notifications are delivered.

    ``log`` writes each notification as a structured log record; ``none``
    drops them.
    """

    channel: str = "log"
    name: str = "review"


@dataclass(frozen=True)
class ReviewConfig:
    """Root configuration object."""

    database: DatabaseConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    checksum: str = ""
