"""
Bridges from configuration to kernel inputs.

The kernel never imports ``review_config``; these helpers translate a
``ReviewConfig`` into the objects the kernel takes.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from review_config.schema import NotificationConfig, ReviewConfig
from review_kernel.db.engine import init_engine_from_url
from review_kernel.domain.ports import NotificationPort
from review_kernel.logging_config import configure_logging
from review_kernel.services.notifications import (
    LoggingNotificationPort,
    NullNotificationPort,
)


def init_engine_from_config(config: ReviewConfig) -> Engine:
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )


def configure_logging_from_config(config: ReviewConfig) -> None:
    configure_logging(level=config.logging.level)


def build_notification_port(config: NotificationConfig) -> NotificationPort:
    if config.channel == "none":
        return NullNotificationPort()
    return LoggingNotificationPort(channel=config.name)
