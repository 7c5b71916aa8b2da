"""
Notification ports.

The engine publishes domain notifications after a transition commits.
Delivery (email, push, in-app) is an external collaborator; the kernel
ships a structured-logging publisher and a null publisher.
"""

from __future__ import annotations

from typing import Any

from review_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class LoggingNotificationPort:
    """Publishes each notification as a structured log record."""

    def __init__(self, channel: str = "review"):
        self.channel = channel

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_published",
            extra={
                "channel": self.channel,
                "event_name": event_name,
                "payload": payload,
            },
        )


class NullNotificationPort:
    """Discards notifications (notifications disabled)."""

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        return None
