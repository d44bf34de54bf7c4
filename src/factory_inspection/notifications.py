"""
User-facing notifications.

The client surfaces failed actions as dismissible notifications. A
notification may carry a retry action, which re-runs the failed operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

RetryAction = Callable[[], Awaitable[Any]]


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass
class Notification:
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
    retry: Optional[RetryAction] = None
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def retryable(self) -> bool:
        return self.retry is not None


class NotificationCenter:
    """Holds the currently visible notifications, newest last."""

    def __init__(self, limit: int = 20) -> None:
        self.limit = limit
        self._items: List[Notification] = []

    @property
    def items(self) -> List[Notification]:
        return list(self._items)

    def notify(self, notification: Notification) -> Notification:
        self._items.append(notification)
        # Oldest notifications drop off once the limit is reached
        del self._items[: max(0, len(self._items) - self.limit)]
        return notification

    def success(self, description: str, title: str = "Success") -> Notification:
        return self.notify(Notification(title=title, description=description))

    def error(self, description: str, title: str = "Error", retry: Optional[RetryAction] = None) -> Notification:
        logger.info(f"Error notification: {description}")
        return self.notify(
            Notification(
                title=title,
                description=description,
                variant=NotificationVariant.DESTRUCTIVE,
                retry=retry,
            )
        )

    def dismiss(self, notification_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.id != notification_id]
        return len(self._items) < before

    async def retry(self, notification_id: str) -> Any:
        """Dismiss a notification and run its retry action."""
        notification = next((item for item in self._items if item.id == notification_id), None)
        if notification is None or notification.retry is None:
            raise KeyError(f"No retryable notification {notification_id}")
        self.dismiss(notification_id)
        return await notification.retry()
