from __future__ import annotations

import logging
from dataclasses import dataclass


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    title: str
    description: str = ""
    # default | destructive
    variant: str = "default"


class Notifier:
    """Collects toast-style notifications for whatever front end renders them."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def toast(self, title: str, description: str = "", variant: str = "default") -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self.notifications.append(notification)
        logger.debug("toast title=%s variant=%s", title, variant)
        return notification

    def clear(self) -> None:
        self.notifications.clear()
