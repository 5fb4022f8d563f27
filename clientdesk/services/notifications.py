"""
User-visible notifications.

Notifications are shown only when the user granted permission. A ``default``
permission means the user was never asked; ``notify`` asks first.
"""

from enum import Enum
from typing import Callable, Optional

import structlog
from rich.console import Console

logger = structlog.get_logger(__name__)

_LEVEL_STYLES = {
    "info": "blue",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


class Permission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


class ConsoleNotifier:
    """Prints notifications to a ``rich`` console once permission is granted."""

    def __init__(
        self,
        permission: Permission = Permission.DEFAULT,
        console: Optional[Console] = None,
        ask: Optional[Callable[[], bool]] = None,
    ):
        self.permission = Permission(permission)
        self.console = console or Console(stderr=True)
        self._ask = ask

    def request_permission(self) -> Permission:
        """Resolve a ``default`` permission by asking the user, if possible."""
        if self.permission != Permission.DEFAULT or self._ask is None:
            return self.permission
        try:
            self.permission = Permission.GRANTED if self._ask() else Permission.DENIED
        except (EOFError, KeyboardInterrupt):
            self.permission = Permission.DENIED
        logger.debug("Notification permission resolved", permission=self.permission.value)
        return self.permission

    def show(self, title: str, body: str = "", level: str = "info") -> bool:
        """Render a notification if permission is granted. Returns whether it was shown."""
        if self.permission != Permission.GRANTED:
            logger.debug(
                "Notification suppressed", title=title, permission=self.permission.value
            )
            return False
        style = _LEVEL_STYLES.get(level, "blue")
        message = f"[{style}]{title}[/{style}]"
        if body:
            message += f" {body}"
        self.console.print(message)
        return True

    def notify(self, title: str, body: str = "", level: str = "info") -> bool:
        if self.permission == Permission.DEFAULT:
            self.request_permission()
        return self.show(title, body, level)


class NullNotifier:
    """Notifier that never shows anything."""

    permission = Permission.DENIED

    def request_permission(self) -> Permission:
        return self.permission

    def show(self, title: str, body: str = "", level: str = "info") -> bool:
        return False

    def notify(self, title: str, body: str = "", level: str = "info") -> bool:
        return False
