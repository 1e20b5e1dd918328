"""
Notifier -- alerting sink for failures that must not crash the caller.

The implementation is chosen once, at construction time, by the
composition root.  NullNotifier is the default; LoggingNotifier writes an
ERROR record so log-based alerting can pick it up.
"""

from __future__ import annotations

from typing import Any, Protocol

from produce_kernel.logging_config import get_logger

logger = get_logger("batch.notifier")


class Notifier(Protocol):
    def notify_failure(
        self,
        event: str,
        error: BaseException,
        context: dict[str, Any] | None = None,
    ) -> None: ...


class NullNotifier:
    """Discards every notification."""

    def notify_failure(
        self,
        event: str,
        error: BaseException,
        context: dict[str, Any] | None = None,
    ) -> None:
        return None


class LoggingNotifier:
    def notify_failure(
        self,
        event: str,
        error: BaseException,
        context: dict[str, Any] | None = None,
    ) -> None:
        logger.error(
            "alert",
            extra={"alert_event": event, **(context or {})},
            exc_info=(type(error), error, error.__traceback__),
        )


class RecordingNotifier:
    """Keeps notifications in memory, for tests and operator consoles."""

    def __init__(self) -> None:
        self.notifications: list[tuple[str, BaseException, dict[str, Any]]] = []

    def notify_failure(
        self,
        event: str,
        error: BaseException,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.notifications.append((event, error, dict(context or {})))
