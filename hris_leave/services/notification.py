"""Fire-and-forget notification dispatch.

Services submit notifications after their transaction commits. A bounded
queue decouples them from delivery: a background task drains the queue and
retries failed sends with linear backoff. Nothing here ever raises into the
submitting caller.
"""

# ruff: noqa: TC003
from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from hris_leave.config import get_settings
from hris_leave.models.enums import NotificationType

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    """A message for one recipient."""

    company_id: uuid.UUID
    recipient_id: uuid.UUID
    sender_id: uuid.UUID | None = None
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class NotificationSender(Protocol):
    """Interface for the Notification Service."""

    async def send(self, notification: Notification) -> None:
        """Deliver a notification. Raises on failure."""
        ...


class InMemoryNotificationSender:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class LoggingNotificationSender:
    """Writes notifications to the log. Default until a real channel is wired."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s: %s",
            notification.type.value,
            notification.recipient_id,
            notification.title,
        )


class NotificationDispatcher:
    """Bounded work queue in front of a ``NotificationSender``."""

    def __init__(
        self,
        sender: NotificationSender,
        maxsize: int = 1000,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.sender = sender
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, notification: Notification) -> bool:
        """Queue a notification. Returns False (and drops it) when the queue is full."""
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            logger.warning(
                "Notification queue full, dropping %s for %s",
                notification.type.value,
                notification.recipient_id,
            )
            return False
        return True

    async def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def drain(self) -> None:
        """Wait until every queued notification has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Stop the worker. Notifications still queued are discarded."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def _deliver(self, notification: Notification) -> None:
        for attempt in range(1, self._max_retries + 1):
            try:
                await self.sender.send(notification)
            except Exception:
                logger.warning(
                    "Notification %s to %s failed (attempt %d/%d)",
                    notification.type.value,
                    notification.recipient_id,
                    attempt,
                    self._max_retries,
                    exc_info=True,
                )
            else:
                return
            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay * attempt)
        logger.error(
            "Giving up on notification %s to %s",
            notification.type.value,
            notification.recipient_id,
        )


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency for the notification dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = NotificationDispatcher(
            LoggingNotificationSender(),
            maxsize=settings.notification_queue_size,
            max_retries=settings.notification_max_retries,
            retry_delay=settings.notification_retry_delay_seconds,
        )
    return _dispatcher


def set_notification_dispatcher(dispatcher: NotificationDispatcher) -> None:
    """Override the dispatcher (for testing or production wiring)."""
    global _dispatcher
    _dispatcher = dispatcher
