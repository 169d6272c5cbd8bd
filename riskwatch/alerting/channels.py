"""
Notification Channels: in-app feed and generic JSON webhook.

Each channel is independent and fault-tolerant. Delivery is best-effort,
at-least-once at most; the router never raises to its caller.
"""

from collections import deque
from typing import Optional, Protocol

import httpx
import structlog

from riskwatch.alerting.schemas import Notification, NotificationKind, NotificationSeverity
from riskwatch.clock import Clock, utc_now

logger = structlog.get_logger(__name__)


class NotificationChannel(Protocol):
    name: str

    async def dispatch(self, notification: Notification) -> dict:
        """
        Deliver one notification.

        Returns:
            dict with delivery result: {"success": bool, "detail": str}
        """
        ...


class InAppFeed:
    """
    Bounded in-memory feed for dashboard polling.

    Newest last; the oldest entries fall off once `max_size` is reached.
    """

    name = "in_app"

    def __init__(self, max_size: int = 500):
        self._items: deque[Notification] = deque(maxlen=max_size)

    async def dispatch(self, notification: Notification) -> dict:
        self._items.append(notification)
        return {"success": True, "detail": "Stored in feed"}

    def recent(self, limit: Optional[int] = None) -> list[Notification]:
        items = list(self._items)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class WebhookDispatcher:
    """Posts each notification as JSON to a configured URL."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def dispatch(self, notification: Notification) -> dict:
        payload = notification.model_dump(mode="json")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(
                "webhook_notification_error",
                notification_id=notification.notification_id,
                error=str(e),
            )
            return {"success": False, "detail": str(e)}

        if response.status_code < 400:
            return {"success": True, "detail": f"HTTP {response.status_code}"}

        logger.warning(
            "webhook_notification_failed",
            notification_id=notification.notification_id,
            status=response.status_code,
        )
        return {"success": False, "detail": f"HTTP {response.status_code}"}


class NotificationRouter:
    """
    Fans a notification out to every registered channel.

    `notify()` is the notification sink used by the pipeline and the
    incident manager. Channel failures are logged and swallowed.
    """

    def __init__(self, channels: list[NotificationChannel], clock: Clock = utc_now):
        self._channels = list(channels)
        self._clock = clock

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def notify(
        self,
        severity: NotificationSeverity,
        message: str,
        kind: NotificationKind = NotificationKind.SYSTEM,
        subject_id: Optional[str] = None,
        incident_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            severity=severity,
            message=message,
            kind=kind,
            subject_id=subject_id,
            incident_id=incident_id,
            created_at=self._clock(),
        )

        for channel in self._channels:
            try:
                result = await channel.dispatch(notification)
            except Exception as e:
                logger.error(
                    "channel_dispatch_error",
                    channel=channel.name,
                    notification_id=notification.notification_id,
                    error=str(e),
                )
                continue
            if not result.get("success"):
                logger.debug(
                    "notification_not_delivered",
                    channel=channel.name,
                    detail=result.get("detail"),
                )

        logger.info(
            "notification_emitted",
            severity=severity.value,
            kind=kind.value,
            message=message,
        )
        return notification
