"""
Notification boundary for the reconciliation engine.

Delivery itself lives outside this service. The reconciler only hands a
message to a Notifier, which schedules it on FastAPI background tasks so the
webhook response never waits on it; every delivery failure is logged here and
never reaches the caller.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import enum
import logging
import uuid

import httpx
from fastapi import BackgroundTasks

from hoodpay.core.config import settings
from hoodpay.core.errors import SideEffectError

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    SUBSCRIPTION_SUCCESS = "subscription_success"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_SUCCEEDED = "payment_succeeded"


class NotificationSink(ABC):
    """Delivery transport. Implementations may raise; Notifier contains it."""

    @abstractmethod
    def notify(self, kind: NotificationKind, user_id: uuid.UUID, payload: Dict[str, Any]) -> None:
        pass


class LogNotificationSink(NotificationSink):
    def notify(self, kind, user_id, payload):
        logger.info(f"[NOTIFY] {kind.value} -> user {user_id}: {payload}")


class HttpNotificationSink(NotificationSink):
    """POSTs each notification as JSON to the notification service."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def notify(self, kind, user_id, payload):
        body = {
            "kind": kind.value,
            "userId": str(user_id),
            "data": {k: (str(v) if isinstance(v, uuid.UUID) else v) for k, v in payload.items()},
        }
        try:
            response = httpx.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SideEffectError(f"Notification delivery failed: {str(e)}") from e


def build_notification_sink() -> NotificationSink:
    if settings.NOTIFICATION_WEBHOOK_URL:
        return HttpNotificationSink(settings.NOTIFICATION_WEBHOOK_URL, settings.NOTIFICATION_TIMEOUT_SECONDS)
    return LogNotificationSink()


class Notifier:
    """
    Fire-and-forget front of a NotificationSink.

    With background_tasks the delivery runs after the response is sent;
    without them (scripts, tests) it runs inline, still contained.
    """

    def __init__(self, sink: NotificationSink, background_tasks: Optional[BackgroundTasks] = None):
        self.sink = sink
        self.background_tasks = background_tasks

    def notify(
        self,
        kind: NotificationKind,
        user_id: uuid.UUID,
        community_id: Optional[uuid.UUID] = None,
        subscription_id: Optional[uuid.UUID] = None,
        amount: Optional[int] = None,
    ) -> None:
        payload: Dict[str, Any] = {}
        if community_id is not None:
            payload["communityId"] = community_id
        if subscription_id is not None:
            payload["subscriptionId"] = subscription_id
        if amount is not None:
            payload["amount"] = amount

        if self.background_tasks is not None:
            self.background_tasks.add_task(self._deliver, kind, user_id, payload)
        else:
            self._deliver(kind, user_id, payload)

    def _deliver(self, kind: NotificationKind, user_id: uuid.UUID, payload: Dict[str, Any]) -> None:
        try:
            self.sink.notify(kind, user_id, payload)
        except Exception:
            logger.exception(f"[NOTIFY] Failed to deliver {kind.value} to user {user_id}")
