"""Domain events and fire-and-forget notification delivery.

Core operations only *describe* what happened as ``DomainEvent``s. After the
owning transaction commits, the API layer hands them to ``dispatch_events``
which posts each one, HMAC-signed, to the notification subsystem. Delivery
failures are logged and never reach the caller.
"""

import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from clearpath.clock import utc_now
from clearpath.config import Settings

logger = logging.getLogger(__name__)

SESSION_ACTIVATED = "session.activated"
SESSION_RETRIEVAL_DUE = "session.retrieval_due"
RESULT_RECORDED = "result.recorded"
CERTIFICATE_ISSUED = "certificate.issued"
CERTIFICATE_SUPERSEDED = "certificate.superseded"


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    subject_id: str
    data: dict
    occurred_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "event": self.event_type,
            "subject_id": self.subject_id,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self.data,
        }


def sign_payload(payload: dict, secret: str) -> str:
    """Create HMAC-SHA256 signature for a notification payload."""
    body = json.dumps(payload, sort_keys=True, default=str)
    return hmac.new(
        secret.encode("utf-8"),
        body.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class Notifier:
    """Posts domain events to the configured notification webhook."""

    def __init__(self, settings: Settings) -> None:
        self.url = settings.notification_webhook_url
        self.secret = settings.notification_webhook_secret
        self.timeout = settings.notification_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def dispatch(self, event: DomainEvent) -> bool:
        """Send one event. Returns True on a 2xx/3xx response, False otherwise."""
        if not self.enabled:
            logger.debug("Notifications disabled; dropping %s %s", event.event_type, event.id)
            return False

        payload = event.to_payload()
        headers = {
            "Content-Type": "application/json",
            "X-Clearpath-Signature": sign_payload(payload, self.secret),
            "X-Clearpath-Event": event.event_type,
            "X-Clearpath-Delivery": event.id,
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.url,
                    content=json.dumps(payload, sort_keys=True, default=str),
                    headers=headers,
                    timeout=self.timeout,
                )
        except httpx.TimeoutException:
            logger.error("Notification %s (%s) timed out", event.id, event.event_type)
            return False
        except httpx.RequestError as exc:
            logger.error(
                "Notification %s (%s) failed: %s", event.id, event.event_type, exc
            )
            return False

        if response.status_code >= 400:
            logger.warning(
                "Notification %s (%s) returned %d",
                event.id,
                event.event_type,
                response.status_code,
            )
            return False
        return True


async def dispatch_events(notifier: Notifier, events: list[DomainEvent]) -> int:
    """Deliver events one by one; returns how many were accepted."""
    delivered = 0
    for event in events:
        if await notifier.dispatch(event):
            delivered += 1
    return delivered
