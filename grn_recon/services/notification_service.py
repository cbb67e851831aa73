"""
Reconciliation Notification Service

Tells downstream parties (procurement inbox, vendor portal, accounts) about
reconciliation events. Delivery is best effort: a notification is only
attempted after the business transaction committed, and a delivery failure
is logged and never surfaces to the caller.

Without NOTIFICATION_WEBHOOK_URL configured the service only logs.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum
from uuid import uuid4

import httpx

from grn_recon.config import settings


logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    """Events published by the reconciliation engine."""
    GRN_CREATED = "grn_created"
    GRN_DISCREPANCY = "grn_discrepancy"
    VENDOR_REQUEST_SENT = "vendor_request_sent"
    VENDOR_REQUEST_FULFILLED = "vendor_request_fulfilled"
    CREDIT_NOTE_CREATED = "credit_note_created"
    CREDIT_NOTE_SETTLED = "credit_note_settled"


class NotificationService:
    """Publishes reconciliation events to the configured webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self._transport = transport

    async def notify(self, event: NotificationEvent, payload: Dict[str, Any]) -> bool:
        """
        Publish one event.

        Returns:
            True if the event was delivered (or only logged because no
            webhook is configured), False if delivery failed.
        """
        envelope = {
            "notification_id": str(uuid4()),
            "event": event.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        logger.info(f"[NOTIFICATION] {event.value}: {payload.get('summary') or payload.get('number', '')}")

        if not self.webhook_url:
            return True

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=envelope)
                response.raise_for_status()
            return True
        except httpx.TimeoutException:
            logger.warning(f"Notification {event.value} timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.warning(f"Notification {event.value} failed: {e}")
        return False


def get_notification_service() -> NotificationService:
    """FastAPI dependency, overridable in tests."""
    return NotificationService()
