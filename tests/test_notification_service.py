"""Webhook delivery of reconciliation events."""
import json

import httpx

from grn_recon.services.notification_service import NotificationEvent, NotificationService


WEBHOOK = "http://hooks.test/reconciliation"


async def test_delivers_envelope():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    service = NotificationService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))
    delivered = await service.notify(NotificationEvent.GRN_DISCREPANCY, {"grn_number": "GRN-1", "cases": 2})

    assert delivered is True
    assert len(seen) == 1
    assert str(seen[0].url) == WEBHOOK
    body = json.loads(seen[0].content)
    assert body["event"] == "grn_discrepancy"
    assert body["payload"] == {"grn_number": "GRN-1", "cases": 2}
    assert body["notification_id"]
    assert body["timestamp"]


async def test_server_error_is_reported_not_raised():
    service = NotificationService(
        webhook_url=WEBHOOK, transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    assert await service.notify(NotificationEvent.CREDIT_NOTE_SETTLED, {"number": "CN-1"}) is False


async def test_timeout_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    service = NotificationService(webhook_url=WEBHOOK, timeout=0.1, transport=httpx.MockTransport(handler))
    assert await service.notify(NotificationEvent.VENDOR_REQUEST_SENT, {"number": "VRQ-1"}) is False


async def test_without_webhook_only_logs():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    service = NotificationService(webhook_url="", transport=httpx.MockTransport(handler))
    assert await service.notify(NotificationEvent.GRN_CREATED, {"grn_number": "GRN-1"}) is True
