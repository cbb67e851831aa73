"""
Pytest fixtures for the reconciliation engine.

Provides:
- A fresh in-memory SQLite database per test (aiosqlite, one shared connection)
- Seeded vendor and purchase order
- An in-process HTTP client with the DB and notifier dependencies overridden
"""
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from grn_recon import models  # noqa: F401
from grn_recon.database import Base, build_engine, get_db
from grn_recon.main import app
from grn_recon.models.purchase import PurchaseOrder, PurchaseOrderItem
from grn_recon.models.vendor import Vendor
from grn_recon.services.notification_service import (
    NotificationEvent,
    NotificationService,
    get_notification_service,
)


HEADERS = {"X-User-Id": "store.keeper", "X-Department": "stores"}


class RecordingNotifier(NotificationService):
    """Notifier that keeps every published event in memory."""

    def __init__(self):
        super().__init__(webhook_url="")
        self.events: List[Tuple[NotificationEvent, Dict[str, Any]]] = []

    async def notify(self, event: NotificationEvent, payload: Dict[str, Any]) -> bool:
        self.events.append((event, payload))
        return await super().notify(event, payload)

    def names(self) -> List[str]:
        return [event.value for event, _ in self.events]


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_factory, notifier):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifier

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test", headers=HEADERS) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def purchase_order(session_factory) -> Dict[str, Any]:
    """
    PO-2026-001 from Shree Fabrics:
        line 1  Cotton fabric   100 m    @ 10.00
        line 2  Polyester yarn   50 kg   @ 20.50
        line 3  Metal buttons    10 box  @  5.00
    """
    async with session_factory() as session:
        vendor = Vendor(code="V-SF", name="Shree Fabrics", email="orders@shreefabrics.test")
        session.add(vendor)
        await session.flush()

        po = PurchaseOrder(po_number="PO-2026-001", po_date=date(2026, 10, 1), vendor_id=vendor.id)
        session.add(po)
        await session.flush()

        items = [
            PurchaseOrderItem(
                purchase_order_id=po.id, line_number=1, material_name="Cotton fabric",
                color="White", uom="MTR", quantity_ordered=Decimal("100"), unit_price=Decimal("10.00"),
            ),
            PurchaseOrderItem(
                purchase_order_id=po.id, line_number=2, material_name="Polyester yarn",
                uom="KG", quantity_ordered=Decimal("50"), unit_price=Decimal("20.50"),
            ),
            PurchaseOrderItem(
                purchase_order_id=po.id, line_number=3, material_name="Metal buttons",
                specification="18L", uom="BOX", quantity_ordered=Decimal("10"), unit_price=Decimal("5.00"),
            ),
        ]
        session.add_all(items)
        await session.commit()

        return {
            "id": str(po.id),
            "vendor_id": str(vendor.id),
            "items": [str(item.id) for item in items],
        }


def receipt(po: Dict[str, Any], *received, **extra) -> Dict[str, Any]:
    """GRN payload; received[i] is the counted quantity of PO line i (None skips the line)."""
    lines = []
    for po_item_id, qty in zip(po["items"], received):
        if qty is None:
            continue
        line = qty if isinstance(qty, dict) else {"received_qty": qty}
        lines.append({"po_item_id": po_item_id, **line})
    return {"purchase_order_id": po["id"], "items_received": lines, **extra}


@pytest.fixture
def make_receipt(client, purchase_order):
    """POST a receipt for the seeded PO and return the response body."""

    async def _make(*received, expected_status: int = 201, **extra):
        resp = await client.post("/api/v1/goods-receipts", json=receipt(purchase_order, *received, **extra))
        assert resp.status_code == expected_status, resp.text
        return resp.json()

    return _make


@pytest.fixture
def new_uuid():
    return lambda: str(uuid.uuid4())
