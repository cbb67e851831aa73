"""Audit trail recording, querying and append-only enforcement."""
import uuid

import pytest

from grn_recon.config import settings
from grn_recon.core.exceptions import InvariantViolation
from grn_recon.services.audit_service import AuditService


async def _entry(db, **overrides):
    fields = dict(
        entity_type="grn",
        entity_id=uuid.uuid4(),
        action="created",
        status_before=None,
        status_after="verified",
        performed_by="store.keeper",
        department="stores",
    )
    fields.update(overrides)
    return await AuditService(db).record(**fields)


async def test_receipt_creation_is_audited(client, make_receipt):
    body = await make_receipt(90, 50, 10)
    grn_id = body["grn"]["id"]

    resp = await client.get("/api/v1/audit-trails", params={"entity_type": "grn", "entity_id": grn_id})
    assert resp.status_code == 200
    entries = resp.json()["items"]
    assert [e["action"] for e in entries] == ["created"]
    assert entries[0]["status_after"] == "discrepancy"
    assert entries[0]["performed_by"] == "store.keeper"
    assert entries[0]["department"] == "stores"

    resp = await client.get("/api/v1/audit-trails", params={"entity_type": "discrepancy_case", "action": "created"})
    assert resp.json()["total"] == 1
    assert resp.json()["items"][0]["metadata"]["complaint_type"] == "shortage"


async def test_department_falls_back_to_default(db):
    entry = await _entry(db, department=None)
    assert entry.department == settings.DEFAULT_DEPARTMENT


async def test_filters_and_order(db):
    entity_id = uuid.uuid4()
    await _entry(db, entity_id=entity_id)
    await _entry(db, entity_id=entity_id, action="approved", status_before="verified", status_after="approved")
    await _entry(db, entity_type="credit_note")
    await db.commit()

    entries, total = await AuditService(db).list_entries(entity_id=entity_id)
    assert total == 2
    assert {e.action for e in entries} == {"created", "approved"}

    entries, total = await AuditService(db).list_entries(entity_type="credit_note", size=1)
    assert total == 1
    assert len(entries) == 1


async def test_entries_cannot_be_modified(db):
    entry = await _entry(db)
    await db.commit()

    entry.reason = "rewritten history"
    with pytest.raises(InvariantViolation):
        await db.flush()
    await db.rollback()


async def test_entries_cannot_be_deleted(db):
    entry = await _entry(db)
    await db.commit()

    await db.delete(entry)
    with pytest.raises(InvariantViolation):
        await db.flush()
    await db.rollback()
