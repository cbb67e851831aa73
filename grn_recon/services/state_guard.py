"""Optimistic status updates shared by the workflow services."""
import logging
import uuid
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from grn_recon.core.exceptions import ConflictError


logger = logging.getLogger(__name__)


def check_expected_status(label: str, current: str, expected: Optional[str]) -> None:
    """Reject a transition when the caller acted on a status it no longer has."""
    if expected is not None and expected != current:
        logger.warning(f"Stale {label} transition: expected '{expected}', found '{current}'")
        raise ConflictError(
            f"{label} status changed to '{current}' (expected '{expected}'). Re-fetch and retry.",
            {"current_status": current, "expected_status": expected},
        )


async def compare_and_set_status(
    db: AsyncSession,
    instance: Any,
    expected: str,
    new_status: str,
    status_field: str = "status",
    **values: Any,
) -> None:
    """
    UPDATE ... WHERE id = :id AND <status_field> = :expected.

    Zero rows updated means another transaction moved the row first; that
    is a ConflictError, never a silent overwrite. The in-memory instance
    is updated to match.
    """
    model = type(instance)
    entity_id: uuid.UUID = instance.id
    status_column = getattr(model, status_field)

    # The bulk UPDATE bypasses the unit of work
    await db.flush()

    result = await db.execute(
        update(model)
        .where(model.id == entity_id, status_column == expected)
        .values({status_field: new_status, **values})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            f"Stale-state conflict on {model.__tablename__} {entity_id}: expected '{expected}'"
        )
        raise ConflictError(
            f"{model.__name__} is no longer '{expected}'. Re-fetch and retry.",
            {"id": str(entity_id), "expected_status": expected, "requested_status": new_status},
        )

    # Mirror the committed values without marking the instance dirty
    for key, value in {status_field: new_status, **values}.items():
        set_committed_value(instance, key, value)
