"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class CaseResponse(BaseResponseSchema):
            id: UUID
            case_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields are ignored so older clients keep working.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """Base class for update/patch schemas. All fields optional."""
    model_config = ConfigDict(
        extra='ignore',
    )


class TransitionRequest(BaseCreateSchema):
    """
    Body shared by status-transition endpoints.

    expected_status lets a client assert the status it acted on; a mismatch
    is reported as a stale-state conflict.
    """
    notes: Optional[str] = None
    expected_status: Optional[str] = None


class PaginatedResponse(BaseModel):
    total: int
    page: int = 1
    size: int = 20
    pages: int = 1


def page_count(total: int, size: int) -> int:
    return (total + size - 1) // size if total > 0 else 1
