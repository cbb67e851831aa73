"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# UUID type that works with both databases
UUIDType = PG_UUID

# Fixed-precision columns; money and counted quantities are never floats
MoneyType = Numeric(14, 2)
QuantityType = Numeric(14, 3)
PercentType = Numeric(5, 2)
