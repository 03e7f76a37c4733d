"""Database-agnostic type definitions for SQLAlchemy models.

Models are created on PostgreSQL in production and on SQLite in tests.
"""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Native uuid on PostgreSQL, CHAR(32) on SQLite
UUIDType = PG_UUID
