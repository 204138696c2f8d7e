"""Shared base fields for all models."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive value read back from a backend that drops tzinfo (SQLite)."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class TimestampMixin(SQLModel):
    """Created / updated timestamps injected into every table."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=DateTime(timezone=True))
