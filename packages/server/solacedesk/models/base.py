"""Shared columns and mixins for SolaceDesk tables."""

from datetime import datetime, timezone
from typing import Any
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp(**kwargs: Any) -> Any:
    """Timezone-aware timestamp column defaulting to the current UTC time."""
    return Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        **kwargs,
    )


class UUIDMixin(SQLModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True, nullable=False)


class TimestampMixin(SQLModel):
    created_at: datetime = utc_timestamp(index=True)
    updated_at: datetime = utc_timestamp(sa_column_kwargs={"onupdate": utcnow})
