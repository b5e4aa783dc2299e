"""Audit log entry (append-only)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utc_timestamp


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    action: str = Field(nullable=False, index=True)  # e.g., ticket.assign, ownership.transfer
    actor_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    target_type: Optional[str] = None  # room | user
    target_id: Optional[str] = Field(default=None, index=True)
    payload: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    created_at: datetime = utc_timestamp()
