"""User model (read-only to the access engine)."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from solacedesk_shared.schemas.common import Department, UserRole

from .base import UUIDMixin, utc_timestamp


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True)
    name: Optional[str] = None
    role: UserRole = Field(default=UserRole.USER, nullable=False)
    department: Optional[Department] = Field(default=None, index=True)  # null = global
    created_at: datetime = utc_timestamp()
