"""Room model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from solacedesk_shared.schemas.common import Department, RoomType, TicketStatus

from .base import TimestampMixin, UUIDMixin


class Room(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "rooms"

    name: str = Field(unique=True, nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    type: RoomType = Field(default=RoomType.PUBLIC, nullable=False, index=True)
    # Legacy display flag; `type` is authoritative for access decisions
    is_private: bool = Field(default=False, nullable=False)
    department: Optional[Department] = Field(default=None, index=True)  # PUBLIC only, null = global
    ticket_department: Optional[Department] = None
    status: Optional[TicketStatus] = Field(default=None)  # TICKET only
    creator_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
