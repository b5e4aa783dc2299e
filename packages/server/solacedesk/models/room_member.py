"""Room membership (join table keyed by user and room)."""

from datetime import datetime
import uuid

from sqlmodel import Field, SQLModel

from solacedesk_shared.schemas.common import RoomRole

from .base import utc_timestamp


class RoomMember(SQLModel, table=True):
    __tablename__ = "room_members"

    # Composite primary key: at most one membership per (user, room)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    room_id: uuid.UUID = Field(foreign_key="rooms.id", primary_key=True, index=True)
    role: RoomRole = Field(default=RoomRole.MEMBER, nullable=False)
    joined_at: datetime = utc_timestamp()
