"""
Room-related Pydantic schemas shared between the engine and its callers.

Covers: room creation and metadata updates, ticket opening and status
changes, and the room summaries returned by visibility listings.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Department, RoomRole, RoomType, TicketStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RoomCreateRequest(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe room identifier",
    )
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: RoomType = RoomType.PUBLIC
    department: Optional[Department] = Field(
        None,
        description="Restrict a PUBLIC room to one department (null = global)",
    )


class RoomUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class TicketOpenRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    ticket_department: Optional[Department] = None
    assignee_id: Optional[uuid.UUID] = Field(
        None,
        description="Admin to own the ticket (defaults to the longest-standing admin)",
    )


class TicketStatusRequest(BaseModel):
    status: TicketStatus


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class RoomSummary(BaseModel):
    id: uuid.UUID
    name: str
    title: str
    type: RoomType
    department: Optional[Department] = None
    status: Optional[TicketStatus] = None
    created_at: datetime
    role: Optional[RoomRole] = None  # the requesting user's role, None if not a member
    is_member: bool = False

    model_config = {"from_attributes": True}
