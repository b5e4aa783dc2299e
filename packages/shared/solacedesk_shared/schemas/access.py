"""
Access-control schemas shared between the engine and its callers.

Covers: principals, operations, decision and result codes, and the typed
results returned by membership and ticket workflows.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .common import Department, RoomRole, UserRole


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Operation(str, Enum):
    READ = "READ"
    JOIN = "JOIN"
    POST_MESSAGE = "POST_MESSAGE"
    EDIT_METADATA = "EDIT_METADATA"
    INVITE = "INVITE"
    LEAVE = "LEAVE"
    TRANSFER_OWNERSHIP = "TRANSFER_OWNERSHIP"
    ADMIN_VIEW = "ADMIN_VIEW"


class ResultCode(str, Enum):
    # Denials and rejections
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    EXTERNAL_FORBIDDEN = "EXTERNAL_FORBIDDEN"
    NOT_MEMBER = "NOT_MEMBER"
    ALREADY_MEMBER = "ALREADY_MEMBER"
    CANNOT_LEAVE = "CANNOT_LEAVE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_ASSIGNEE = "INVALID_ASSIGNEE"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"

    # Successes
    ALLOWED = "ALLOWED"
    JOINED = "JOINED"
    LEFT = "LEFT"
    INVITED = "INVITED"
    ROLE_CHANGED = "ROLE_CHANGED"
    OWNERSHIP_TRANSFERRED = "OWNERSHIP_TRANSFERRED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_OPENED = "TICKET_OPENED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ROOM_CREATED = "ROOM_CREATED"
    ROOM_UPDATED = "ROOM_UPDATED"
    ROOM_DELETED = "ROOM_DELETED"


# ---------------------------------------------------------------------------
# Engine inputs / outputs
# ---------------------------------------------------------------------------

class Principal(BaseModel):
    """The calling user as seen by the policy engine."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    role: UserRole
    department: Optional[Department] = None
    is_external_customer: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class AccessDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason_code: ResultCode
    effective_role: Optional[RoomRole] = None

    @classmethod
    def allow(cls, effective_role: Optional[RoomRole] = None) -> "AccessDecision":
        return cls(allowed=True, reason_code=ResultCode.ALLOWED, effective_role=effective_role)

    @classmethod
    def deny(
        cls, reason: ResultCode, effective_role: Optional[RoomRole] = None
    ) -> "AccessDecision":
        return cls(allowed=False, reason_code=reason, effective_role=effective_role)


# ---------------------------------------------------------------------------
# Workflow results
# ---------------------------------------------------------------------------

class MembershipView(BaseModel):
    user_id: uuid.UUID
    room_id: uuid.UUID
    role: RoomRole
    joined_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LifecycleResult(BaseModel):
    """Outcome of a membership or ticket operation.

    ``ok`` is true for successes and for idempotent outcomes such as a
    repeated join; ``code`` is stable and safe for UIs to switch on.
    """

    ok: bool
    code: ResultCode
    message: str = ""
    membership: Optional[MembershipView] = None
    room_id: Optional[uuid.UUID] = None

    @classmethod
    def success(
        cls,
        code: ResultCode,
        message: str = "",
        membership: Optional[MembershipView] = None,
        room_id: Optional[uuid.UUID] = None,
    ) -> "LifecycleResult":
        return cls(ok=True, code=code, message=message, membership=membership, room_id=room_id)

    @classmethod
    def failure(cls, code: ResultCode, message: str = "") -> "LifecycleResult":
        return cls(ok=False, code=code, message=message)
