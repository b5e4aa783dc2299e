"""
Room role hierarchy: OWNER > MODERATOR > MEMBER > none.

Pure functions only. Administrator overrides are decided by the policy
engine, never here.
"""

from __future__ import annotations

from typing import Optional

from solacedesk_shared.schemas.common import RoomRole

ROLE_RANK: dict[RoomRole, int] = {
    RoomRole.OWNER: 3,
    RoomRole.MODERATOR: 2,
    RoomRole.MEMBER: 1,
}


def rank(role: Optional[RoomRole]) -> int:
    """Numeric rank of a room role; 0 for no membership."""
    if role is None:
        return 0
    return ROLE_RANK[RoomRole(role)]


def satisfies(actual: Optional[RoomRole], required: RoomRole) -> bool:
    return rank(actual) >= rank(required)


def can_invite(role: Optional[RoomRole]) -> bool:
    return satisfies(role, RoomRole.MODERATOR)


def can_edit_room_metadata(role: Optional[RoomRole]) -> bool:
    return satisfies(role, RoomRole.OWNER)


def can_transfer_ownership(role: Optional[RoomRole]) -> bool:
    return satisfies(role, RoomRole.OWNER)


def can_change_roles(role: Optional[RoomRole]) -> bool:
    return satisfies(role, RoomRole.OWNER)
