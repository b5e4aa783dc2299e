"""
Room access policy engine.

Every visibility and permission question for a (principal, room, operation)
triple is answered here. Rules are evaluated in order and the first match
decides:

1. External customers are denied on every room that is not a TICKET.
2. ADMIN_VIEW is granted to administrators on any room type.
3. Demo observers may only READ rooms they already belong to.
4. One rule table per room type (PRIVATE, PUBLIC, TICKET, DM).

The engine is pure: it performs no I/O and holds no mutable state, so a
single instance can be shared across tasks and threads. Ticket status and
the legacy ``is_private`` flag are never consulted.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from solacedesk.core import roles
from solacedesk_shared.schemas.access import AccessDecision, Operation, Principal, ResultCode
from solacedesk_shared.schemas.common import Department, RoomRole, RoomType, UserRole


class RoomLike(Protocol):
    type: RoomType
    department: Optional[Department]


class MembershipLike(Protocol):
    role: RoomRole


_READ_OPS = frozenset({Operation.READ, Operation.POST_MESSAGE})


def _require_member(role: Optional[RoomRole]) -> AccessDecision:
    if role is None:
        return AccessDecision.deny(ResultCode.NOT_MEMBER)
    return AccessDecision.allow(role)


def _require_role(role: Optional[RoomRole], check: Callable[[Optional[RoomRole]], bool]) -> AccessDecision:
    """NOT_MEMBER without a membership, FORBIDDEN if the role is too low."""
    if role is None:
        return AccessDecision.deny(ResultCode.NOT_MEMBER)
    if check(role):
        return AccessDecision.allow(role)
    return AccessDecision.deny(ResultCode.FORBIDDEN, role)


class AccessPolicyEngine:
    """Single decision point for room access."""

    def __init__(self) -> None:
        self._tables: dict[RoomType, Callable[..., AccessDecision]] = {
            RoomType.PRIVATE: self._private,
            RoomType.PUBLIC: self._public,
            RoomType.TICKET: self._ticket,
            RoomType.DM: self._dm,
        }

    def evaluate(
        self,
        principal: Principal,
        room: RoomLike,
        membership: Optional[MembershipLike],
        operation: Operation,
    ) -> AccessDecision:
        operation = Operation(operation)
        room_type = RoomType(room.type)
        role = RoomRole(membership.role) if membership is not None else None

        if principal.is_external_customer and room_type != RoomType.TICKET:
            return AccessDecision.deny(ResultCode.EXTERNAL_FORBIDDEN, role)

        if operation == Operation.ADMIN_VIEW:
            if principal.is_admin:
                return AccessDecision.allow(role)
            return AccessDecision.deny(ResultCode.FORBIDDEN, role)

        if principal.role == UserRole.DEMO_OBSERVER:
            if operation == Operation.READ:
                return _require_member(role)
            return AccessDecision.deny(ResultCode.FORBIDDEN, role)

        return self._tables[room_type](principal, room, role, operation)

    def is_allowed(
        self,
        principal: Principal,
        room: RoomLike,
        membership: Optional[MembershipLike],
        operation: Operation,
    ) -> bool:
        return self.evaluate(principal, room, membership, operation).allowed

    # --- Rule tables ---

    def _private(
        self, principal: Principal, room: RoomLike, role: Optional[RoomRole], op: Operation
    ) -> AccessDecision:
        # Owner-governed: administrators must be explicit members to act
        if op in _READ_OPS or op == Operation.LEAVE:
            return _require_member(role)
        if op == Operation.INVITE:
            return _require_role(role, roles.can_invite)
        if op == Operation.EDIT_METADATA:
            return _require_role(role, roles.can_edit_room_metadata)
        if op == Operation.TRANSFER_OWNERSHIP:
            return _require_role(role, roles.can_transfer_ownership)
        return AccessDecision.deny(ResultCode.FORBIDDEN, role)

    def _public(
        self, principal: Principal, room: RoomLike, role: Optional[RoomRole], op: Operation
    ) -> AccessDecision:
        visible = (
            principal.is_admin
            or room.department is None
            or room.department == principal.department
        )
        if not visible:
            return AccessDecision.deny(ResultCode.FORBIDDEN, role)

        if op in (Operation.READ, Operation.JOIN):
            return AccessDecision.allow(role)
        if op in (Operation.POST_MESSAGE, Operation.LEAVE):
            return _require_member(role)
        if op == Operation.EDIT_METADATA:
            if principal.is_admin:
                return AccessDecision.allow(role)
            return _require_role(role, roles.can_edit_room_metadata)
        if op == Operation.INVITE:
            if principal.is_admin:
                return AccessDecision.allow(role)
            return _require_role(role, roles.can_invite)
        if op == Operation.TRANSFER_OWNERSHIP:
            return _require_role(role, roles.can_transfer_ownership)
        return AccessDecision.deny(ResultCode.FORBIDDEN, role)

    def _ticket(
        self, principal: Principal, room: RoomLike, role: Optional[RoomRole], op: Operation
    ) -> AccessDecision:
        if principal.is_external_customer:
            # Customers only ever see their own ticket; no override applies
            if op in _READ_OPS:
                return _require_member(role)
            return AccessDecision.deny(ResultCode.FORBIDDEN, role)

        if op in _READ_OPS:
            if principal.is_admin:
                return AccessDecision.allow(role)
            return _require_member(role)
        if op == Operation.LEAVE:
            return _require_member(role)
        if op == Operation.TRANSFER_OWNERSHIP:
            if principal.is_admin:
                return AccessDecision.allow(role)
            return AccessDecision.deny(ResultCode.FORBIDDEN, role)
        if op == Operation.EDIT_METADATA:
            if principal.is_admin:
                return AccessDecision.allow(role)
            return _require_role(role, roles.can_edit_room_metadata)
        if op == Operation.INVITE:
            return _require_role(role, roles.can_invite)
        # JOIN: membership comes from ticket creation or assignment only
        return AccessDecision.deny(ResultCode.FORBIDDEN, role)

    def _dm(
        self, principal: Principal, room: RoomLike, role: Optional[RoomRole], op: Operation
    ) -> AccessDecision:
        if op in _READ_OPS:
            return _require_member(role)
        return AccessDecision.deny(ResultCode.FORBIDDEN, role)


engine = AccessPolicyEngine()
