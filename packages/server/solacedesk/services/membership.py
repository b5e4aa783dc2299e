"""
Membership lifecycle: join, leave, invite, role changes, ownership transfer
and member removal.

Every operation is one Store transaction. The room row is locked before any
count-then-act step so that two owners leaving at once cannot strand a room,
and a uniqueness conflict from a concurrent join is reported as the
idempotent ALREADY_MEMBER outcome.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError

from solacedesk.core import roles
from solacedesk.core.identity import build_principal
from solacedesk.core.store import StoreTransaction
from solacedesk.services.base import Effect, RoomService, membership_view
from solacedesk_shared.schemas.access import (
    LifecycleResult,
    Operation,
    Principal,
    ResultCode,
)
from solacedesk_shared.schemas.common import RoomRole, RoomType, UserRole

log = structlog.get_logger()

Outcome = tuple[LifecycleResult, Optional[Effect]]


def _denied(decision) -> LifecycleResult:
    return LifecycleResult.failure(decision.reason_code)


class MembershipLifecycle(RoomService):
    """Transactional membership mutations for a single room."""

    # --- join / leave ---

    async def join(self, principal: Principal, room_id: uuid.UUID) -> LifecycleResult:
        async def work(tx: StoreTransaction) -> Outcome:
            room = await tx.get_room(room_id, for_update=True)
            if room is None:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND), None
            actor = await self._current(tx, principal)
            if actor is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None

            existing = await tx.get_membership(actor.id, room.id)
            decision = self.policy.evaluate(actor, room, existing, Operation.JOIN)
            if not decision.allowed:
                return _denied(decision), None
            if room.type != RoomType.PUBLIC:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Only public rooms can be joined"), None

            if existing is not None:
                return LifecycleResult.success(
                    ResultCode.ALREADY_MEMBER, membership=membership_view(existing), room_id=room.id
                ), None

            membership = await tx.add_membership(actor.id, room.id, RoomRole.MEMBER)
            log.info("membership.joined", room_id=str(room.id), user_id=str(actor.id))
            return (
                LifecycleResult.success(
                    ResultCode.JOINED, membership=membership_view(membership), room_id=room.id
                ),
                Effect(
                    "member.join",
                    room.id,
                    metadata={"user_id": str(actor.id)},
                    event_type="member.joined",
                ),
            )

        try:
            result, effect = await self.store.with_transaction(work)
        except IntegrityError:
            # Lost a race with a concurrent join for the same (user, room)
            log.info("membership.join_conflict", room_id=str(room_id), user_id=str(principal.id))
            return await self._already_member(principal.id, room_id)

        await self._emit(principal.id, effect)
        return result

    async def _already_member(self, user_id: uuid.UUID, room_id: uuid.UUID) -> LifecycleResult:
        async def work(tx: StoreTransaction) -> LifecycleResult:
            membership = await tx.get_membership(user_id, room_id)
            return LifecycleResult.success(
                ResultCode.ALREADY_MEMBER, membership=membership_view(membership), room_id=room_id
            )

        return await self.store.with_transaction(work)

    async def leave(self, principal: Principal, room_id: uuid.UUID) -> LifecycleResult:
        async def work(tx: StoreTransaction) -> Outcome:
            room = await tx.get_room(room_id, for_update=True)
            if room is None:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND), None
            actor = await self._current(tx, principal)
            if actor is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None

            membership = await tx.get_membership(actor.id, room.id)
            if membership is None:
                return LifecycleResult.failure(ResultCode.NOT_MEMBER), None
            if room.type == RoomType.DM:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Direct messages cannot be left"), None

            # Visibility rules do not apply: a member can always walk out.
            if room.type == RoomType.TICKET and actor.is_external_customer:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Customers cannot abandon a ticket"), None

            if membership.role == RoomRole.OWNER:
                owners = await tx.count_by_role(room.id, RoomRole.OWNER)
                total = await tx.count(room.id)
                if owners == 1 and total > 1:
                    return LifecycleResult.failure(
                        ResultCode.CANNOT_LEAVE,
                        "Transfer ownership or remove other members before leaving",
                    ), None

            previous_role = membership.role
            await tx.delete_membership(membership)
            log.info("membership.left", room_id=str(room.id), user_id=str(actor.id), role=previous_role.value)
            return (
                LifecycleResult.success(ResultCode.LEFT, room_id=room.id),
                Effect(
                    "member.leave",
                    room.id,
                    metadata={"user_id": str(actor.id), "role": previous_role.value},
                    event_type="member.left",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(principal.id, effect)
        return result

    # --- invite ---

    async def invite(
        self,
        actor: Principal,
        target_user_id: uuid.UUID,
        room_id: uuid.UUID,
        role: RoomRole = RoomRole.MEMBER,
    ) -> LifecycleResult:
        """Add another user to a room with ``role`` (MEMBER or MODERATOR)."""
        role = RoomRole(role)

        async def work(tx: StoreTransaction) -> Outcome:
            room = await tx.get_room(room_id, for_update=True)
            if room is None:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND), None
            inviter = await self._current(tx, actor)
            if inviter is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None
            if role == RoomRole.OWNER:
                return LifecycleResult.failure(
                    ResultCode.INVALID_REQUEST, "Ownership is granted by transfer, not invite"
                ), None

            inviter_membership = await tx.get_membership(inviter.id, room.id)
            decision = self.policy.evaluate(inviter, room, inviter_membership, Operation.INVITE)
            if not decision.allowed:
                return _denied(decision), None

            target = await tx.get_user(target_user_id)
            if target is None:
                return LifecycleResult.failure(ResultCode.NOT_FOUND, "Invited user not found"), None
            target_principal = await build_principal(target, tx)
            if target_principal.is_external_customer and room.type != RoomType.TICKET:
                return LifecycleResult.failure(ResultCode.EXTERNAL_FORBIDDEN), None

            if await tx.get_membership(target.id, room.id) is not None:
                return LifecycleResult.failure(ResultCode.ALREADY_MEMBER), None

            membership = await tx.add_membership(target.id, room.id, role)
            log.info(
                "membership.invited",
                room_id=str(room.id),
                user_id=str(target.id),
                invited_by=str(inviter.id),
                role=role.value,
            )
            return (
                LifecycleResult.success(
                    ResultCode.INVITED, membership=membership_view(membership), room_id=room.id
                ),
                Effect(
                    "member.invite",
                    room.id,
                    target_type="user",
                    target_id=str(target.id),
                    metadata={"room_id": str(room.id), "user_id": str(target.id), "role": role.value},
                    event_type="member.invited",
                ),
            )

        try:
            result, effect = await self.store.with_transaction(work)
        except IntegrityError:
            log.info("membership.invite_conflict", room_id=str(room_id), user_id=str(target_user_id))
            return LifecycleResult.failure(ResultCode.ALREADY_MEMBER)

        await self._emit(actor.id, effect)
        return result

    # --- roles ---

    async def change_role(
        self,
        actor: Principal,
        target_user_id: uuid.UUID,
        room_id: uuid.UUID,
        new_role: RoomRole,
    ) -> LifecycleResult:
        """Promote or demote a member. Only an OWNER may change roles."""
        new_role = RoomRole(new_role)

        async def work(tx: StoreTransaction) -> Outcome:
            room, owner, denial = await self._owner_context(tx, actor, room_id)
            if denial is not None:
                return denial, None

            target = await tx.get_membership(target_user_id, room.id)
            if target is None:
                return LifecycleResult.failure(ResultCode.NOT_FOUND, "Target is not a member"), None
            if target.role == new_role:
                return LifecycleResult.success(
                    ResultCode.ROLE_CHANGED, membership=membership_view(target), room_id=room.id
                ), None

            if target.role == RoomRole.OWNER and new_role != RoomRole.OWNER:
                if await tx.count_by_role(room.id, RoomRole.OWNER) == 1:
                    return LifecycleResult.failure(
                        ResultCode.INVALID_REQUEST, "Transfer ownership before demoting the last owner"
                    ), None

            old_role = target.role
            await tx.set_role(target, new_role)
            log.info(
                "membership.role_changed",
                room_id=str(room.id),
                user_id=str(target_user_id),
                old_role=old_role.value,
                new_role=new_role.value,
            )
            return (
                LifecycleResult.success(
                    ResultCode.ROLE_CHANGED, membership=membership_view(target), room_id=room.id
                ),
                Effect(
                    "member.role_change",
                    room.id,
                    target_type="user",
                    target_id=str(target_user_id),
                    metadata={
                        "room_id": str(room.id),
                        "old_role": old_role.value,
                        "new_role": new_role.value,
                    },
                    event_type="member.role_changed",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(actor.id, effect)
        return result

    async def transfer_ownership(
        self, actor: Principal, new_owner_id: uuid.UUID, room_id: uuid.UUID
    ) -> LifecycleResult:
        """Demote the acting owner to MODERATOR and promote ``new_owner_id`` to OWNER."""
        if new_owner_id == actor.id:
            return LifecycleResult.failure(ResultCode.INVALID_REQUEST, "Cannot transfer ownership to yourself")

        async def work(tx: StoreTransaction) -> Outcome:
            room = await tx.get_room(room_id, for_update=True)
            if room is None:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND), None
            current = await self._current(tx, actor)
            if current is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None

            actor_membership = await tx.get_membership(current.id, room.id)
            decision = self.policy.evaluate(current, room, actor_membership, Operation.TRANSFER_OWNERSHIP)
            if not decision.allowed:
                return _denied(decision), None
            if actor_membership is None or actor_membership.role != RoomRole.OWNER:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Only the owner can transfer ownership"), None

            target = await tx.get_membership(new_owner_id, room.id)
            if target is None:
                return LifecycleResult.failure(ResultCode.NOT_FOUND, "New owner must already be a member"), None

            await tx.set_role(actor_membership, RoomRole.MODERATOR)
            await tx.set_role(target, RoomRole.OWNER)
            log.info(
                "membership.ownership_transferred",
                room_id=str(room.id),
                from_user=str(current.id),
                to_user=str(new_owner_id),
            )
            return (
                LifecycleResult.success(
                    ResultCode.OWNERSHIP_TRANSFERRED, membership=membership_view(target), room_id=room.id
                ),
                Effect(
                    "ownership.transfer",
                    room.id,
                    metadata={"from_user_id": str(current.id), "to_user_id": str(new_owner_id)},
                    event_type="ownership.transferred",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(actor.id, effect)
        return result

    async def remove_member(
        self, actor: Principal, target_user_id: uuid.UUID, room_id: uuid.UUID
    ) -> LifecycleResult:
        """Owner-initiated removal of another member."""
        if target_user_id == actor.id:
            return LifecycleResult.failure(ResultCode.INVALID_REQUEST, "Use leave to remove yourself")

        async def work(tx: StoreTransaction) -> Outcome:
            room, owner, denial = await self._owner_context(tx, actor, room_id)
            if denial is not None:
                return denial, None

            target = await tx.get_membership(target_user_id, room.id)
            if target is None:
                return LifecycleResult.failure(ResultCode.NOT_FOUND, "Target is not a member"), None

            removed_role = target.role
            await tx.delete_membership(target)
            log.info(
                "membership.removed",
                room_id=str(room.id),
                user_id=str(target_user_id),
                removed_by=str(owner.id),
            )
            return (
                LifecycleResult.success(ResultCode.MEMBER_REMOVED, room_id=room.id),
                Effect(
                    "member.remove",
                    room.id,
                    target_type="user",
                    target_id=str(target_user_id),
                    metadata={"room_id": str(room.id), "role": removed_role.value},
                    event_type="member.removed",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(actor.id, effect)
        return result

    async def _owner_context(self, tx: StoreTransaction, actor: Principal, room_id: uuid.UUID):
        """Load and lock the room and check the actor owns it.

        Returns ``(room, actor, None)`` on success or ``(None, None, denial)``.
        """
        room = await tx.get_room(room_id, for_update=True)
        if room is None:
            return None, None, LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND)
        current = await self._current(tx, actor)
        if current is None:
            return None, None, LifecycleResult.failure(ResultCode.USER_NOT_FOUND)
        if room.type == RoomType.DM:
            return None, None, LifecycleResult.failure(ResultCode.FORBIDDEN, "Direct message membership is fixed")
        if current.is_external_customer and room.type != RoomType.TICKET:
            return None, None, LifecycleResult.failure(ResultCode.EXTERNAL_FORBIDDEN)
        if current.role == UserRole.DEMO_OBSERVER:
            return None, None, LifecycleResult.failure(ResultCode.FORBIDDEN)

        membership = await tx.get_membership(current.id, room.id)
        if membership is None:
            return None, None, LifecycleResult.failure(ResultCode.NOT_MEMBER)
        if not roles.can_change_roles(membership.role):
            return None, None, LifecycleResult.failure(ResultCode.FORBIDDEN, "Only the owner can manage members")
        return room, current, None
