"""
Room service: creation, metadata edits, admin deletion and visibility
listings.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError

from solacedesk.core.store import StoreTransaction
from solacedesk.models.base import utcnow
from solacedesk.models.room import Room
from solacedesk.services.base import Effect, RoomService, membership_view
from solacedesk_shared.schemas.access import (
    AccessDecision,
    LifecycleResult,
    Operation,
    Principal,
    ResultCode,
)
from solacedesk_shared.schemas.common import RoomRole, RoomType, UserRole
from solacedesk_shared.schemas.rooms import RoomCreateRequest, RoomSummary, RoomUpdateRequest

log = structlog.get_logger()

Outcome = tuple[LifecycleResult, Optional[Effect]]


class RoomDirectory(RoomService):
    """Room-level operations that sit beside the membership lifecycle."""

    async def create_room(self, principal: Principal, req: RoomCreateRequest) -> LifecycleResult:
        """Create a PUBLIC or PRIVATE room.

        The creator owns a PRIVATE room and joins a PUBLIC room as MEMBER.
        """

        async def work(tx: StoreTransaction) -> Outcome:
            creator = await self._current(tx, principal)
            if creator is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None
            if creator.is_external_customer or creator.role == UserRole.DEMO_OBSERVER:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Cannot create rooms"), None
            if req.type == RoomType.DM:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Direct messages are disabled"), None
            if req.type == RoomType.TICKET:
                return LifecycleResult.failure(
                    ResultCode.INVALID_REQUEST, "Tickets are opened through the ticket workflow"
                ), None
            if await tx.get_room_by_name(req.name) is not None:
                return LifecycleResult.failure(ResultCode.INVALID_REQUEST, "Room name already taken"), None

            room = await tx.add_room(
                Room(
                    name=req.name,
                    title=req.title,
                    description=req.description,
                    type=req.type,
                    is_private=req.type != RoomType.PUBLIC,
                    department=req.department if req.type == RoomType.PUBLIC else None,
                    creator_id=creator.id,
                )
            )
            creator_role = RoomRole.OWNER if req.type == RoomType.PRIVATE else RoomRole.MEMBER
            membership = await tx.add_membership(creator.id, room.id, creator_role)

            log.info("room.created", room_id=str(room.id), name=room.name, type=room.type.value)
            return (
                LifecycleResult.success(
                    ResultCode.ROOM_CREATED, membership=membership_view(membership), room_id=room.id
                ),
                Effect(
                    "room.create",
                    room.id,
                    metadata={"name": room.name, "type": room.type.value},
                    event_type="room.created",
                ),
            )

        try:
            result, effect = await self.store.with_transaction(work)
        except IntegrityError:
            log.info("room.name_conflict", name=req.name)
            return LifecycleResult.failure(ResultCode.INVALID_REQUEST, "Room name already taken")

        await self._emit(principal.id, effect)
        return result

    async def update_metadata(
        self, principal: Principal, room_id: uuid.UUID, req: RoomUpdateRequest
    ) -> LifecycleResult:
        async def work(tx: StoreTransaction) -> Outcome:
            room = await tx.get_room(room_id, for_update=True)
            if room is None:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND), None
            editor = await self._current(tx, principal)
            if editor is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None

            membership = await tx.get_membership(editor.id, room.id)
            decision = self.policy.evaluate(editor, room, membership, Operation.EDIT_METADATA)
            if not decision.allowed:
                return LifecycleResult.failure(decision.reason_code), None

            changes = {}
            for field_name in ("title", "description"):
                new_value = getattr(req, field_name)
                old_value = getattr(room, field_name)
                if new_value is not None and new_value != old_value:
                    changes[field_name] = {"old": old_value, "new": new_value}
                    setattr(room, field_name, new_value)

            if not changes:
                return LifecycleResult.success(ResultCode.ROOM_UPDATED, room_id=room.id), None

            room.updated_at = utcnow()
            await tx.save_room(room)
            log.info("room.updated", room_id=str(room.id), fields=sorted(changes))
            return (
                LifecycleResult.success(ResultCode.ROOM_UPDATED, room_id=room.id),
                Effect("room.edit", room.id, metadata={"changes": changes}, event_type="room.updated"),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(principal.id, effect)
        return result

    async def delete_room(self, principal: Principal, room_id: uuid.UUID) -> LifecycleResult:
        """Admin-only; removes every membership regardless of leave protection."""

        async def work(tx: StoreTransaction) -> Outcome:
            admin = await self._current(tx, principal)
            if admin is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None
            if not admin.is_admin:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Admin access required"), None

            room = await tx.get_room(room_id, for_update=True)
            if room is None:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND), None

            name, room_type = room.name, room.type
            removed = await tx.delete_room(room)
            log.info("room.deleted", room_id=str(room_id), name=name, members_removed=removed)
            return (
                LifecycleResult.success(ResultCode.ROOM_DELETED, room_id=room_id),
                Effect(
                    "room.delete",
                    room_id,
                    metadata={"name": name, "type": room_type.value, "members_removed": removed},
                    event_type="room.deleted",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(principal.id, effect)
        return result

    async def list_visible_rooms(self, principal: Principal) -> list[RoomSummary]:
        """Every room the principal may READ, with their role in it."""

        async def work(tx: StoreTransaction) -> list[RoomSummary]:
            viewer = await self._current(tx, principal)
            if viewer is None:
                return []
            memberships = await tx.memberships_for_user(viewer.id)
            summaries = []
            for room in await tx.list_rooms():
                membership = memberships.get(room.id)
                if not self.policy.is_allowed(viewer, room, membership, Operation.READ):
                    continue
                summaries.append(
                    RoomSummary(
                        id=room.id,
                        name=room.name,
                        title=room.title,
                        type=room.type,
                        department=room.department,
                        status=room.status,
                        created_at=room.created_at,
                        role=membership.role if membership else None,
                        is_member=membership is not None,
                    )
                )
            return summaries

        return await self.store.with_transaction(work)

    async def describe_access(
        self, principal: Principal, room_id: uuid.UUID, operation: Operation = Operation.READ
    ) -> AccessDecision:
        """Load the room and the caller's membership and evaluate ``operation``."""

        async def work(tx: StoreTransaction) -> AccessDecision:
            room = await tx.get_room(room_id)
            if room is None:
                return AccessDecision.deny(ResultCode.ROOM_NOT_FOUND)
            viewer = await self._current(tx, principal)
            if viewer is None:
                return AccessDecision.deny(ResultCode.USER_NOT_FOUND)
            membership = await tx.get_membership(viewer.id, room.id)
            return self.policy.evaluate(viewer, room, membership, operation)

        return await self.store.with_transaction(work)
