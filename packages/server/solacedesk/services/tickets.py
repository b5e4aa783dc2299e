"""
Ticket workflow: opening support tickets, assigning the responsible admin
and moving a ticket through its status values.

Assignment keeps the previous owner in the room as MODERATOR so that the
handoff preserves their read access and the conversation history.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from solacedesk.core.identity import build_principal
from solacedesk.core.store import StoreTransaction
from solacedesk.models.room import Room
from solacedesk.services.base import Effect, RoomService, membership_view
from solacedesk_shared.schemas.access import LifecycleResult, Principal, ResultCode
from solacedesk_shared.schemas.common import RoomRole, RoomType, TicketStatus, UserRole
from solacedesk_shared.schemas.rooms import TicketOpenRequest, TicketStatusRequest

log = structlog.get_logger()

Outcome = tuple[LifecycleResult, Optional[Effect]]


def _ticket_name() -> str:
    return f"ticket-{uuid.uuid4().hex[:12]}"


class TicketAssignmentWorkflow(RoomService):
    """Admin-driven ownership of TICKET rooms."""

    async def assign_ticket(
        self, actor: Principal, target_user_id: uuid.UUID, room_id: uuid.UUID
    ) -> LifecycleResult:
        async def work(tx: StoreTransaction) -> Outcome:
            admin = await self._current(tx, actor)
            if admin is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None
            if not admin.is_admin:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Admin access required"), None

            room = await tx.get_room(room_id, for_update=True)
            if room is None or room.type != RoomType.TICKET:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND, "Ticket not found"), None

            target_user = await tx.get_user(target_user_id)
            if target_user is None:
                return LifecycleResult.failure(ResultCode.INVALID_ASSIGNEE, "Assignee not found"), None
            target = await build_principal(target_user, tx)
            if target.is_external_customer:
                return LifecycleResult.failure(
                    ResultCode.INVALID_ASSIGNEE, "External customers cannot own tickets"
                ), None

            membership = await tx.get_membership(target.id, room.id)
            if membership is not None and membership.role == RoomRole.OWNER:
                return LifecycleResult.success(
                    ResultCode.TICKET_ASSIGNED, membership=membership_view(membership), room_id=room.id
                ), None

            if membership is None:
                membership = await tx.add_membership(target.id, room.id, RoomRole.MEMBER)

            previous_owner_id = None
            for owner in await tx.list_members(room.id, RoomRole.OWNER):
                if owner.user_id == target.id:
                    continue
                if previous_owner_id is None:
                    previous_owner_id = owner.user_id
                await tx.set_role(owner, RoomRole.MODERATOR)
            await tx.set_role(membership, RoomRole.OWNER)

            log.info(
                "ticket.assigned",
                room_id=str(room.id),
                assignee=str(target.id),
                previous_owner=str(previous_owner_id) if previous_owner_id else None,
            )
            return (
                LifecycleResult.success(
                    ResultCode.TICKET_ASSIGNED, membership=membership_view(membership), room_id=room.id
                ),
                Effect(
                    "ticket.assign",
                    room.id,
                    metadata={
                        "actor_id": str(admin.id),
                        "target_id": str(target.id),
                        "room_id": str(room.id),
                        "previous_owner_id": str(previous_owner_id) if previous_owner_id else None,
                    },
                    event_type="ticket.assigned",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(actor.id, effect)
        return result

    async def open_ticket(self, customer: Principal, req: TicketOpenRequest) -> LifecycleResult:
        """Open a TICKET room owned by an admin with the customer as MEMBER.

        The owner is ``req.assignee_id`` when given (it must be an admin),
        otherwise the longest-standing admin.
        """

        async def work(tx: StoreTransaction) -> Outcome:
            opener = await self._current(tx, customer)
            if opener is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None
            if opener.role == UserRole.DEMO_OBSERVER:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Demo accounts are read-only"), None

            if req.assignee_id is not None:
                assignee = await tx.get_user(req.assignee_id)
                if assignee is None or assignee.role != UserRole.ADMIN:
                    return LifecycleResult.failure(
                        ResultCode.INVALID_ASSIGNEE, "Assignee must be an admin"
                    ), None
            else:
                assignee = await tx.oldest_admin()
                if assignee is None:
                    return LifecycleResult.failure(
                        ResultCode.INVALID_ASSIGNEE, "No admin available to assign ticket"
                    ), None

            room = await tx.add_room(
                Room(
                    name=_ticket_name(),
                    title=req.title,
                    description=req.description,
                    type=RoomType.TICKET,
                    is_private=True,
                    ticket_department=req.ticket_department,
                    status=TicketStatus.OPEN,
                    creator_id=opener.id,
                )
            )
            if assignee.id == opener.id:
                membership = await tx.add_membership(opener.id, room.id, RoomRole.OWNER)
            else:
                membership = await tx.add_membership(opener.id, room.id, RoomRole.MEMBER)
                await tx.add_membership(assignee.id, room.id, RoomRole.OWNER)

            log.info("ticket.opened", room_id=str(room.id), customer=str(opener.id), assignee=str(assignee.id))
            return (
                LifecycleResult.success(
                    ResultCode.TICKET_OPENED, membership=membership_view(membership), room_id=room.id
                ),
                Effect(
                    "ticket.open",
                    room.id,
                    metadata={
                        "title": room.title,
                        "customer_id": str(opener.id),
                        "assignee_id": str(assignee.id),
                    },
                    event_type="ticket.opened",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(customer.id, effect)
        return result

    async def set_ticket_status(
        self, actor: Principal, room_id: uuid.UUID, req: TicketStatusRequest
    ) -> LifecycleResult:
        """Admins may move a ticket to any status; status never gates access."""
        status = req.status

        async def work(tx: StoreTransaction) -> Outcome:
            admin = await self._current(tx, actor)
            if admin is None:
                return LifecycleResult.failure(ResultCode.USER_NOT_FOUND), None
            if not admin.is_admin:
                return LifecycleResult.failure(ResultCode.FORBIDDEN, "Admin access required"), None

            room = await tx.get_room(room_id, for_update=True)
            if room is None or room.type != RoomType.TICKET:
                return LifecycleResult.failure(ResultCode.ROOM_NOT_FOUND, "Ticket not found"), None

            old_status = room.status
            room.status = status
            await tx.save_room(room)
            log.info(
                "ticket.status_changed",
                room_id=str(room.id),
                old_status=old_status.value if old_status else None,
                new_status=status.value,
            )
            return (
                LifecycleResult.success(ResultCode.STATUS_CHANGED, room_id=room.id),
                Effect(
                    "ticket.status.change",
                    room.id,
                    metadata={
                        "old_status": old_status.value if old_status else None,
                        "new_status": status.value,
                        "ticket_title": room.title,
                    },
                    event_type="ticket.status_changed",
                ),
            )

        result, effect = await self.store.with_transaction(work)
        await self._emit(actor.id, effect)
        return result
