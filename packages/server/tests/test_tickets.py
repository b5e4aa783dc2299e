"""
Integration tests for the ticket workflow.

Tests cover:
- Assignment handoff (previous owner kept as MODERATOR)
- Assignee eligibility and admin-only access
- Ticket opening and default admin routing
- Status changes never affecting access
"""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from solacedesk.services.rooms import RoomDirectory
from solacedesk.services.tickets import TicketAssignmentWorkflow
from solacedesk_shared.schemas.access import Operation, ResultCode
from solacedesk_shared.schemas.common import Department, RoomRole, RoomType, TicketStatus, UserRole
from solacedesk_shared.schemas.rooms import TicketOpenRequest, TicketStatusRequest


@pytest.fixture
def workflow(store, audit):
    return TicketAssignmentWorkflow(store, audit=audit)


@pytest.fixture
def directory(store):
    return RoomDirectory(store)


@pytest.fixture
async def ticket_world(seed):
    """TICKET room r1 with {customer: MEMBER, agent1: OWNER}, plus agent2 and an admin."""
    admin = await seed.user(UserRole.ADMIN, name="admin")
    agent1 = await seed.user(department=Department.IT_SUPPORT, name="agent1")
    agent2 = await seed.user(department=Department.BILLING, name="agent2")
    customer = await seed.user(name="customer")
    r1 = await seed.room(
        RoomType.TICKET,
        status=TicketStatus.OPEN,
        members=[(customer, RoomRole.MEMBER), (agent1, RoomRole.OWNER)],
    )
    return {"admin": admin, "agent1": agent1, "agent2": agent2, "customer": customer, "r1": r1}


class TestAssignTicket:
    @pytest.mark.asyncio
    async def test_reassignment_handoff(self, workflow, directory, seed, audit, ticket_world):
        w = ticket_world
        customer_p = await seed.principal(w["customer"])
        before = await directory.describe_access(customer_p, w["r1"].id)
        assert before.allowed

        result = await workflow.assign_ticket(await seed.principal(w["admin"]), w["agent2"].id, w["r1"].id)

        assert result.ok and result.code == ResultCode.TICKET_ASSIGNED
        assert await seed.roles(w["r1"].id) == {
            w["customer"].id: RoomRole.MEMBER,
            w["agent1"].id: RoomRole.MODERATOR,
            w["agent2"].id: RoomRole.OWNER,
        }
        after = await directory.describe_access(customer_p, w["r1"].id)
        assert after.allowed
        assert after.effective_role == RoomRole.MEMBER

        assert audit.actions() == ["ticket.assign"]
        meta = audit.records[0]["metadata"]
        assert meta["actor_id"] == str(w["admin"].id)
        assert meta["target_id"] == str(w["agent2"].id)
        assert meta["room_id"] == str(w["r1"].id)
        assert meta["previous_owner_id"] == str(w["agent1"].id)

    @pytest.mark.asyncio
    async def test_promotes_existing_moderator(self, workflow, seed, ticket_world):
        w = ticket_world
        await workflow.assign_ticket(await seed.principal(w["admin"]), w["agent2"].id, w["r1"].id)

        # Hand the ticket back to agent1, who is now a MODERATOR
        result = await workflow.assign_ticket(await seed.principal(w["admin"]), w["agent1"].id, w["r1"].id)

        assert result.code == ResultCode.TICKET_ASSIGNED
        roles = await seed.roles(w["r1"].id)
        assert roles[w["agent1"].id] == RoomRole.OWNER
        assert roles[w["agent2"].id] == RoomRole.MODERATOR
        assert len(roles) == 3

    @pytest.mark.asyncio
    async def test_current_owner_is_noop(self, workflow, seed, audit, ticket_world):
        w = ticket_world
        result = await workflow.assign_ticket(await seed.principal(w["admin"]), w["agent1"].id, w["r1"].id)

        assert result.ok
        assert (await seed.roles(w["r1"].id))[w["agent1"].id] == RoomRole.OWNER
        assert audit.records == []

    @pytest.mark.asyncio
    async def test_admin_only(self, workflow, seed, ticket_world):
        w = ticket_world
        result = await workflow.assign_ticket(await seed.principal(w["agent1"]), w["agent2"].id, w["r1"].id)
        assert result.code == ResultCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_unknown_assignee(self, workflow, seed, ticket_world):
        w = ticket_world
        result = await workflow.assign_ticket(await seed.principal(w["admin"]), uuid.uuid4(), w["r1"].id)
        assert result.code == ResultCode.INVALID_ASSIGNEE

    @pytest.mark.asyncio
    async def test_external_customer_not_assignable(self, workflow, seed, ticket_world):
        w = ticket_world
        result = await workflow.assign_ticket(await seed.principal(w["admin"]), w["customer"].id, w["r1"].id)
        assert result.code == ResultCode.INVALID_ASSIGNEE
        assert (await seed.roles(w["r1"].id))[w["customer"].id] == RoomRole.MEMBER

    @pytest.mark.asyncio
    async def test_non_ticket_room(self, workflow, seed, ticket_world):
        w = ticket_world
        room = await seed.room(RoomType.PRIVATE, members=[(w["agent1"], RoomRole.OWNER)])
        result = await workflow.assign_ticket(await seed.principal(w["admin"]), w["agent2"].id, room.id)
        assert result.code == ResultCode.ROOM_NOT_FOUND


class TestOpenTicket:
    @pytest.mark.asyncio
    async def test_customer_opens_ticket(self, workflow, seed, audit):
        first_admin = await seed.user(UserRole.ADMIN)
        await seed.user(UserRole.ADMIN)
        customer = await seed.user()
        customer_p = await seed.principal(customer)

        result = await workflow.open_ticket(
            customer_p, TicketOpenRequest(title="Cannot log in", ticket_department=Department.IT_SUPPORT)
        )

        assert result.ok and result.code == ResultCode.TICKET_OPENED
        room = await seed.get_room(result.room_id)
        assert room.type == RoomType.TICKET
        assert room.status == TicketStatus.OPEN
        assert room.is_private is True
        assert room.ticket_department == Department.IT_SUPPORT
        assert await seed.roles(room.id) == {customer.id: RoomRole.MEMBER, first_admin.id: RoomRole.OWNER}
        assert audit.actions() == ["ticket.open"]

        # A ticket membership does not make the customer internal
        assert (await seed.principal(customer)).is_external_customer

    @pytest.mark.asyncio
    async def test_explicit_assignee_must_be_admin(self, workflow, seed):
        await seed.user(UserRole.ADMIN)
        agent = await seed.user(department=Department.IT_SUPPORT)
        customer = await seed.user()

        result = await workflow.open_ticket(
            await seed.principal(customer), TicketOpenRequest(title="Billing", assignee_id=agent.id)
        )

        assert result.code == ResultCode.INVALID_ASSIGNEE

    @pytest.mark.asyncio
    async def test_no_admin_available(self, workflow, seed):
        customer = await seed.user()
        result = await workflow.open_ticket(await seed.principal(customer), TicketOpenRequest(title="Help"))
        assert result.code == ResultCode.INVALID_ASSIGNEE

    @pytest.mark.asyncio
    async def test_demo_observer_cannot_open(self, workflow, seed):
        await seed.user(UserRole.ADMIN)
        observer = await seed.user(UserRole.DEMO_OBSERVER)
        result = await workflow.open_ticket(await seed.principal(observer), TicketOpenRequest(title="Hi"))
        assert result.code == ResultCode.FORBIDDEN


class TestTicketStatus:
    @pytest.mark.asyncio
    async def test_admin_sets_any_status(self, workflow, seed, audit, ticket_world):
        w = ticket_world
        admin_p = await seed.principal(w["admin"])

        resolved = await workflow.set_ticket_status(
            admin_p, w["r1"].id, TicketStatusRequest(status=TicketStatus.RESOLVED)
        )
        reopened = await workflow.set_ticket_status(admin_p, w["r1"].id, TicketStatusRequest(status="OPEN"))

        assert resolved.code == ResultCode.STATUS_CHANGED
        assert reopened.code == ResultCode.STATUS_CHANGED
        assert (await seed.get_room(w["r1"].id)).status == TicketStatus.OPEN
        assert audit.actions() == ["ticket.status.change", "ticket.status.change"]
        assert audit.records[0]["metadata"]["old_status"] == "OPEN"
        assert audit.records[0]["metadata"]["new_status"] == "RESOLVED"

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, workflow, seed, ticket_world):
        w = ticket_world
        result = await workflow.set_ticket_status(
            await seed.principal(w["agent1"]), w["r1"].id, TicketStatusRequest(status=TicketStatus.WAITING)
        )
        assert result.code == ResultCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_resolved_ticket_still_readable(self, workflow, directory, seed, ticket_world):
        w = ticket_world
        await workflow.set_ticket_status(
            await seed.principal(w["admin"]), w["r1"].id, TicketStatusRequest(status=TicketStatus.RESOLVED)
        )

        decision = await directory.describe_access(
            await seed.principal(w["customer"]), w["r1"].id, Operation.POST_MESSAGE
        )

        assert decision.allowed

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            TicketStatusRequest(status="CLOSED")
