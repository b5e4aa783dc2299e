"""
Shared fixtures: a temporary SQLite database per test plus seeding helpers.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, Optional

import pytest
from sqlmodel import select

from solacedesk.core.database import build_engine, build_session_factory, init_db
from solacedesk.core.identity import resolve_principal
from solacedesk.core.store import RoomStore
from solacedesk.models.room import Room
from solacedesk.models.room_member import RoomMember
from solacedesk.models.user import User
from solacedesk_shared.schemas.access import Principal
from solacedesk_shared.schemas.common import Department, RoomRole, RoomType, TicketStatus, UserRole


class RecordingAuditSink:
    def __init__(self):
        self.records: list[dict[str, Any]] = []

    async def record(self, action, actor_id, target_type, target_id, metadata=None):
        self.records.append(
            {
                "action": action,
                "actor_id": actor_id,
                "target_type": target_type,
                "target_id": target_id,
                "metadata": metadata or {},
            }
        )

    def actions(self) -> list[str]:
        return [r["action"] for r in self.records]


class FailingAuditSink:
    async def record(self, action, actor_id, target_type, target_id, metadata=None):
        raise RuntimeError("audit store unavailable")


class Seeder:
    """Writes users, rooms and memberships directly, bypassing the services."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def user(
        self,
        role: UserRole = UserRole.USER,
        department: Optional[Department] = None,
        name: Optional[str] = None,
    ) -> User:
        user = User(role=role, department=department, name=name, email=f"{uuid.uuid4().hex[:8]}@example.com")
        async with self.session_factory() as session:
            async with session.begin():
                session.add(user)
        return user

    async def room(
        self,
        type: RoomType = RoomType.PUBLIC,
        department: Optional[Department] = None,
        members: Iterable[tuple[User, RoomRole]] = (),
        status: Optional[TicketStatus] = None,
        is_private: Optional[bool] = None,
    ) -> Room:
        room = Room(
            name=f"room-{uuid.uuid4().hex[:10]}",
            title="Test room",
            type=type,
            is_private=(type != RoomType.PUBLIC) if is_private is None else is_private,
            department=department,
            status=status,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(room)
                await session.flush()
                for user, role in members:
                    session.add(RoomMember(user_id=user.id, room_id=room.id, role=role))
        return room

    async def roles(self, room_id: uuid.UUID) -> dict[uuid.UUID, RoomRole]:
        async with self.session_factory() as session:
            result = await session.execute(select(RoomMember).where(RoomMember.room_id == room_id))
            return {m.user_id: m.role for m in result.scalars().all()}

    async def get_room(self, room_id: uuid.UUID) -> Optional[Room]:
        async with self.session_factory() as session:
            result = await session.execute(select(Room).where(Room.id == room_id))
            return result.scalar_one_or_none()

    async def principal(self, user: User) -> Principal:
        store = RoomStore(self.session_factory, retries=1)
        return await store.with_transaction(lambda tx: resolve_principal(user.id, tx))


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rooms.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return RoomStore(session_factory, retries=3)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def audit():
    return RecordingAuditSink()
