"""
Room and membership persistence.

All reads and writes made by the lifecycle services go through a
``StoreTransaction``; ``RoomStore.with_transaction`` runs a unit of work in a
single database transaction, retrying transient faults and rolling back on
any exception so that no mutation is ever observed half-applied.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from solacedesk.core.config import get_settings
from solacedesk.models.room import Room
from solacedesk.models.room_member import RoomMember
from solacedesk.models.user import User
from solacedesk_shared.schemas.common import INTERNAL_ROOM_TYPES, RoomRole, RoomType, UserRole

log = structlog.get_logger()

T = TypeVar("T")


class StoreError(Exception):
    """Unexpected persistence fault (connection loss, exhausted retries)."""


def _check_private_flag(room: Room) -> None:
    expected = room.type != RoomType.PUBLIC
    if room.is_private != expected:
        log.warning(
            "room.is_private_mismatch",
            room_id=str(room.id),
            type=room.type.value,
            is_private=room.is_private,
        )


class StoreTransaction:
    """Query and mutation helpers bound to one open transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Users ---

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def has_internal_membership(self, user_id: uuid.UUID) -> bool:
        """True if the user belongs to any PUBLIC or PRIVATE room."""
        result = await self.session.execute(
            select(RoomMember.room_id)
            .join(Room, Room.id == RoomMember.room_id)
            .where(
                RoomMember.user_id == user_id,
                Room.type.in_(list(INTERNAL_ROOM_TYPES)),
            )
            .limit(1)
        )
        return result.first() is not None

    async def oldest_admin(self) -> Optional[User]:
        result = await self.session.execute(
            select(User)
            .where(User.role == UserRole.ADMIN)
            .order_by(User.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # --- Rooms ---

    async def get_room(self, room_id: uuid.UUID, *, for_update: bool = False) -> Optional[Room]:
        stmt = select(Room).where(Room.id == room_id)
        if for_update:
            # Serializes membership mutations per room (no-op on SQLite)
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        room = result.scalar_one_or_none()
        if room is not None:
            _check_private_flag(room)
        return room

    async def get_room_by_name(self, name: str) -> Optional[Room]:
        result = await self.session.execute(select(Room).where(Room.name == name))
        return result.scalar_one_or_none()

    async def list_rooms(self) -> list[Room]:
        result = await self.session.execute(select(Room).order_by(Room.created_at))
        return list(result.scalars().all())

    async def add_room(self, room: Room) -> Room:
        self.session.add(room)
        await self.session.flush()
        return room

    async def save_room(self, room: Room) -> Room:
        self.session.add(room)
        await self.session.flush()
        return room

    async def delete_room(self, room: Room) -> int:
        """Delete a room and all of its memberships. Returns removed member count."""
        members = await self.list_members(room.id)
        for member in members:
            await self.session.delete(member)
        await self.session.flush()
        await self.session.delete(room)
        await self.session.flush()
        return len(members)

    # --- Memberships ---

    async def get_membership(
        self, user_id: uuid.UUID, room_id: uuid.UUID
    ) -> Optional[RoomMember]:
        result = await self.session.execute(
            select(RoomMember).where(
                RoomMember.user_id == user_id, RoomMember.room_id == room_id
            )
        )
        return result.scalar_one_or_none()

    async def memberships_for_user(self, user_id: uuid.UUID) -> dict[uuid.UUID, RoomMember]:
        result = await self.session.execute(
            select(RoomMember).where(RoomMember.user_id == user_id)
        )
        return {m.room_id: m for m in result.scalars().all()}

    async def list_members(
        self, room_id: uuid.UUID, role: Optional[RoomRole] = None
    ) -> list[RoomMember]:
        stmt = select(RoomMember).where(RoomMember.room_id == room_id)
        if role is not None:
            stmt = stmt.where(RoomMember.role == role)
        result = await self.session.execute(stmt.order_by(RoomMember.joined_at))
        return list(result.scalars().all())

    async def count(self, room_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(RoomMember).where(RoomMember.room_id == room_id)
        )
        return result.scalar_one()

    async def count_by_role(self, room_id: uuid.UUID, role: RoomRole) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RoomMember)
            .where(RoomMember.room_id == room_id, RoomMember.role == role)
        )
        return result.scalar_one()

    async def add_membership(
        self, user_id: uuid.UUID, room_id: uuid.UUID, role: RoomRole = RoomRole.MEMBER
    ) -> RoomMember:
        """Insert a membership row. Raises IntegrityError if one already exists."""
        membership = RoomMember(user_id=user_id, room_id=room_id, role=role)
        self.session.add(membership)
        await self.session.flush()
        return membership

    async def set_role(self, membership: RoomMember, role: RoomRole) -> RoomMember:
        membership.role = role
        self.session.add(membership)
        await self.session.flush()
        return membership

    async def delete_membership(self, membership: RoomMember) -> None:
        await self.session.delete(membership)
        await self.session.flush()


class RoomStore:
    """Transactional access to rooms and memberships."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        retries: int | None = None,
    ):
        if session_factory is None:
            from solacedesk.core.database import get_session_factory

            session_factory = get_session_factory()
        self._session_factory = session_factory
        self._retries = retries or get_settings().transaction_retries

    async def with_transaction(self, fn: Callable[[StoreTransaction], Awaitable[T]]) -> T:
        """Run ``fn`` inside one transaction, committing only if it returns.

        IntegrityError is re-raised unchanged so callers can map uniqueness
        conflicts; transient OperationalErrors are retried; any other
        SQLAlchemy failure is logged and raised as StoreError.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        return await fn(StoreTransaction(session))
            except IntegrityError:
                raise
            except OperationalError as exc:
                if attempt < self._retries:
                    log.warning("store.transaction_retry", attempt=attempt, error=str(exc))
                    continue
                log.error("store.transaction_failed", attempts=attempt, error=str(exc))
                raise StoreError("transaction failed after retries") from exc
            except SQLAlchemyError as exc:
                log.error("store.transaction_failed", attempts=attempt, error=str(exc))
                raise StoreError("transaction failed") from exc
