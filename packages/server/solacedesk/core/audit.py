"""
Audit logging for moderation and membership actions.

Audit is best-effort: a failed write is logged and never undoes the
membership change that triggered it.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from solacedesk.core.config import get_settings
from solacedesk.models.audit_log import AuditLog

log = structlog.get_logger()

AUDIT_ACTIONS = frozenset({
    "member.join",
    "member.leave",
    "member.invite",
    "member.role_change",
    "member.remove",
    "ownership.transfer",
    "ticket.open",
    "ticket.assign",
    "ticket.status.change",
    "room.create",
    "room.edit",
    "room.delete",
})


class AuditSink(Protocol):
    async def record(
        self,
        action: str,
        actor_id: Optional[uuid.UUID],
        target_type: Optional[str],
        target_id: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> None: ...


class NullAuditSink:
    """Discards audit records."""

    async def record(self, action, actor_id, target_type, target_id, metadata=None) -> None:
        return None


class DatabaseAuditSink:
    """Writes audit records to the audit_logs table in their own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from solacedesk.core.database import get_session_factory

            session_factory = get_session_factory()
        self._session_factory = session_factory

    async def record(
        self,
        action: str,
        actor_id: Optional[uuid.UUID],
        target_type: Optional[str],
        target_id: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if not get_settings().audit_enabled:
            return
        if action not in AUDIT_ACTIONS:
            log.warning("audit.unknown_action", action=action)
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    AuditLog(
                        action=action,
                        actor_id=actor_id,
                        target_type=target_type,
                        target_id=target_id,
                        payload=metadata or {},
                    )
                )


async def record_safely(
    sink: AuditSink,
    action: str,
    actor_id: Optional[uuid.UUID],
    target_type: Optional[str],
    target_id: Optional[str],
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """Record an audit entry, logging instead of raising on failure."""
    try:
        await sink.record(action, actor_id, target_type, target_id, metadata)
    except Exception as exc:
        log.error(
            "audit.write_failed",
            action=action,
            actor_id=str(actor_id) if actor_id else None,
            target_id=target_id,
            error=str(exc),
        )
