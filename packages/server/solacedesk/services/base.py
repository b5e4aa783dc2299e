"""
Shared plumbing for the room services.

Each service runs its unit of work through ``RoomStore.with_transaction``.
The unit of work returns its result together with an optional ``Effect``;
effects are emitted to the audit and notification sinks only after the
transaction has committed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from solacedesk.core.audit import AuditSink, NullAuditSink, record_safely
from solacedesk.core.identity import resolve_principal
from solacedesk.core.notifications import NotificationSink, NullNotificationSink, publish_safely
from solacedesk.core.policy import AccessPolicyEngine, engine
from solacedesk.core.store import RoomStore, StoreTransaction
from solacedesk.models.room_member import RoomMember
from solacedesk_shared.schemas.access import MembershipView, Principal


@dataclass
class Effect:
    """An audit record and room event describing one committed change."""

    action: str
    room_id: uuid.UUID
    target_type: str = "room"
    target_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    event_type: Optional[str] = None


def membership_view(membership: Optional[RoomMember]) -> Optional[MembershipView]:
    if membership is None:
        return None
    return MembershipView.model_validate(membership)


class RoomService:
    """Base for services that mutate rooms and memberships."""

    def __init__(
        self,
        store: RoomStore,
        policy: AccessPolicyEngine = engine,
        audit: AuditSink | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.store = store
        self.policy = policy
        self.audit = audit or NullAuditSink()
        self.notifier = notifier or NullNotificationSink()

    async def _current(self, tx: StoreTransaction, principal: Principal) -> Optional[Principal]:
        """Re-resolve the caller inside the transaction so derived flags are current."""
        return await resolve_principal(principal.id, tx)

    async def _emit(self, actor_id: Optional[uuid.UUID], effect: Optional[Effect]) -> None:
        if effect is None:
            return
        await record_safely(
            self.audit,
            effect.action,
            actor_id,
            effect.target_type,
            effect.target_id or str(effect.room_id),
            effect.metadata,
        )
        await publish_safely(
            self.notifier,
            effect.room_id,
            effect.event_type or effect.action,
            {"actor_id": str(actor_id) if actor_id else None, **effect.metadata},
        )
