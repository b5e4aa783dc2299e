"""
Principal resolution.

Turns a stored ``User`` into the ``Principal`` the policy engine consumes,
deriving the external-customer flag from the user's role, department and
room memberships.
"""

from __future__ import annotations

import uuid
from typing import Optional

from solacedesk.core.store import StoreTransaction
from solacedesk.models.user import User
from solacedesk_shared.schemas.access import Principal
from solacedesk_shared.schemas.common import UserRole


async def is_external_customer(user: User, tx: StoreTransaction) -> bool:
    """A plain USER with no department and no PUBLIC/PRIVATE memberships."""
    if user.role != UserRole.USER:
        return False
    if user.department is not None:
        return False
    return not await tx.has_internal_membership(user.id)


async def build_principal(user: User, tx: StoreTransaction) -> Principal:
    return Principal(
        id=user.id,
        role=user.role,
        department=user.department,
        is_external_customer=await is_external_customer(user, tx),
    )


async def resolve_principal(user_id: uuid.UUID, tx: StoreTransaction) -> Optional[Principal]:
    """Look up a user and build its principal; None if the user does not exist."""
    user = await tx.get_user(user_id)
    if user is None:
        return None
    return await build_principal(user, tx)
