"""Per-request role resolution.

Roles are read from ``profiles`` keyed by the verified caller id at the start
of every privileged operation. Nothing here is cached.
"""

from __future__ import annotations

import logging
from collections.abc import Collection

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.auth import Caller
from credbroker.errors import Forbidden
from credbroker.models.profile import Profile, Role

logger = logging.getLogger(__name__)

ADMIN_ONLY: frozenset[Role] = frozenset({Role.ADMIN})
INTEGRATION_MANAGERS: frozenset[Role] = frozenset({Role.ADMIN, Role.EDITOR})


async def resolve_role(db: AsyncSession, user_id: str) -> Role | None:
    """Return the caller's role, or None if they have no (valid) profile."""
    value = await db.scalar(select(Profile.role).where(Profile.user_id == user_id))
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        logger.warning("Profile for user '%s' has unknown role '%s'", user_id, value)
        return None


async def require_role(
    db: AsyncSession,
    caller: Caller,
    allowed: Collection[Role],
    message: str | None = None,
) -> Role:
    """Resolve the caller's role and fail unless it is in ``allowed``.

    Raises:
        Forbidden: If the caller has no profile or an insufficient role.
    """
    role = await resolve_role(db, caller.user_id)
    if role is None or role not in allowed:
        logger.info("Denied user '%s' (role=%s)", caller.user_id, role.value if role else None)
        raise Forbidden(message)
    return role
