"""
Shared router dependencies: database session, clock, notifier and caller identity.

Identity is established upstream by the auth gateway, which forwards it as
X-Actor-Id, X-Actor-Role and X-Restaurant-Id headers.
"""

from fastapi import Header

from tabledesk.services.clock import get_clock
from tabledesk.services.context import ActorContext
from tabledesk.services.events.publisher import get_notifier
from tabledesk_shared.config.constants import Roles
from tabledesk_shared.infrastructure.db import get_db
from tabledesk_shared.utils.exceptions import ForbiddenError

__all__ = ["get_db", "get_clock", "get_notifier", "current_actor"]


def current_actor(
    x_restaurant_id: int | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_actor_id: int | None = Header(default=None),
) -> ActorContext:
    """Staff identity for the request. Guests use the portal routes instead."""
    if x_restaurant_id is None or x_actor_role is None:
        raise ForbiddenError("call this endpoint without an identity")

    role = x_actor_role.strip().lower()
    if role not in Roles.STAFF:
        raise ForbiddenError("call staff endpoints", role=role)

    return ActorContext(restaurant_id=x_restaurant_id, role=role, actor_id=x_actor_id)
