"""
Caller identity threaded through every core operation.

Authentication happens upstream; the core only needs to know who acts,
in which role, and for which restaurant.
"""

from dataclasses import dataclass

from tabledesk_shared.config.constants import Roles
from tabledesk_shared.utils.exceptions import ForbiddenError


@dataclass(frozen=True, slots=True)
class ActorContext:
    """
    Attributes:
        restaurant_id: Tenant every read and write is scoped to
        role: One of Roles.ALL
        actor_id: Staff user id; None for guest devices
        device_id: Guest device identifier (portal calls only)
    """

    restaurant_id: int
    role: str
    actor_id: int | None = None
    device_id: str | None = None

    @classmethod
    def guest(cls, restaurant_id: int, device_id: str) -> "ActorContext":
        return cls(restaurant_id=restaurant_id, role=Roles.CLIENT, device_id=device_id)

    @property
    def is_guest(self) -> bool:
        return self.role == Roles.CLIENT

    def require_role(self, allowed: frozenset[str] | list[str], action: str) -> None:
        """Raise ForbiddenError unless the actor's role is allowed."""
        if self.role not in allowed:
            raise ForbiddenError(action, role=self.role, actor_id=self.actor_id)
