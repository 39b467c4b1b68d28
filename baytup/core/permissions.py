"""Actor context and role checks.

The API boundary resolves the bearer token into an ``Actor`` once; the
services receive it and ask these helpers which role the actor plays on
a given booking.
"""

from dataclasses import dataclass
from uuid import UUID

from baytup.core.exceptions import AuthorizationError
from baytup.domain.booking_state import ActorRole


@dataclass(frozen=True)
class Actor:
    """Authorized caller: who they are and their platform role."""

    user_id: UUID
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def require_role(actor: Actor, *allowed_roles: ActorRole) -> None:
    """Raise AuthorizationError unless the actor holds one of the roles."""
    if actor.role not in allowed_roles:
        allowed = ", ".join(role.value for role in allowed_roles)
        raise AuthorizationError(
            f"Role '{actor.role.value}' is not authorized for this action (requires {allowed})"
        )


def booking_role_of(actor: Actor, booking) -> ActorRole:
    """Role the actor plays on this booking.

    Admins act as admin; everybody else is the booking's guest or host
    by relationship, whatever their platform role.
    """
    if actor.is_admin:
        return ActorRole.ADMIN
    if actor.user_id == booking.guest_id:
        return ActorRole.GUEST
    if actor.user_id == booking.host_id:
        return ActorRole.HOST
    raise AuthorizationError("You don't have access to this booking")


def assert_booking_party(actor: Actor, booking, *allowed_roles: ActorRole) -> ActorRole:
    """Check the actor is a party to the booking, optionally in given roles.

    Returns:
        The role the actor plays on the booking
    """
    role = booking_role_of(actor, booking)
    if allowed_roles and role not in allowed_roles:
        allowed = " or ".join(r.value for r in allowed_roles)
        raise AuthorizationError(f"Only the booking's {allowed} can perform this action")
    return role
