"""API dependencies for authentication and common operations."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from baytup.core.exceptions import AuthenticationError
from baytup.core.permissions import Actor, assert_booking_party, require_role
from baytup.core.security import verify_token
from baytup.database import get_db
from baytup.domain.booking_state import ActorRole

__all__ = [
    "Actor",
    "AdminActor",
    "CurrentActor",
    "DbSession",
    "RoleChecker",
    "assert_booking_party",
    "get_current_actor",
    "get_db",
]

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Actor:
    """Resolve the bearer token into the authorized actor."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise AuthenticationError("Invalid token payload")

    try:
        return Actor(user_id=UUID(user_id), role=ActorRole(role))
    except ValueError:
        raise AuthenticationError("Invalid token payload")


class RoleChecker:
    """Dependency requiring the actor to hold one of the given roles."""

    def __init__(self, *allowed_roles: ActorRole):
        self.allowed_roles = allowed_roles

    async def __call__(self, actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        require_role(actor, *self.allowed_roles)
        return actor


require_admin = RoleChecker(ActorRole.ADMIN)
require_host = RoleChecker(ActorRole.HOST)

DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_admin)]
HostActor = Annotated[Actor, Depends(require_host)]
