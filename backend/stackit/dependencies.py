"""
StackIt Backend — Request Dependencies
========================================

What:  FastAPI dependencies for authentication, role gating and the
       per-app real-time manager.

    @router.post("/")
    async def create(user: User = Depends(get_current_user)): ...

    @router.delete("/{tag_id}", dependencies=[Depends(require_roles(Role.ADMIN))])

Errors:
    Missing, malformed, expired or forged token → AuthenticationError (401)
    Token for a user that no longer exists      → AuthenticationError (401)
    Authenticated but wrong role                → AuthorizationError (403)
"""

from typing import Callable, Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from stackit.constants import Role
from stackit.database import MonitoredSession, get_db_session
from stackit.exceptions import AuthenticationError, AuthorizationError
from stackit.models import User
from stackit.realtime import ConnectionManager
from stackit.security import decode_token

# auto_error=False so a missing header goes through our own 401 envelope
_bearer = HTTPBearer(auto_error=False)


async def user_from_token(db: MonitoredSession, token: str) -> User:
    """Resolve a bearer token to its user; shared with the WebSocket handshake."""
    payload = decode_token(token)
    user = await db.get(User, payload["user_id"])
    if user is None:
        raise AuthenticationError("User no longer exists")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer),
    db: MonitoredSession = Depends(get_db_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return await user_from_token(db, credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer),
    db: MonitoredSession = Depends(get_db_session),
) -> Optional[User]:
    """The caller if a valid token was sent, otherwise None (never raises)."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await user_from_token(db, credentials.credentials)
    except AuthenticationError:
        return None


def require_roles(*roles: Role) -> Callable:
    allowed = {role.value if isinstance(role, Role) else role for role in roles}

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise AuthorizationError(
                "Insufficient permissions",
                context={"required": sorted(allowed)},
            )
        return user

    return checker


def get_realtime(request: Request) -> ConnectionManager:
    return request.app.state.realtime
