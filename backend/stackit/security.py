"""
StackIt Backend — Passwords and Tokens
========================================

What:  bcrypt password hashing and HS256 JWT issuance/verification.
Why:   Isolated from AuthService so the request dependencies and the WebSocket
       handshake can verify tokens without importing the service layer.
How:   bcrypt runs in Starlette's thread pool (it is deliberately slow and
       would otherwise stall the event loop). PyJWT handles encoding, expiry
       and signature checks.

Token claims:
    sub       user id (string, per RFC 7519)
    role      user | moderator | admin at issue time
    username  display name at issue time
    purpose   "access" or "password_reset"
    iat/exp   issue and expiry timestamps
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from starlette.concurrency import run_in_threadpool

from stackit.config import settings
from stackit.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ACCESS_PURPOSE = "access"
PASSWORD_RESET_PURPOSE = "password_reset"


# ── Passwords ─────────────────────────────────────────────────────────────


def _hash(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _check(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.error("Stored password hash could not be parsed")
        return False


async def hash_password(password: str) -> str:
    return await run_in_threadpool(_hash, password, settings.bcrypt_rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    return await run_in_threadpool(_check, password, password_hash)


# ── Tokens ────────────────────────────────────────────────────────────────


def create_token(
    user_id: int,
    role: str,
    username: str,
    purpose: str = ACCESS_PURPOSE,
    expires_minutes: Optional[int] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Encode a signed token for `user_id` that expires after `expires_minutes`."""
    now = datetime.now(timezone.utc)
    lifetime = expires_minutes if expires_minutes is not None else settings.jwt_expire_minutes
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "username": username,
        "purpose": purpose,
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: int, role: str, username: str) -> str:
    return create_token(user_id, role, username, purpose=ACCESS_PURPOSE)


def password_fingerprint(password_hash: str) -> str:
    """Short digest of the stored hash; changes whenever the password does."""
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]


def create_password_reset_token(user_id: int, role: str, username: str, password_hash: str) -> str:
    # A reset token stops working once the password has been changed with it
    return create_token(
        user_id,
        role,
        username,
        purpose=PASSWORD_RESET_PURPOSE,
        expires_minutes=settings.password_reset_expire_minutes,
        extra_claims={"pwd": password_fingerprint(password_hash)},
    )


def decode_token(token: str, purpose: str = ACCESS_PURPOSE) -> Dict[str, Any]:
    """
    Verify signature, expiry and purpose; return the claims.

    Raises:
        AuthenticationError: expired, tampered, malformed or wrong-purpose token.
    """
    try:
        payload: Dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired") from None
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token") from None

    if payload.get("purpose", ACCESS_PURPOSE) != purpose:
        raise AuthenticationError("Invalid token")
    try:
        payload["user_id"] = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token") from None
    return payload
