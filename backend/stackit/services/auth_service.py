"""
StackIt Backend — Auth Service
================================

What:  Registration, login, profile maintenance, password change/reset and
       account deletion.
Who:   routes/auth.py. Token verification for incoming requests lives in
       dependencies.py / security.py and does not go through this class.

Account deletion:
    The database would cascade a user's rows away on its own, but that would
    leave other people's counters wrong (vote_count on what they voted on,
    answer_count on questions they answered, reputation of the authors they
    voted for). So the normal paths run first:

        1. retract every vote the user cast     (counts + reputation rolled back)
        2. remove every answer they wrote       (answer_count, accepted_answer_id)
        3. purge every question they asked      (votes, answers, tag usage)
        4. delete the user row                  (notifications cascade)
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from stackit.config import settings
from stackit.constants import Role
from stackit.database import MonitoredSession
from stackit.exceptions import AuthenticationError, ConflictError, NotFoundError
from stackit.models import Answer, Question, User
from stackit.schemas.user import (
    AuthPayload,
    ChangePasswordRequest,
    PasswordResetConfirm,
    PasswordResetIssued,
    ProfileUpdateRequest,
    RegisterRequest,
    UserPrivate,
    UserPublic,
)
from stackit.security import (
    PASSWORD_RESET_PURPOSE,
    create_access_token,
    create_password_reset_token,
    decode_token,
    hash_password,
    password_fingerprint,
    verify_password,
)
from stackit.services.answer_service import answer_service
from stackit.services.question_service import question_service
from stackit.services.vote_service import vote_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


class AuthService:
    """Account lifecycle."""

    def _payload(self, user: User) -> AuthPayload:
        return AuthPayload(
            user=UserPrivate.model_validate(user),
            token=create_access_token(user.id, user.role, user.username),
            expires_in=settings.jwt_expire_minutes * 60,
        )

    async def _find_by_email(self, db: MonitoredSession, email: str) -> Optional[User]:
        return await db.scalar(select(User).where(func.lower(User.email) == email.lower()))

    async def _ensure_unique(
        self,
        db: MonitoredSession,
        username: Optional[str],
        email: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> None:
        if username is not None:
            stmt = select(User.id).where(func.lower(User.username) == username.lower())
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if await db.scalar(stmt) is not None:
                raise ConflictError("Username is already taken", context={"field": "username"})
        if email is not None:
            stmt = select(User.id).where(func.lower(User.email) == email.lower())
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if await db.scalar(stmt) is not None:
                raise ConflictError("Email is already registered", context={"field": "email"})

    async def _get_user(self, db: MonitoredSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        return user

    # ── Registration & login ──────────────────────────────────────────────

    async def register(self, db: MonitoredSession, data: RegisterRequest) -> AuthPayload:
        email = data.email.lower()
        await self._ensure_unique(db, data.username, email)

        user = User(
            username=data.username,
            email=email,
            password_hash=await hash_password(data.password),
            role=Role.USER.value,
            reputation=0,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("Username or email is already registered") from e
        await db.commit()
        logger.info("User registered: %s (id=%d)", user.username, user.id)
        return self._payload(user)

    async def login(self, db: MonitoredSession, email: str, password: str) -> AuthPayload:
        user = await self._find_by_email(db, email)
        # Same message for unknown email and wrong password
        if user is None or not await verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError(INVALID_CREDENTIALS)
        logger.info("User logged in: %s (id=%d)", user.username, user.id)
        return self._payload(user)

    # ── Profile ───────────────────────────────────────────────────────────

    async def get_profile(self, db: MonitoredSession, user_id: int) -> UserPrivate:
        return UserPrivate.model_validate(await self._get_user(db, user_id))

    async def get_public_profile(self, db: MonitoredSession, user_id: int) -> UserPublic:
        return UserPublic.model_validate(await self._get_user(db, user_id))

    async def update_profile(
        self, db: MonitoredSession, user: User, data: ProfileUpdateRequest
    ) -> UserPrivate:
        username = data.username if data.username is not None and data.username != user.username else None
        email = data.email.lower() if data.email is not None and data.email.lower() != user.email else None
        await self._ensure_unique(db, username, email, exclude_id=user.id)

        if username is not None:
            user.username = username
        if email is not None:
            user.email = email
        if data.bio is not None:
            user.bio = data.bio.strip() or None
        if data.avatar_url is not None:
            user.avatar_url = data.avatar_url.strip() or None
        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("Username or email is already registered") from e
        await db.commit()
        return UserPrivate.model_validate(user)

    # ── Passwords ─────────────────────────────────────────────────────────

    async def change_password(self, db: MonitoredSession, user: User, data: ChangePasswordRequest) -> None:
        if not await verify_password(data.current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        user.password_hash = await hash_password(data.new_password)
        await db.flush()
        await db.commit()
        logger.info("Password changed for user %d", user.id)

    async def request_password_reset(self, db: MonitoredSession, email: str) -> PasswordResetIssued:
        """
        Issue a reset token for a known email.

        The caller gets the same answer whether or not the email exists. The
        token is only echoed back in development; elsewhere it would be
        delivered out of band.
        """
        user = await self._find_by_email(db, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return PasswordResetIssued()

        token = create_password_reset_token(user.id, user.role, user.username, user.password_hash)
        logger.info("Password reset token issued for user %d", user.id)
        return PasswordResetIssued(reset_token=token if settings.is_development else None)

    async def reset_password(self, db: MonitoredSession, data: PasswordResetConfirm) -> None:
        claims = decode_token(data.token, purpose=PASSWORD_RESET_PURPOSE)
        user = await db.get(User, claims["user_id"])
        if user is None or claims.get("pwd") != password_fingerprint(user.password_hash):
            raise AuthenticationError("Invalid or already used reset token")
        user.password_hash = await hash_password(data.password)
        await db.flush()
        await db.commit()
        logger.info("Password reset completed for user %d", user.id)

    # ── Deletion ──────────────────────────────────────────────────────────

    async def delete_account(self, db: MonitoredSession, user: User, password: str) -> None:
        if not await verify_password(password, user.password_hash):
            raise AuthenticationError("Password is incorrect")

        retracted = await vote_service.retract_all_for_user(db, user.id)
        answers = list(await db.scalars(select(Answer).where(Answer.user_id == user.id)))
        for answer in answers:
            await answer_service.remove(db, answer)
        questions = list(await db.scalars(select(Question).where(Question.user_id == user.id)))
        for question in questions:
            await question_service.purge(db, question)

        await db.delete(user)
        await db.flush()
        await db.commit()
        logger.info(
            "Account %d deleted (%d votes retracted, %d answers, %d questions)",
            user.id, retracted, len(answers), len(questions),
        )


auth_service = AuthService()
