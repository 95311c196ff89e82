"""
StackIt Backend — Auth Service & Token Tests
==============================================

What:  Account lifecycle and JWT handling.

What we test:
    ✅ Register / login, duplicate detection, uniform credential errors
    ✅ Token round trip, expiry, tampering and purpose separation
    ✅ Password change and single-use reset tokens
    ✅ Reset token only echoed back in development
    ✅ Account deletion leaves every counter consistent
"""

from unittest.mock import patch

import jwt
import pytest
from sqlalchemy import func, select

from conftest import DEFAULT_PASSWORD, reload
from stackit.config import settings
from stackit.exceptions import AuthenticationError, ConflictError, NotFoundError
from stackit.models import Answer, Notification, Question, Tag, User, Vote
from stackit.schemas.answer import AnswerCreate
from stackit.schemas.question import QuestionCreate
from stackit.schemas.user import (
    ChangePasswordRequest,
    PasswordResetConfirm,
    ProfileUpdateRequest,
    RegisterRequest,
)
from stackit.security import (
    PASSWORD_RESET_PURPOSE,
    create_access_token,
    create_password_reset_token,
    create_token,
    decode_token,
    hash_password,
    verify_password,
)
from stackit.services.answer_service import answer_service
from stackit.services.auth_service import auth_service
from stackit.services.question_service import question_service
from stackit.services.vote_service import vote_service

NEW_PASSWORD = "N3wPassword"


def _register(username="alice", email="alice@example.com", password="Secr3tPass"):
    return RegisterRequest(username=username, email=email, password=password, confirm_password=password)


class TestPasswords:

    @pytest.mark.asyncio
    async def test_hash_and_verify(self):
        hashed = await hash_password("Secr3tPass")
        assert hashed != "Secr3tPass"
        assert await verify_password("Secr3tPass", hashed) is True
        assert await verify_password("wrong", hashed) is False

    @pytest.mark.asyncio
    async def test_malformed_hash_does_not_verify(self):
        assert await verify_password("anything", "not-a-bcrypt-hash") is False


class TestTokens:

    def test_access_token_round_trip(self):
        claims = decode_token(create_access_token(7, "moderator", "mod"))
        assert claims["user_id"] == 7
        assert claims["role"] == "moderator"
        assert claims["username"] == "mod"

    def test_expired_token(self):
        token = create_token(1, "user", "alice", expires_minutes=-1)
        with pytest.raises(AuthenticationError, match="expired"):
            decode_token(token)

    def test_tampered_token(self):
        forged = jwt.encode({"sub": "1", "exp": 9999999999}, "some-other-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError, match="Invalid token"):
            decode_token(forged)

    def test_purposes_are_not_interchangeable(self):
        reset = create_password_reset_token(1, "user", "alice", "hash")
        with pytest.raises(AuthenticationError):
            decode_token(reset)
        with pytest.raises(AuthenticationError):
            decode_token(create_access_token(1, "user", "alice"), purpose=PASSWORD_RESET_PURPOSE)


class TestRegisterAndLogin:

    @pytest.mark.asyncio
    async def test_register_returns_token_and_profile(self, db):
        payload = await auth_service.register(db, _register(email="Alice@Example.com"))

        assert payload.user.username == "alice"
        assert payload.user.email == "alice@example.com"
        assert payload.user.role == "user"
        assert payload.user.reputation == 0
        assert payload.expires_in == settings.jwt_expire_minutes * 60
        assert decode_token(payload.token)["user_id"] == payload.user.id

    @pytest.mark.asyncio
    async def test_duplicates_rejected(self, db):
        await auth_service.register(db, _register())

        with pytest.raises(ConflictError, match="Username"):
            await auth_service.register(db, _register(username="ALICE", email="other@example.com"))
        with pytest.raises(ConflictError, match="Email"):
            await auth_service.register(db, _register(username="bob", email="ALICE@example.com"))

    @pytest.mark.asyncio
    async def test_login(self, db):
        await auth_service.register(db, _register())

        payload = await auth_service.login(db, "ALICE@example.com", "Secr3tPass")
        assert payload.user.username == "alice"

    @pytest.mark.asyncio
    async def test_bad_credentials_share_one_message(self, db):
        await auth_service.register(db, _register())

        with pytest.raises(AuthenticationError) as wrong_password:
            await auth_service.login(db, "alice@example.com", "Wr0ngPass")
        with pytest.raises(AuthenticationError) as unknown_email:
            await auth_service.login(db, "nobody@example.com", "Secr3tPass")
        assert wrong_password.value.message == unknown_email.value.message == "Invalid credentials"


class TestProfile:

    @pytest.mark.asyncio
    async def test_update_profile(self, db, make_user):
        alice = await make_user("alice")
        await make_user("bob")
        user = await db.get(User, alice.id)

        with pytest.raises(ConflictError):
            await auth_service.update_profile(db, user, ProfileUpdateRequest(username="bob"))

        updated = await auth_service.update_profile(
            db, user, ProfileUpdateRequest(bio="  Pythonista  ", email="NEW@example.com")
        )
        assert updated.bio == "Pythonista"
        assert updated.email == "new@example.com"

    @pytest.mark.asyncio
    async def test_public_profile_hides_email(self, db, make_user):
        alice = await make_user("alice")
        public = await auth_service.get_public_profile(db, alice.id)
        assert "email" not in public.model_dump()

        with pytest.raises(NotFoundError):
            await auth_service.get_profile(db, 999)


class TestPasswordChange:

    @pytest.mark.asyncio
    async def test_change_password(self, database, db, make_user):
        alice = await make_user("alice")
        user = await db.get(User, alice.id)

        with pytest.raises(AuthenticationError, match="Current password"):
            await auth_service.change_password(
                db,
                user,
                ChangePasswordRequest(current_password="nope", new_password=NEW_PASSWORD, confirm_password=NEW_PASSWORD),
            )

        await auth_service.change_password(
            db,
            user,
            ChangePasswordRequest(
                current_password=DEFAULT_PASSWORD, new_password=NEW_PASSWORD, confirm_password=NEW_PASSWORD
            ),
        )
        await auth_service.login(db, "alice@example.com", NEW_PASSWORD)
        with pytest.raises(AuthenticationError):
            await auth_service.login(db, "alice@example.com", DEFAULT_PASSWORD)


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_reset_token_is_single_use(self, db, make_user):
        alice = await make_user("alice")
        token = create_password_reset_token(alice.id, alice.role, alice.username, alice.password_hash)
        confirm = PasswordResetConfirm(token=token, password=NEW_PASSWORD, confirm_password=NEW_PASSWORD)

        await auth_service.reset_password(db, confirm)
        await auth_service.login(db, "alice@example.com", NEW_PASSWORD)

        with pytest.raises(AuthenticationError, match="already used"):
            await auth_service.reset_password(db, confirm)

    @pytest.mark.asyncio
    async def test_token_only_echoed_in_development(self, db, make_user):
        await make_user("alice")

        hidden = await auth_service.request_password_reset(db, "alice@example.com")
        assert hidden.reset_token is None

        with patch.object(settings, "environment", "development"):
            shown = await auth_service.request_password_reset(db, "alice@example.com")
            unknown = await auth_service.request_password_reset(db, "ghost@example.com")
        assert decode_token(shown.reset_token, purpose=PASSWORD_RESET_PURPOSE)["username"] == "alice"
        assert unknown.reset_token is None


class TestDeleteAccount:

    @pytest.mark.asyncio
    async def test_wrong_password(self, database, db, make_user):
        alice = await make_user("alice")
        user = await db.get(User, alice.id)

        with pytest.raises(AuthenticationError, match="Password is incorrect"):
            await auth_service.delete_account(db, user, "Wr0ngPass")
        assert await reload(database, User, alice.id) is not None

    @pytest.mark.asyncio
    async def test_deletion_keeps_other_users_consistent(self, database, db, make_user):
        """
        Leaving user: asked one question, answered bob's question, voted on
        bob's question and on carol's answer. After deletion bob and carol
        look as if none of that happened, apart from content bob still owns.
        """
        leaver = await make_user("leaver")
        bob = await make_user("bob")
        carol = await make_user("carol")

        own = await question_service.create_question(
            db,
            leaver,
            QuestionCreate(title="The leaver's own question", description="Soon to vanish with its author.", tags=["gone"]),
        )
        await answer_service.create_answer(
            db, carol, AnswerCreate(question_id=own.id, content="Carol answers the leaver.")
        )
        bobs = await question_service.create_question(
            db,
            bob,
            QuestionCreate(title="Bob asks something", description="Bob's question keeps existing afterwards.", tags=["stays"]),
        )
        leaver_answer = (
            await answer_service.create_answer(
                db, leaver, AnswerCreate(question_id=bobs.id, content="The leaver answers bob.")
            )
        ).answer
        carol_answer = (
            await answer_service.create_answer(
                db, carol, AnswerCreate(question_id=bobs.id, content="Carol answers bob too.")
            )
        ).answer
        await answer_service.accept(db, bob, leaver_answer.id)
        await vote_service.cast_vote(db, leaver, "question", bobs.id, 1)
        await vote_service.cast_vote(db, leaver, "answer", carol_answer.id, -1)
        await vote_service.cast_vote(db, bob, "question", own.id, 1)

        user = await db.get(User, leaver.id)
        await auth_service.delete_account(db, user, DEFAULT_PASSWORD)

        assert await reload(database, User, leaver.id) is None
        assert (await reload(database, User, bob.id)).reputation == 0
        assert (await reload(database, User, carol.id)).reputation == 0

        question = await reload(database, Question, bobs.id)
        assert question.vote_count == 0
        assert question.answer_count == 1
        assert question.accepted_answer_id is None
        assert (await reload(database, Answer, carol_answer.id)).vote_count == 0

        assert await reload(database, Question, own.id) is None
        assert await db.scalar(select(func.count(Vote.id))) == 0
        assert await db.scalar(select(Tag.usage_count).where(Tag.name == "gone")) == 0
        leftover = await db.scalar(select(func.count(Notification.id)).where(Notification.user_id == leaver.id))
        assert leftover == 0
