"""
StackIt Backend — Answer Service Tests
========================================

What:  Answer lifecycle and acceptance against an in-memory database.

What we test:
    ✅ Posting bumps answer_count; closed questions refuse answers
    ✅ At most one accepted answer; the +15 bonus follows the flag
    ✅ No bonus for answering your own question
    ✅ Only the question author can accept
    ✅ Deleting answers keeps answer_count and accepted_answer_id honest
"""

import pytest
from sqlalchemy import func, select

from conftest import reload
from stackit.exceptions import AuthorizationError, NotFoundError, ValidationError
from stackit.models import Answer, Notification, Question, User, Vote
from stackit.schemas.answer import AnswerCreate, AnswerUpdate
from stackit.schemas.question import QuestionCreate, QuestionUpdate
from stackit.services.answer_service import answer_service
from stackit.services.question_service import question_service
from stackit.services.vote_service import vote_service

CONTENT = "Wrap the call in a context manager and iterate."


async def _question(db, author):
    return await question_service.create_question(
        db,
        author,
        QuestionCreate(
            title="How do I iterate over a file?",
            description="Looking for the idiomatic way to walk a file by lines.",
            tags=["python", "files"],
        ),
    )


async def _answer(db, author, question_id, content=CONTENT):
    return (await answer_service.create_answer(db, author, AnswerCreate(question_id=question_id, content=content))).answer


class TestCreateAnswer:

    @pytest.mark.asyncio
    async def test_create_increments_answer_count(self, database, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)

        outcome = await answer_service.create_answer(
            db, answerer, AnswerCreate(question_id=question.id, content=CONTENT)
        )

        assert outcome.question_id == question.id
        assert outcome.answer.author.username == "answerer"
        assert outcome.answer.is_accepted is False
        assert outcome.notification is not None
        assert outcome.notification.user_id == asker.id
        assert (await reload(database, Question, question.id)).answer_count == 1

    @pytest.mark.asyncio
    async def test_own_question_answer_does_not_notify(self, db, make_user):
        asker = await make_user("asker")
        question = await _question(db, asker)

        outcome = await answer_service.create_answer(
            db, asker, AnswerCreate(question_id=question.id, content=CONTENT)
        )
        assert outcome.notification is None

    @pytest.mark.asyncio
    async def test_closed_question_rejects_answers(self, database, db, make_user):
        asker = await make_user("asker")
        moderator = await make_user("mod", role="moderator")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        await question_service.update_question(db, moderator, question.id, QuestionUpdate(status="closed"))

        with pytest.raises(ValidationError, match="closed"):
            await _answer(db, answerer, question.id)
        assert (await reload(database, Question, question.id)).answer_count == 0

    @pytest.mark.asyncio
    async def test_missing_question(self, db, make_user):
        answerer = await make_user("answerer")
        with pytest.raises(NotFoundError):
            await _answer(db, answerer, 404)


class TestUpdateAnswer:

    @pytest.mark.asyncio
    async def test_only_author_can_edit(self, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)

        with pytest.raises(AuthorizationError):
            await answer_service.update_answer(db, asker, answer.id, AnswerUpdate(content="Rewritten by someone else"))

        updated = await answer_service.update_answer(
            db, answerer, answer.id, AnswerUpdate(content="  Use a for loop over the file object.  ")
        )
        assert updated.content == "Use a for loop over the file object."


class TestAcceptance:

    @pytest.mark.asyncio
    async def test_accept_awards_bonus_and_notifies(self, database, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)

        outcome = await answer_service.accept(db, asker, answer.id)

        assert outcome.accepted_answer_id == answer.id
        assert outcome.answer.is_accepted is True
        assert outcome.notification is not None
        assert outcome.notification.user_id == answerer.id
        assert (await reload(database, User, answerer.id)).reputation == 15
        assert (await reload(database, Question, question.id)).accepted_answer_id == answer.id

    @pytest.mark.asyncio
    async def test_accepting_another_answer_moves_flag_and_bonus(self, database, db, make_user):
        asker = await make_user("asker")
        first_author = await make_user("first")
        second_author = await make_user("second")
        question = await _question(db, asker)
        first = await _answer(db, first_author, question.id)
        second = await _answer(db, second_author, question.id, content="Another equally valid approach.")

        await answer_service.accept(db, asker, first.id)
        await question_service.accept_answer(db, asker, question.id, second.id)

        accepted = await db.scalar(
            select(func.count(Answer.id)).where(Answer.question_id == question.id, Answer.is_accepted.is_(True))
        )
        assert accepted == 1
        assert (await reload(database, Answer, second.id)).is_accepted is True
        assert (await reload(database, Answer, first.id)).is_accepted is False
        assert (await reload(database, User, first_author.id)).reputation == 0
        assert (await reload(database, User, second_author.id)).reputation == 15
        assert (await reload(database, Question, question.id)).accepted_answer_id == second.id

    @pytest.mark.asyncio
    async def test_accept_is_idempotent(self, database, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)

        await answer_service.accept(db, asker, answer.id)
        repeat = await answer_service.accept(db, asker, answer.id)

        assert repeat.notification is None
        assert (await reload(database, User, answerer.id)).reputation == 15

    @pytest.mark.asyncio
    async def test_unaccept_reverses_bonus(self, database, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)
        await answer_service.accept(db, asker, answer.id)

        outcome = await answer_service.unaccept(db, asker, answer.id)

        assert outcome.accepted_answer_id is None
        assert (await reload(database, User, answerer.id)).reputation == 0
        assert (await reload(database, Question, question.id)).accepted_answer_id is None
        with pytest.raises(ValidationError, match="not accepted"):
            await answer_service.unaccept(db, asker, answer.id)

    @pytest.mark.asyncio
    async def test_self_answer_earns_no_bonus(self, database, db, make_user):
        asker = await make_user("asker")
        question = await _question(db, asker)
        answer = await _answer(db, asker, question.id)

        outcome = await answer_service.accept(db, asker, answer.id)

        assert outcome.answer.is_accepted is True
        assert outcome.notification is None
        assert (await reload(database, User, asker.id)).reputation == 0

    @pytest.mark.asyncio
    async def test_only_question_author_can_accept(self, database, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        admin = await make_user("admin", role="admin")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)

        for actor in (answerer, admin):
            with pytest.raises(AuthorizationError, match="question author"):
                await answer_service.accept(db, actor, answer.id)
        assert (await reload(database, Answer, answer.id)).is_accepted is False

    @pytest.mark.asyncio
    async def test_accept_answer_from_other_question(self, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        other = await question_service.create_question(
            db,
            asker,
            QuestionCreate(
                title="A completely different question",
                description="This one is about something else entirely.",
                tags=["misc"],
            ),
        )
        answer = await _answer(db, answerer, other.id)

        with pytest.raises(ValidationError, match="does not belong"):
            await question_service.accept_answer(db, asker, question.id, answer.id)


class TestDeleteAnswer:

    @pytest.mark.asyncio
    async def test_delete_accepted_answer(self, database, db, make_user):
        """Deleting keeps counters straight but leaves reputation alone."""
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        voter = await make_user("voter")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)
        await vote_service.cast_vote(db, voter, "answer", answer.id, 1)
        await answer_service.accept(db, asker, answer.id)

        question_id = await answer_service.delete_answer(db, answerer, answer.id)

        assert question_id == question.id
        stored = await reload(database, Question, question.id)
        assert stored.answer_count == 0
        assert stored.accepted_answer_id is None
        assert await db.scalar(select(func.count(Vote.id)).where(Vote.target_type == "answer")) == 0
        assert (await reload(database, User, answerer.id)).reputation == 25

    @pytest.mark.asyncio
    async def test_staff_may_delete_others_answers(self, database, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        moderator = await make_user("mod", role="moderator")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)

        with pytest.raises(AuthorizationError):
            await answer_service.delete_answer(db, asker, answer.id)
        await answer_service.delete_answer(db, moderator, answer.id)
        assert await reload(database, Answer, answer.id) is None


class TestListing:

    @pytest.mark.asyncio
    async def test_accepted_answer_listed_first(self, db, make_user):
        asker = await make_user("asker")
        a = await make_user("alpha")
        b = await make_user("beta")
        voter = await make_user("voter")
        question = await _question(db, asker)
        popular = await _answer(db, a, question.id, content="The popular but unaccepted answer.")
        accepted = await _answer(db, b, question.id, content="The accepted answer with no votes.")
        await vote_service.cast_vote(db, voter, "answer", popular.id, 1)
        await answer_service.accept(db, asker, accepted.id)

        listing = await answer_service.list_for_question(db, question.id)

        assert [x.id for x in listing.answers] == [accepted.id, popular.id]
        assert listing.pagination.total == 2

    @pytest.mark.asyncio
    async def test_list_for_user(self, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        await _answer(db, answerer, question.id)

        listing = await answer_service.list_for_user(db, answerer.id)
        assert len(listing.answers) == 1
        with pytest.raises(NotFoundError):
            await answer_service.list_for_user(db, 9999)

    @pytest.mark.asyncio
    async def test_answer_notification_persisted(self, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        question = await _question(db, asker)
        await _answer(db, answerer, question.id)

        rows = list(await db.scalars(select(Notification).where(Notification.user_id == asker.id)))
        assert [n.type for n in rows] == ["answer"]
        assert rows[0].reference_id == question.id
