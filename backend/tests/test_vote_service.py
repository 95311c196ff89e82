"""
StackIt Backend — Vote Service Tests
======================================

What:  Tri-state voting against a real (in-memory SQLite) database.
Why:   Votes move three denormalized values at once (target vote_count,
       author reputation, notifications); these tests pin every transition.

What we test:
    ✅ none → up → down → cancel: counts and reputation at each step
    ✅ Answer weights (+10 / -2)
    ✅ vote_count always equals the signed sum of vote rows
    ✅ Self-votes rejected, unknown targets 404, bad vote types 400
    ✅ Notifications only on transitions into an upvote
    ✅ Explicit removal and account-deletion retraction
    ✅ A failing step rolls back count, reputation and vote row together
"""

import pytest
from sqlalchemy import func, select

from conftest import reload
from stackit.exceptions import AuthorizationError, NotFoundError, ValidationError
from stackit.models import Answer, Notification, Question, User, Vote
from stackit.schemas.answer import AnswerCreate
from stackit.schemas.question import QuestionCreate
from stackit.services.answer_service import answer_service
from stackit.services.notification_service import notification_service
from stackit.services.question_service import question_service
from stackit.services.vote_service import vote_service


async def _question(db, author, title="How do I read a file in Python?"):
    return await question_service.create_question(
        db,
        author,
        QuestionCreate(title=title, description="I want to read a text file line by line.", tags=["python"]),
    )


async def _answer(db, author, question_id):
    outcome = await answer_service.create_answer(
        db, author, AnswerCreate(question_id=question_id, content="Use open() in a with block.")
    )
    return outcome.answer


async def _signed_sum(db, target_type, target_id):
    total = await db.scalar(
        select(func.coalesce(func.sum(Vote.vote_type), 0)).where(
            Vote.target_type == target_type, Vote.target_id == target_id
        )
    )
    return int(total)


class TestQuestionVoting:
    """The full lifecycle on a question."""

    @pytest.mark.asyncio
    async def test_upvote_switch_cancel_sequence(self, database, db, make_user):
        """0 → +1 → -1 → 0 moves vote_count and reputation in lock step."""
        author = await make_user("author")
        voter = await make_user("voter")
        question = await _question(db, author)

        up = await vote_service.cast_vote(db, voter, "question", question.id, 1)
        assert (up.result.vote_count, up.result.user_vote) == (1, 1)
        assert (await reload(database, User, author.id)).reputation == 5

        down = await vote_service.cast_vote(db, voter, "question", question.id, -1)
        assert (down.result.vote_count, down.result.user_vote) == (-1, -1)
        assert (down.result.upvotes, down.result.downvotes) == (0, 1)
        assert (await reload(database, User, author.id)).reputation == -2

        cancel = await vote_service.cast_vote(db, voter, "question", question.id, -1)
        assert (cancel.result.vote_count, cancel.result.user_vote) == (0, 0)
        assert (await reload(database, User, author.id)).reputation == 0
        assert await db.scalar(select(func.count(Vote.id))) == 0

    @pytest.mark.asyncio
    async def test_vote_count_matches_signed_sum(self, database, db, make_user):
        """Several voters in mixed directions; the counter mirrors the rows."""
        author = await make_user("author")
        voters = [await make_user(f"voter{i}") for i in range(4)]
        question = await _question(db, author)

        for voter, vote_type in zip(voters, (1, 1, -1, 1)):
            await vote_service.cast_vote(db, voter, "question", question.id, vote_type)
        await vote_service.cast_vote(db, voters[1], "question", question.id, 1)  # cancel

        stored = await reload(database, Question, question.id)
        assert stored.vote_count == await _signed_sum(db, "question", question.id) == 1
        # +5 +5 -2 +5, then one +5 withdrawn
        assert (await reload(database, User, author.id)).reputation == 8

    @pytest.mark.asyncio
    async def test_self_vote_rejected(self, database, db, make_user):
        author = await make_user("author")
        question = await _question(db, author)

        with pytest.raises(AuthorizationError, match="your own content"):
            await vote_service.cast_vote(db, author, "question", question.id, 1)
        assert (await reload(database, Question, question.id)).vote_count == 0
        assert (await reload(database, User, author.id)).reputation == 0

    @pytest.mark.asyncio
    async def test_missing_target_is_not_found(self, db, make_user):
        voter = await make_user("voter")
        with pytest.raises(NotFoundError):
            await vote_service.cast_vote(db, voter, "question", 999, 1)

    @pytest.mark.asyncio
    async def test_invalid_inputs_rejected(self, db, make_user):
        voter = await make_user("voter")
        with pytest.raises(ValidationError):
            await vote_service.cast_vote(db, voter, "comment", 1, 1)
        with pytest.raises(ValidationError):
            await vote_service.cast_vote(db, voter, "question", 1, 2)


class TestAnswerVoting:

    @pytest.mark.asyncio
    async def test_answer_weights(self, database, db, make_user):
        """Answer upvote is worth +10, downvote -2."""
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        voter = await make_user("voter")
        question = await _question(db, asker)
        answer = await _answer(db, answerer, question.id)

        outcome = await vote_service.cast_vote(db, voter, "answer", answer.id, 1)
        assert outcome.question_id == question.id
        assert (await reload(database, User, answerer.id)).reputation == 10

        await vote_service.cast_vote(db, voter, "answer", answer.id, -1)
        assert (await reload(database, User, answerer.id)).reputation == -2
        assert (await reload(database, Answer, answer.id)).vote_count == -1


class TestVoteNotifications:

    @pytest.mark.asyncio
    async def test_only_new_upvotes_notify(self, db, make_user):
        author = await make_user("author")
        voter = await make_user("voter")
        question = await _question(db, author)

        first = await vote_service.cast_vote(db, voter, "question", question.id, 1)
        assert first.notification is not None
        assert first.notification.user_id == author.id
        assert first.notification.type == "vote"

        down = await vote_service.cast_vote(db, voter, "question", question.id, -1)
        assert down.notification is None
        back_up = await vote_service.cast_vote(db, voter, "question", question.id, 1)
        assert back_up.notification is not None
        cancel = await vote_service.cast_vote(db, voter, "question", question.id, 1)
        assert cancel.notification is None

        count = await db.scalar(select(func.count(Notification.id)).where(Notification.type == "vote"))
        assert count == 2


class TestVoteRemovalAndQueries:

    @pytest.mark.asyncio
    async def test_remove_vote(self, database, db, make_user):
        author = await make_user("author")
        voter = await make_user("voter")
        question = await _question(db, author)
        await vote_service.cast_vote(db, voter, "question", question.id, 1)

        outcome = await vote_service.remove_vote(db, voter, "question", question.id)
        assert outcome.result.vote_count == 0
        assert (await reload(database, User, author.id)).reputation == 0

        with pytest.raises(NotFoundError, match="Vote not found"):
            await vote_service.remove_vote(db, voter, "question", question.id)

    @pytest.mark.asyncio
    async def test_user_vote_and_counts(self, db, make_user):
        author = await make_user("author")
        alice = await make_user("alice")
        bob = await make_user("bob")
        question = await _question(db, author)
        await vote_service.cast_vote(db, alice, "question", question.id, 1)
        await vote_service.cast_vote(db, bob, "question", question.id, -1)

        assert (await vote_service.get_user_vote(db, alice.id, "question", question.id)).vote_type == 1
        assert (await vote_service.get_user_vote(db, author.id, "question", question.id)).vote_type == 0
        counts = await vote_service.get_vote_counts(db, "question", question.id)
        assert (counts.upvotes, counts.downvotes, counts.total) == (1, 1, 0)

    @pytest.mark.asyncio
    async def test_retract_all_for_user_rolls_back(self, database, db, make_user):
        author = await make_user("author")
        voter = await make_user("voter")
        question = await _question(db, author)
        await vote_service.cast_vote(db, voter, "question", question.id, 1)

        retracted = await vote_service.retract_all_for_user(db, voter.id)
        await db.commit()

        assert retracted == 1
        assert (await reload(database, Question, question.id)).vote_count == 0
        assert (await reload(database, User, author.id)).reputation == 0

    @pytest.mark.asyncio
    async def test_user_votes_for_many_answers(self, db, make_user):
        asker = await make_user("asker")
        answerer = await make_user("answerer")
        voter = await make_user("voter")
        question = await _question(db, asker)
        first = await _answer(db, answerer, question.id)
        second = await _answer(db, answerer, question.id)
        await vote_service.cast_vote(db, voter, "answer", first.id, -1)

        votes = await vote_service.user_votes_for(db, voter.id, "answer", [first.id, second.id])

        assert votes == {first.id: -1}
        assert await vote_service.user_votes_for(db, voter.id, "answer", []) == {}


class TestVoteAtomicity:
    """A failure part way through a vote leaves nothing behind."""

    @pytest.mark.asyncio
    async def test_failed_notification_rolls_back_whole_vote(self, database, make_user, monkeypatch):
        author = await make_user("author")
        voter = await make_user("voter")
        async with database.session() as session:
            question = await _question(session, author)

        async def broken_notify(*args, **kwargs):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(notification_service, "notify_upvote", broken_notify)

        with pytest.raises(RuntimeError):
            async with database.transaction() as session:
                await vote_service.cast_vote(session, voter, "question", question.id, 1)

        async with database.session() as fresh:
            assert (await fresh.get(Question, question.id)).vote_count == 0
            assert (await fresh.get(User, author.id)).reputation == 0
            assert await fresh.scalar(select(func.count(Vote.id))) == 0
            assert await fresh.scalar(select(func.count(Notification.id))) == 0
