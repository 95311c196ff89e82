"""
StackIt Backend — Question Service Tests
==========================================

What:  Slugs, tag bookkeeping, listing and deletion for questions.

What we test:
    ✅ slugify() edge cases
    ✅ Colliding titles get -1, -2 suffixes; re-slug on title edit
    ✅ Tag usage_count follows create / retag / delete
    ✅ Purge removes votes, answers and links but leaves reputation alone
    ✅ Filters, sorts and pagination metadata
    ✅ View counting does not touch updated_at
"""

import pytest
from sqlalchemy import func, select

from conftest import reload
from stackit.exceptions import AuthorizationError, NotFoundError
from stackit.models import Answer, Question, QuestionTag, Tag, User, Vote
from stackit.schemas.answer import AnswerCreate
from stackit.schemas.question import QuestionCreate, QuestionUpdate
from stackit.services.answer_service import answer_service
from stackit.services.question_service import question_service, slugify
from stackit.services.vote_service import vote_service

DESCRIPTION = "A description that is comfortably longer than twenty characters."


def _payload(title="How to code?", tags=("python",), description=DESCRIPTION):
    return QuestionCreate(title=title, description=description, tags=list(tags))


async def _usage(db, name):
    return await db.scalar(select(Tag.usage_count).where(Tag.name == name))


class TestSlugify:

    @pytest.mark.parametrize(
        "title, expected",
        [
            ("How to code?", "how-to-code"),
            ("  Leading and trailing  ", "leading-and-trailing"),
            ("C++ vs. C#: which one?", "c-vs-c-which-one"),
            ("Café con leche", "cafe-con-leche"),
            ("???", "question"),
        ],
    )
    def test_slugify(self, title, expected):
        assert slugify(title) == expected

    def test_slug_is_truncated(self):
        slug = slugify("word " * 100)
        assert len(slug) <= 250
        assert not slug.endswith("-")


class TestSlugAssignment:

    @pytest.mark.asyncio
    async def test_colliding_titles_get_suffixes(self, db, make_user):
        author = await make_user("author")

        first = await question_service.create_question(db, author, _payload("How to code?"))
        second = await question_service.create_question(db, author, _payload("How to code?"))
        third = await question_service.create_question(db, author, _payload("How to code!"))

        assert [first.slug, second.slug, third.slug] == ["how-to-code", "how-to-code-1", "how-to-code-2"]

    @pytest.mark.asyncio
    async def test_title_edit_reslugs_excluding_itself(self, db, make_user):
        author = await make_user("author")
        question = await question_service.create_question(db, author, _payload("How to code?"))

        unchanged = await question_service.update_question(
            db, author, question.id, QuestionUpdate(title="How to code!!")
        )
        assert unchanged.slug == "how-to-code"

        renamed = await question_service.update_question(
            db, author, question.id, QuestionUpdate(title="How to test code?")
        )
        assert renamed.slug == "how-to-test-code"
        assert (await question_service.get_by_slug(db, "how-to-test-code", count_view=False)).id == question.id


class TestTagBookkeeping:

    @pytest.mark.asyncio
    async def test_usage_count_tracks_links(self, db, make_user):
        author = await make_user("author")
        question = await question_service.create_question(db, author, _payload(tags=["Python", "sql"]))
        await question_service.create_question(db, author, _payload(title="Second question here", tags=["python"]))

        assert [t.name for t in question.tags] == ["python", "sql"]
        assert await _usage(db, "python") == 2
        assert await _usage(db, "sql") == 1

        await question_service.update_question(
            db, author, question.id, QuestionUpdate(tags=["python", "fastapi"])
        )
        assert await _usage(db, "python") == 2
        assert await _usage(db, "sql") == 0
        assert await _usage(db, "fastapi") == 1

        await question_service.delete_question(db, author, question.id)
        assert await _usage(db, "python") == 1
        assert await _usage(db, "fastapi") == 0

    @pytest.mark.asyncio
    async def test_resending_same_tags_changes_nothing(self, db, make_user):
        author = await make_user("author")
        question = await question_service.create_question(db, author, _payload(tags=["python"]))

        await question_service.update_question(db, author, question.id, QuestionUpdate(tags=["python"]))

        assert await _usage(db, "python") == 1
        links = await db.scalar(select(func.count()).select_from(QuestionTag))
        assert links == 1


class TestUpdatePermissions:

    @pytest.mark.asyncio
    async def test_only_owner_or_staff_can_edit(self, db, make_user):
        author = await make_user("author")
        stranger = await make_user("stranger")
        moderator = await make_user("mod", role="moderator")
        question = await question_service.create_question(db, author, _payload())

        with pytest.raises(AuthorizationError):
            await question_service.update_question(db, stranger, question.id, QuestionUpdate(title="Hijacked title here"))

        edited = await question_service.update_question(
            db, moderator, question.id, QuestionUpdate(title="Moderator cleaned title")
        )
        assert edited.title == "Moderator cleaned title"

    @pytest.mark.asyncio
    async def test_status_change_requires_staff(self, db, make_user):
        author = await make_user("author")
        admin = await make_user("admin", role="admin")
        question = await question_service.create_question(db, author, _payload())

        with pytest.raises(AuthorizationError, match="moderators"):
            await question_service.update_question(db, author, question.id, QuestionUpdate(status="closed"))

        closed = await question_service.update_question(db, admin, question.id, QuestionUpdate(status="closed"))
        assert closed.status == "closed"


class TestDeleteQuestion:

    @pytest.mark.asyncio
    async def test_purge_removes_dependents_and_keeps_reputation(self, database, db, make_user):
        author = await make_user("author")
        answerer = await make_user("answerer")
        voter = await make_user("voter")
        question = await question_service.create_question(db, author, _payload())
        answer = (
            await answer_service.create_answer(
                db, answerer, AnswerCreate(question_id=question.id, content="An answer worth voting for.")
            )
        ).answer
        await vote_service.cast_vote(db, voter, "question", question.id, 1)
        await vote_service.cast_vote(db, voter, "answer", answer.id, 1)
        await answer_service.accept(db, author, answer.id)

        await question_service.delete_question(db, author, question.id)

        assert await reload(database, Question, question.id) is None
        assert await reload(database, Answer, answer.id) is None
        assert await db.scalar(select(func.count(Vote.id))) == 0
        assert await db.scalar(select(func.count()).select_from(QuestionTag)) == 0
        assert (await reload(database, User, author.id)).reputation == 5
        assert (await reload(database, User, answerer.id)).reputation == 25

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete(self, db, make_user):
        author = await make_user("author")
        stranger = await make_user("stranger")
        question = await question_service.create_question(db, author, _payload())

        with pytest.raises(AuthorizationError):
            await question_service.delete_question(db, stranger, question.id)

    @pytest.mark.asyncio
    async def test_missing_question(self, db, make_user):
        admin = await make_user("admin", role="admin")
        with pytest.raises(NotFoundError):
            await question_service.delete_question(db, admin, 12345)


class TestListing:

    async def _seed(self, db, make_user):
        author = await make_user("author")
        other = await make_user("other")
        voter = await make_user("voter")
        py = await question_service.create_question(
            db, author, _payload("Python generators explained", tags=["python"])
        )
        sql = await question_service.create_question(
            db, other, _payload("SQL joins for beginners", tags=["sql"])
        )
        both = await question_service.create_question(
            db, author, _payload("Python and SQL together", tags=["python", "sql"])
        )
        await vote_service.cast_vote(db, voter, "question", sql.id, 1)
        await answer_service.create_answer(
            db, other, AnswerCreate(question_id=py.id, content="Generators yield values lazily.")
        )
        return author, py, sql, both

    @pytest.mark.asyncio
    async def test_filters(self, db, make_user):
        author, py, sql, both = await self._seed(db, make_user)

        by_tag = await question_service.list_questions(db, tags=["python"])
        assert {q.id for q in by_tag.questions} == {py.id, both.id}

        by_search = await question_service.list_questions(db, search="joins")
        assert [q.id for q in by_search.questions] == [sql.id]

        by_user = await question_service.list_questions(db, user_id=author.id)
        assert by_user.pagination.total == 2

        combined = await question_service.list_questions(db, tags=["sql"], user_id=author.id)
        assert [q.id for q in combined.questions] == [both.id]

    @pytest.mark.asyncio
    async def test_sorts(self, db, make_user):
        _, py, sql, both = await self._seed(db, make_user)

        by_votes = await question_service.list_questions(db, sort="votes")
        assert by_votes.questions[0].id == sql.id

        by_answers = await question_service.list_questions(db, sort="answers")
        assert by_answers.questions[0].id == py.id

        unanswered = await question_service.list_questions(db, sort="unanswered")
        assert {q.id for q in unanswered.questions} == {sql.id, both.id}

    @pytest.mark.asyncio
    async def test_pagination_meta(self, db, make_user):
        await self._seed(db, make_user)

        page = await question_service.list_questions(db, page=2, limit=2)

        assert len(page.questions) == 1
        meta = page.pagination
        assert (meta.page, meta.limit, meta.total, meta.total_pages) == (2, 2, 3, 2)

    @pytest.mark.asyncio
    async def test_excerpt_is_truncated(self, db, make_user):
        author = await make_user("author")
        await question_service.create_question(db, author, _payload(description="x" * 500))

        listing = await question_service.list_questions(db)
        assert len(listing.questions[0].excerpt) == 200


class TestViewCount:

    @pytest.mark.asyncio
    async def test_each_view_counts_once(self, database, db, make_user):
        author = await make_user("author")
        created = await question_service.create_question(db, author, _payload())
        before = (await reload(database, Question, created.id)).updated_at

        await question_service.get_question(db, created.id)
        detail = await question_service.get_by_slug(db, created.slug)
        silent = await question_service.get_question(db, created.id, count_view=False)
        await db.commit()

        assert detail.view_count == 2
        assert silent.view_count == 2
        stored = await reload(database, Question, created.id)
        assert stored.view_count == 2
        assert stored.updated_at == before

    @pytest.mark.asyncio
    async def test_missing_question(self, db):
        with pytest.raises(NotFoundError):
            await question_service.get_question(db, 42)
        with pytest.raises(NotFoundError):
            await question_service.get_by_slug(db, "no-such-question")
