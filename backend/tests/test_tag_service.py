"""
StackIt Backend — Tag Service Tests
=====================================

What we test:
    ✅ Catalogue CRUD with case-insensitive uniqueness
    ✅ Prefix search and popularity ordering
    ✅ Deleting a tag unlinks it from questions
"""

import pytest
from sqlalchemy import func, select

from stackit.exceptions import ConflictError, NotFoundError
from stackit.models import QuestionTag
from stackit.schemas.question import QuestionCreate
from stackit.schemas.tag import TagCreate, TagUpdate
from stackit.services.question_service import question_service
from stackit.services.tag_service import normalize_tag_names, tag_service


def test_normalize_tag_names():
    assert normalize_tag_names([" Python ", "python", "", "SQL"]) == ["python", "sql"]


class TestCatalogue:

    @pytest.mark.asyncio
    async def test_create_and_get(self, db):
        created = await tag_service.create_tag(db, TagCreate(name="  FastAPI ", description="Web framework"))

        assert created.name == "fastapi"
        assert created.color == "#2196F3"
        assert created.usage_count == 0
        assert (await tag_service.get_tag(db, created.id)).description == "Web framework"

    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts(self, db):
        await tag_service.create_tag(db, TagCreate(name="python"))
        with pytest.raises(ConflictError):
            await tag_service.create_tag(db, TagCreate(name="PYTHON"))

    @pytest.mark.asyncio
    async def test_update(self, db):
        python = await tag_service.create_tag(db, TagCreate(name="python"))
        sql = await tag_service.create_tag(db, TagCreate(name="sql"))

        with pytest.raises(ConflictError):
            await tag_service.update_tag(db, sql.id, TagUpdate(name="python"))

        updated = await tag_service.update_tag(db, python.id, TagUpdate(color="#FF0000", description="Snakes"))
        assert (updated.color, updated.description) == ("#FF0000", "Snakes")

    @pytest.mark.asyncio
    async def test_missing_tag(self, db):
        with pytest.raises(NotFoundError):
            await tag_service.get_tag(db, 1)
        with pytest.raises(NotFoundError):
            await tag_service.delete_tag(db, 1)


class TestQueries:

    async def _seed(self, db, make_user):
        author = await make_user("author")
        for title, tags in (
            ("Python packaging question", ["python", "packaging"]),
            ("Python typing question", ["python", "pydantic"]),
            ("Postgres indexing question", ["postgres"]),
        ):
            await question_service.create_question(
                db, author, QuestionCreate(title=title, description="Some detail to explain the problem.", tags=tags)
            )
        await tag_service.create_tag(db, TagCreate(name="unused"))

    @pytest.mark.asyncio
    async def test_search_is_prefix_match(self, db, make_user):
        await self._seed(db, make_user)

        names = [t.name for t in await tag_service.search(db, "P")]
        assert names == ["python", "packaging", "postgres", "pydantic"]
        assert [t.name for t in await tag_service.search(db, "ack")] == []
        assert await tag_service.search(db, "   ") == []

    @pytest.mark.asyncio
    async def test_popular_skips_unused(self, db, make_user):
        await self._seed(db, make_user)

        popular = await tag_service.popular(db, limit=2)
        assert [t.name for t in popular] == ["python", "packaging"]
        assert "unused" not in [t.name for t in await tag_service.popular(db)]

    @pytest.mark.asyncio
    async def test_list_tags_paginates(self, db, make_user):
        await self._seed(db, make_user)

        listing = await tag_service.list_tags(db, page=1, limit=3, sort="name")
        assert [t.name for t in listing.tags] == ["packaging", "postgres", "pydantic"]
        assert listing.pagination.total == 5

    @pytest.mark.asyncio
    async def test_delete_tag_unlinks_questions(self, db, make_user):
        author = await make_user("author")
        question = await question_service.create_question(
            db, author, QuestionCreate(title="Tagged question here", description="A question with one tag attached.", tags=["doomed"])
        )
        tag_id = question.tags[0].id

        await tag_service.delete_tag(db, tag_id)

        links = await db.scalar(select(func.count()).select_from(QuestionTag))
        assert links == 0
        assert await tag_service.tags_for_question(db, question.id) == []
