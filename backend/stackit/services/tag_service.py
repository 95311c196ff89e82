"""
StackIt Backend — Tag Service
===============================

What:  Tag catalogue (list, search, CRUD) and the association between
       questions and tags.
Why:   `usage_count` is denormalized for cheap "popular tags" queries; every
       code path that links or unlinks a tag must move it in step.
How:   `set_question_tags()` diffs the requested names against the current
       links and only touches what changed:

           current = {python, sql}      requested = {python, fastapi}
           remove  = {sql}              → unlink, usage_count - 1 (floor 0)
           add     = {fastapi}          → create tag if missing, link, + 1

       Association helpers flush but never commit; QuestionService owns the
       transaction. Catalogue mutations (create/update/delete) commit.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from stackit.constants import DEFAULT_TAG_COLOR
from stackit.database import MonitoredSession
from stackit.exceptions import ConflictError, NotFoundError
from stackit.models import Question, QuestionTag, Tag
from stackit.schemas.common import PaginationMeta
from stackit.schemas.tag import TagCreate, TagList, TagOut, TagSummary, TagUpdate
from stackit.services.common import count_rows, like_pattern, page_offset

logger = logging.getLogger(__name__)

TAG_SORTS = {
    "usage": (Tag.usage_count.desc(), Tag.name.asc()),
    "name": (Tag.name.asc(),),
    "newest": (Tag.created_at.desc(), Tag.id.desc()),
}


def normalize_tag_names(names: Iterable[str]) -> List[str]:
    """Lowercase, trim, drop blanks and duplicates; keeps first-seen order."""
    seen: List[str] = []
    for raw in names:
        name = raw.strip().lower()
        if name and name not in seen:
            seen.append(name)
    return seen


class TagService:
    """Tag catalogue and question-tag association maintenance."""

    # ── Catalogue reads ───────────────────────────────────────────────────

    async def list_tags(
        self,
        db: MonitoredSession,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        sort: str = "usage",
    ) -> TagList:
        stmt = select(Tag)
        if search:
            stmt = stmt.where(Tag.name.ilike(like_pattern(search.strip().lower()), escape="\\"))
        total = await count_rows(db, stmt)
        rows = await db.scalars(
            stmt.order_by(*TAG_SORTS.get(sort, TAG_SORTS["usage"]))
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        return TagList(
            tags=[TagOut.model_validate(tag) for tag in rows],
            pagination=PaginationMeta.build(page, limit, total),
        )

    async def popular(self, db: MonitoredSession, limit: int = 20) -> List[TagOut]:
        rows = await db.scalars(
            select(Tag)
            .where(Tag.usage_count > 0)
            .order_by(Tag.usage_count.desc(), Tag.name.asc())
            .limit(limit)
        )
        return [TagOut.model_validate(tag) for tag in rows]

    async def search(self, db: MonitoredSession, query: str, limit: int = 10) -> List[TagOut]:
        """Prefix match for autocomplete, most used first."""
        term = query.strip().lower()
        if not term:
            return []
        prefix = like_pattern(term)[1:]  # drop the leading wildcard
        rows = await db.scalars(
            select(Tag)
            .where(Tag.name.like(prefix, escape="\\"))
            .order_by(Tag.usage_count.desc(), Tag.name.asc())
            .limit(limit)
        )
        return [TagOut.model_validate(tag) for tag in rows]

    async def get_tag(self, db: MonitoredSession, tag_id: int) -> TagOut:
        tag = await db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError(resource="Tag", resource_id=tag_id)
        return TagOut.model_validate(tag)

    async def tags_for_question(self, db: MonitoredSession, question_id: int) -> List[TagOut]:
        if await db.get(Question, question_id) is None:
            raise NotFoundError(resource="Question", resource_id=question_id)
        rows = await db.scalars(
            select(Tag)
            .join(QuestionTag, QuestionTag.tag_id == Tag.id)
            .where(QuestionTag.question_id == question_id)
            .order_by(Tag.name.asc())
        )
        return [TagOut.model_validate(tag) for tag in rows]

    async def summaries_for_questions(
        self, db: MonitoredSession, question_ids: Iterable[int]
    ) -> Dict[int, List[TagSummary]]:
        """Tag chips for a batch of questions in one query."""
        ids = list(set(question_ids))
        result: Dict[int, List[TagSummary]] = defaultdict(list)
        if not ids:
            return result
        rows = await db.execute(
            select(QuestionTag.question_id, Tag)
            .join(Tag, Tag.id == QuestionTag.tag_id)
            .where(QuestionTag.question_id.in_(ids))
            .order_by(Tag.name.asc())
        )
        for question_id, tag in rows:
            result[question_id].append(TagSummary.model_validate(tag))
        return result

    # ── Catalogue mutations ───────────────────────────────────────────────

    async def _name_taken(self, db: MonitoredSession, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Tag.id).where(Tag.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Tag.id != exclude_id)
        return (await db.scalar(stmt)) is not None

    async def create_tag(self, db: MonitoredSession, data: TagCreate) -> TagOut:
        if await self._name_taken(db, data.name):
            raise ConflictError("Tag already exists", context={"name": data.name})
        tag = Tag(
            name=data.name,
            description=data.description,
            color=data.color or DEFAULT_TAG_COLOR,
            usage_count=0,
        )
        db.add(tag)
        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("Tag already exists", context={"name": data.name}) from e
        await db.commit()
        logger.info("Tag created: %s", tag.name)
        return TagOut.model_validate(tag)

    async def update_tag(self, db: MonitoredSession, tag_id: int, data: TagUpdate) -> TagOut:
        tag = await db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError(resource="Tag", resource_id=tag_id)
        if data.name is not None and data.name != tag.name:
            if await self._name_taken(db, data.name, exclude_id=tag.id):
                raise ConflictError("Tag name already exists", context={"name": data.name})
            tag.name = data.name
        if data.description is not None:
            tag.description = data.description
        if data.color is not None:
            tag.color = data.color
        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("Tag name already exists", context={"name": data.name}) from e
        await db.commit()
        return TagOut.model_validate(tag)

    async def delete_tag(self, db: MonitoredSession, tag_id: int) -> None:
        tag = await db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError(resource="Tag", resource_id=tag_id)
        await db.execute(delete(QuestionTag).where(QuestionTag.tag_id == tag_id))
        await db.delete(tag)
        await db.commit()
        logger.info("Tag deleted: %s", tag.name)

    # ── Question association ──────────────────────────────────────────────

    async def _current_tags(self, db: MonitoredSession, question_id: int) -> Dict[str, Tag]:
        rows = await db.scalars(
            select(Tag)
            .join(QuestionTag, QuestionTag.tag_id == Tag.id)
            .where(QuestionTag.question_id == question_id)
            .with_for_update()
        )
        return {tag.name: tag for tag in rows}

    async def set_question_tags(
        self, db: MonitoredSession, question_id: int, names: Iterable[str]
    ) -> List[Tag]:
        """
        Make the question's tag set equal to `names`.

        Idempotent: re-sending the current set changes nothing, including
        usage counts. Returns the tags in requested order.
        """
        wanted = normalize_tag_names(names)
        current = await self._current_tags(db, question_id)

        for name in set(current) - set(wanted):
            tag = current[name]
            await db.execute(
                delete(QuestionTag).where(
                    QuestionTag.question_id == question_id,
                    QuestionTag.tag_id == tag.id,
                )
            )
            tag.usage_count = max(0, tag.usage_count - 1)

        missing = [name for name in wanted if name not in current]
        existing: Dict[str, Tag] = {}
        if missing:
            rows = await db.scalars(select(Tag).where(Tag.name.in_(missing)).with_for_update())
            existing = {tag.name: tag for tag in rows}

        for name in missing:
            tag = existing.get(name)
            if tag is None:
                tag = Tag(name=name, color=DEFAULT_TAG_COLOR, usage_count=0)
                db.add(tag)
                await db.flush()
                existing[name] = tag
            db.add(QuestionTag(question_id=question_id, tag_id=tag.id))
            tag.usage_count += 1

        await db.flush()
        by_name = {**current, **existing}
        return [by_name[name] for name in wanted]

    async def detach_all(self, db: MonitoredSession, question_id: int) -> None:
        """Unlink every tag from a question that is about to be deleted."""
        current = await self._current_tags(db, question_id)
        for tag in current.values():
            tag.usage_count = max(0, tag.usage_count - 1)
        await db.execute(delete(QuestionTag).where(QuestionTag.question_id == question_id))
        await db.flush()


tag_service = TagService()
