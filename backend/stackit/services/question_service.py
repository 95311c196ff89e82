"""
StackIt Backend — Question Service
====================================

What:  Question CRUD, listing/filtering, slug assignment, and the
       question-side entry points for answer acceptance.
Who:   Called by routes/questions.py; `purge()` is also used by account
       deletion in AuthService.

Slug Assignment:
    "How to code?"  → how-to-code
    "How to code?"  → how-to-code-1   (second question, same title)
    "How to code!"  → how-to-code-2

    The title is folded to ASCII, lowercased, and every run of other
    characters becomes one hyphen. Existing slugs with the same base are read
    in one query and the first free suffix is used. Two concurrent creates of
    the same title can still pick the same slug; the unique index rejects the
    second one, which is reported as 409.

Deletion:
    Votes are polymorphic (no FK to their target), so purge() deletes the
    votes on the question and on its answers explicitly and unlinks tags so
    usage counts drop. Answers and links would also go by ON DELETE CASCADE.
"""

import logging
import re
import unicodedata
from typing import Iterable, List, Optional

from sqlalchemy import Select, or_, select, update
from sqlalchemy.exc import IntegrityError

from stackit.constants import STAFF_ROLES, QuestionStatus, TargetType
from stackit.database import MonitoredSession
from stackit.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from stackit.models import Answer, Question, QuestionTag, Tag, User
from stackit.schemas.common import PaginationMeta
from stackit.schemas.question import (
    QuestionCreate,
    QuestionDetail,
    QuestionList,
    QuestionSummary,
    QuestionUpdate,
)
from stackit.services.answer_service import AcceptOutcome, answer_service
from stackit.services.common import count_rows, like_pattern, page_offset, user_summaries
from stackit.services.tag_service import normalize_tag_names, tag_service
from stackit.services.vote_service import vote_service

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_SLUG_MAX = 250

QUESTION_SORTS = {
    "newest": (Question.created_at.desc(), Question.id.desc()),
    "oldest": (Question.created_at.asc(), Question.id.asc()),
    "votes": (Question.vote_count.desc(), Question.created_at.desc(), Question.id.desc()),
    "answers": (Question.answer_count.desc(), Question.created_at.desc(), Question.id.desc()),
    "views": (Question.view_count.desc(), Question.created_at.desc(), Question.id.desc()),
    "unanswered": (Question.created_at.desc(), Question.id.desc()),
}


def slugify(title: str) -> str:
    ascii_title = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("-", ascii_title.lower()).strip("-")
    return slug[:_SLUG_MAX].rstrip("-") or "question"


def _can_moderate(user: User) -> bool:
    return user.role in STAFF_ROLES


class QuestionService:
    """Business logic for questions."""

    # ── Slugs ─────────────────────────────────────────────────────────────

    async def unique_slug(
        self, db: MonitoredSession, title: str, exclude_id: Optional[int] = None
    ) -> str:
        base = slugify(title)
        stmt = select(Question.slug).where(
            or_(Question.slug == base, Question.slug.like(f"{base}-%"))
        )
        if exclude_id is not None:
            stmt = stmt.where(Question.id != exclude_id)
        taken = set(await db.scalars(stmt))

        candidate, counter = base, 1
        while candidate in taken:
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate

    # ── Serialization ─────────────────────────────────────────────────────

    async def _summaries(self, db: MonitoredSession, questions: List[Question]) -> List[QuestionSummary]:
        authors = await user_summaries(db, (q.user_id for q in questions))
        tags = await tag_service.summaries_for_questions(db, (q.id for q in questions))
        return [
            QuestionSummary(
                id=q.id,
                title=q.title,
                slug=q.slug,
                excerpt=q.description[:200],
                author=authors[q.user_id],
                tags=tags.get(q.id, []),
                vote_count=q.vote_count,
                answer_count=q.answer_count,
                view_count=q.view_count,
                accepted_answer_id=q.accepted_answer_id,
                status=q.status,
                created_at=q.created_at,
                updated_at=q.updated_at,
            )
            for q in questions
        ]

    async def _detail(self, db: MonitoredSession, question: Question) -> QuestionDetail:
        summary = (await self._summaries(db, [question]))[0]
        return QuestionDetail(**summary.model_dump(), description=question.description)

    async def _get_or_404(self, db: MonitoredSession, question_id: int, lock: bool = False) -> Question:
        question = await db.get(Question, question_id, with_for_update=lock or None)
        if question is None:
            raise NotFoundError(resource="Question", resource_id=question_id)
        return question

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_questions(
        self,
        db: MonitoredSession,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        sort: str = "newest",
        user_id: Optional[int] = None,
    ) -> QuestionList:
        """
        Filtered, sorted, offset-paginated question list.

        Filters combine with AND; `tags` matches questions carrying ANY of
        the given tags. `search` is a case-insensitive substring match on
        title and description.
        """
        stmt: Select = select(Question)
        if search and search.strip():
            pattern = like_pattern(search.strip())
            stmt = stmt.where(
                or_(
                    Question.title.ilike(pattern, escape="\\"),
                    Question.description.ilike(pattern, escape="\\"),
                )
            )
        tag_names = normalize_tag_names(tags or [])
        if tag_names:
            stmt = stmt.where(
                Question.id.in_(
                    select(QuestionTag.question_id)
                    .join(Tag, Tag.id == QuestionTag.tag_id)
                    .where(Tag.name.in_(tag_names))
                )
            )
        if user_id is not None:
            stmt = stmt.where(Question.user_id == user_id)
        if sort == "unanswered":
            stmt = stmt.where(Question.answer_count == 0)

        total = await count_rows(db, stmt)
        rows = await db.scalars(
            stmt.order_by(*QUESTION_SORTS.get(sort, QUESTION_SORTS["newest"]))
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        return QuestionList(
            questions=await self._summaries(db, list(rows)),
            pagination=PaginationMeta.build(page, limit, total),
        )

    async def get_question(
        self, db: MonitoredSession, question_id: int, count_view: bool = True
    ) -> QuestionDetail:
        """Detail view; each call counts as one view unless `count_view` is off."""
        if count_view:
            await db.execute(
                update(Question)
                .where(Question.id == question_id)
                # updated_at listed so its onupdate default does not fire for a view
                .values(view_count=Question.view_count + 1, updated_at=Question.updated_at)
                .execution_options(synchronize_session=False)
            )
        question = await db.get(Question, question_id, populate_existing=True)
        if question is None:
            raise NotFoundError(resource="Question", resource_id=question_id)
        return await self._detail(db, question)

    async def get_by_slug(self, db: MonitoredSession, slug: str, count_view: bool = True) -> QuestionDetail:
        question_id = await db.scalar(select(Question.id).where(Question.slug == slug))
        if question_id is None:
            raise NotFoundError(resource="Question", resource_id=slug)
        return await self.get_question(db, question_id, count_view=count_view)

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_question(self, db: MonitoredSession, author: User, data: QuestionCreate) -> QuestionDetail:
        question = Question(
            title=data.title,
            description=data.description,
            slug=await self.unique_slug(db, data.title),
            user_id=author.id,
            status=QuestionStatus.ACTIVE.value,
            view_count=0,
            vote_count=0,
            answer_count=0,
        )
        db.add(question)
        try:
            await db.flush()
            await tag_service.set_question_tags(db, question.id, data.tags)
        except IntegrityError as e:
            raise ConflictError(
                "A question with the same title was created at the same moment. Please retry.",
                context={"slug": question.slug},
            ) from e
        await db.commit()
        logger.info("Question %d created by user %d (%s)", question.id, author.id, question.slug)
        return await self._detail(db, question)

    async def update_question(
        self, db: MonitoredSession, actor: User, question_id: int, data: QuestionUpdate
    ) -> QuestionDetail:
        question = await self._get_or_404(db, question_id, lock=True)
        if question.user_id != actor.id and not _can_moderate(actor):
            raise AuthorizationError("You can only edit your own questions")
        if data.status is not None and data.status.value != question.status and not _can_moderate(actor):
            raise AuthorizationError("Only moderators can open or close questions")

        if data.title is not None and data.title != question.title:
            question.title = data.title
            question.slug = await self.unique_slug(db, question.title, exclude_id=question.id)
        if data.description is not None:
            question.description = data.description
        if data.status is not None:
            question.status = data.status.value

        try:
            if data.tags is not None:
                await tag_service.set_question_tags(db, question.id, data.tags)
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("Question could not be updated due to a concurrent change") from e
        await db.commit()
        return await self._detail(db, question)

    async def purge(self, db: MonitoredSession, question: Question) -> None:
        """Delete a question and everything hanging off it. Does not commit."""
        answer_ids = list(await db.scalars(select(Answer.id).where(Answer.question_id == question.id)))
        await vote_service.delete_votes_for_targets(db, TargetType.ANSWER.value, answer_ids)
        await vote_service.delete_votes_for_targets(db, TargetType.QUESTION.value, [question.id])
        await tag_service.detach_all(db, question.id)

        question.accepted_answer_id = None
        await db.flush()
        for answer in await db.scalars(select(Answer).where(Answer.question_id == question.id)):
            await db.delete(answer)
        await db.flush()
        await db.delete(question)
        await db.flush()

    async def delete_question(self, db: MonitoredSession, actor: User, question_id: int) -> None:
        question = await self._get_or_404(db, question_id, lock=True)
        if question.user_id != actor.id and not _can_moderate(actor):
            raise AuthorizationError("You can only delete your own questions")
        await self.purge(db, question)
        await db.commit()
        logger.info("Question %d deleted by user %d", question_id, actor.id)

    # ── Acceptance (question side) ────────────────────────────────────────

    async def accept_answer(
        self, db: MonitoredSession, actor: User, question_id: int, answer_id: int
    ) -> AcceptOutcome:
        await self._get_or_404(db, question_id)
        answer = await db.get(Answer, answer_id)
        if answer is None:
            raise NotFoundError(resource="Answer", resource_id=answer_id)
        if answer.question_id != question_id:
            raise ValidationError("Answer does not belong to this question", field="answer_id")
        return await answer_service.accept(db, actor, answer_id)

    async def unaccept_answer(self, db: MonitoredSession, actor: User, question_id: int) -> AcceptOutcome:
        question = await self._get_or_404(db, question_id)
        if question.user_id != actor.id:
            raise AuthorizationError("Only the question author can change the accepted answer")
        if question.accepted_answer_id is None:
            raise ValidationError("This question has no accepted answer")
        return await answer_service.unaccept(db, actor, question.accepted_answer_id)


question_service = QuestionService()
