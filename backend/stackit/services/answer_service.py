"""
StackIt Backend — Answer Service
==================================

What:  Posting, editing, deleting and accepting answers.
Who:   routes/answers.py, and QuestionService for the question-side
       accept/unaccept endpoints.

Counters kept in step (same transaction as the change):
    create   question.answer_count + 1
    delete   question.answer_count - 1 (floor 0), votes on the answer dropped,
             accepted_answer_id cleared if it pointed here
    accept   previous accepted answer (if any) flipped off, this one on,
             question.accepted_answer_id set, answer author +15 reputation
    unaccept reverse of accept, including the -15

Acceptance bonus is not paid for answering your own question.
Deleting content never touches reputation.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select

from stackit.constants import ACCEPTED_ANSWER_REPUTATION, STAFF_ROLES, QuestionStatus, TargetType
from stackit.database import MonitoredSession
from stackit.exceptions import AuthorizationError, NotFoundError, ValidationError
from stackit.models import Answer, Notification, Question, User
from stackit.schemas.answer import AnswerCreate, AnswerList, AnswerOut, AnswerUpdate
from stackit.schemas.common import PaginationMeta
from stackit.services.common import count_rows, page_offset, user_summaries
from stackit.services.notification_service import notification_service
from stackit.services.vote_service import vote_service

logger = logging.getLogger(__name__)

ANSWER_SORTS = {
    "votes": (Answer.vote_count.desc(), Answer.created_at.asc(), Answer.id.asc()),
    "newest": (Answer.created_at.desc(), Answer.id.desc()),
    "oldest": (Answer.created_at.asc(), Answer.id.asc()),
}


@dataclass
class AnswerOutcome:
    answer: AnswerOut
    question_id: int
    notification: Optional[Notification] = None


@dataclass
class AcceptOutcome:
    answer: AnswerOut
    question_id: int
    accepted_answer_id: Optional[int]
    notification: Optional[Notification] = None


class AnswerService:
    """Business logic for answers and acceptance."""

    async def _serialize(self, db: MonitoredSession, answers: List[Answer]) -> List[AnswerOut]:
        authors = await user_summaries(db, (a.user_id for a in answers))
        return [
            AnswerOut(
                id=a.id,
                content=a.content,
                question_id=a.question_id,
                author=authors[a.user_id],
                is_accepted=a.is_accepted,
                vote_count=a.vote_count,
                created_at=a.created_at,
                updated_at=a.updated_at,
            )
            for a in answers
        ]

    async def _one(self, db: MonitoredSession, answer: Answer) -> AnswerOut:
        return (await self._serialize(db, [answer]))[0]

    async def _get_or_404(self, db: MonitoredSession, answer_id: int, lock: bool = False) -> Answer:
        answer = await db.get(Answer, answer_id, with_for_update=lock or None)
        if answer is None:
            raise NotFoundError(resource="Answer", resource_id=answer_id)
        return answer

    async def _adjust_reputation(self, db: MonitoredSession, user_id: int, delta: int) -> None:
        user = await db.get(User, user_id, with_for_update=True)
        if user is not None:
            user.reputation += delta

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_answer(self, db: MonitoredSession, answer_id: int) -> AnswerOut:
        return await self._one(db, await self._get_or_404(db, answer_id))

    async def list_for_question(
        self,
        db: MonitoredSession,
        question_id: int,
        page: int = 1,
        limit: int = 10,
        sort: str = "votes",
    ) -> AnswerList:
        """Answers to one question; the accepted answer always comes first."""
        if await db.get(Question, question_id) is None:
            raise NotFoundError(resource="Question", resource_id=question_id)
        stmt = select(Answer).where(Answer.question_id == question_id)
        total = await count_rows(db, stmt)
        rows = await db.scalars(
            stmt.order_by(Answer.is_accepted.desc(), *ANSWER_SORTS.get(sort, ANSWER_SORTS["votes"]))
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        return AnswerList(
            answers=await self._serialize(db, list(rows)),
            pagination=PaginationMeta.build(page, limit, total),
        )

    async def list_for_user(
        self, db: MonitoredSession, user_id: int, page: int = 1, limit: int = 10
    ) -> AnswerList:
        if await db.get(User, user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        stmt = select(Answer).where(Answer.user_id == user_id)
        total = await count_rows(db, stmt)
        rows = await db.scalars(
            stmt.order_by(Answer.created_at.desc(), Answer.id.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        return AnswerList(
            answers=await self._serialize(db, list(rows)),
            pagination=PaginationMeta.build(page, limit, total),
        )

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_answer(self, db: MonitoredSession, author: User, data: AnswerCreate) -> AnswerOutcome:
        question = await db.get(Question, data.question_id, with_for_update=True)
        if question is None:
            raise NotFoundError(resource="Question", resource_id=data.question_id)
        if question.status == QuestionStatus.CLOSED.value:
            raise ValidationError("This question is closed and no longer accepts answers")

        answer = Answer(
            content=data.content,
            question_id=question.id,
            user_id=author.id,
            is_accepted=False,
            vote_count=0,
        )
        db.add(answer)
        question.answer_count += 1
        await db.flush()

        notification = await notification_service.notify_new_answer(
            db, question=question, answer=answer, answerer=author
        )
        await db.commit()
        logger.info("Answer %d posted on question %d by user %d", answer.id, question.id, author.id)
        return AnswerOutcome(answer=await self._one(db, answer), question_id=question.id, notification=notification)

    async def update_answer(
        self, db: MonitoredSession, actor: User, answer_id: int, data: AnswerUpdate
    ) -> AnswerOut:
        answer = await self._get_or_404(db, answer_id, lock=True)
        if answer.user_id != actor.id:
            raise AuthorizationError("You can only edit your own answers")
        answer.content = data.content
        await db.flush()
        await db.commit()
        return await self._one(db, answer)

    async def remove(self, db: MonitoredSession, answer: Answer) -> None:
        """Delete an answer and fix up its question. Does not commit."""
        question = await db.get(Question, answer.question_id, with_for_update=True)
        if question is not None:
            question.answer_count = max(0, question.answer_count - 1)
            if question.accepted_answer_id == answer.id:
                question.accepted_answer_id = None
        await vote_service.delete_votes_for_targets(db, TargetType.ANSWER.value, [answer.id])
        await db.flush()
        await db.delete(answer)
        await db.flush()

    async def delete_answer(self, db: MonitoredSession, actor: User, answer_id: int) -> int:
        """Returns the id of the question the answer belonged to."""
        answer = await self._get_or_404(db, answer_id, lock=True)
        if answer.user_id != actor.id and actor.role not in STAFF_ROLES:
            raise AuthorizationError("You can only delete your own answers")
        question_id = answer.question_id
        await self.remove(db, answer)
        await db.commit()
        logger.info("Answer %d deleted by user %d", answer_id, actor.id)
        return question_id

    # ── Acceptance ────────────────────────────────────────────────────────

    async def _question_for_owner(self, db: MonitoredSession, actor: User, answer: Answer) -> Question:
        question = await db.get(Question, answer.question_id, with_for_update=True)
        if question is None:
            raise NotFoundError(resource="Question", resource_id=answer.question_id)
        if question.user_id != actor.id:
            raise AuthorizationError("Only the question author can accept answers")
        return question

    async def _set_accepted(self, db: MonitoredSession, question: Question, answer: Answer, accepted: bool) -> None:
        answer.is_accepted = accepted
        if answer.user_id != question.user_id:
            delta = ACCEPTED_ANSWER_REPUTATION if accepted else -ACCEPTED_ANSWER_REPUTATION
            await self._adjust_reputation(db, answer.user_id, delta)

    async def accept(self, db: MonitoredSession, actor: User, answer_id: int) -> AcceptOutcome:
        """
        Mark an answer as the accepted one.

        Re-accepting the current accepted answer is a no-op. Accepting a
        different answer moves the flag (and the bonus) over to it.
        """
        answer = await self._get_or_404(db, answer_id, lock=True)
        question = await self._question_for_owner(db, actor, answer)

        notification = None
        if question.accepted_answer_id != answer.id or not answer.is_accepted:
            previous = await db.scalars(
                select(Answer)
                .where(
                    Answer.question_id == question.id,
                    Answer.is_accepted.is_(True),
                    Answer.id != answer.id,
                )
                .with_for_update()
            )
            for other in previous:
                await self._set_accepted(db, question, other, False)

            if not answer.is_accepted:
                await self._set_accepted(db, question, answer, True)
            question.accepted_answer_id = answer.id
            await db.flush()
            notification = await notification_service.notify_answer_accepted(
                db, question=question, answer=answer
            )
            await db.commit()
            logger.info("Answer %d accepted on question %d", answer.id, question.id)

        return AcceptOutcome(
            answer=await self._one(db, answer),
            question_id=question.id,
            accepted_answer_id=question.accepted_answer_id,
            notification=notification,
        )

    async def unaccept(self, db: MonitoredSession, actor: User, answer_id: int) -> AcceptOutcome:
        answer = await self._get_or_404(db, answer_id, lock=True)
        question = await self._question_for_owner(db, actor, answer)
        if not answer.is_accepted:
            raise ValidationError("This answer is not accepted")

        await self._set_accepted(db, question, answer, False)
        if question.accepted_answer_id == answer.id:
            question.accepted_answer_id = None
        await db.flush()
        await db.commit()
        logger.info("Answer %d unaccepted on question %d", answer.id, question.id)
        return AcceptOutcome(
            answer=await self._one(db, answer),
            question_id=question.id,
            accepted_answer_id=None,
        )


answer_service = AnswerService()
