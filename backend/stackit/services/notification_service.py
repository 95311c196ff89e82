"""
StackIt Backend — Notification Service
========================================

What:  Inbox operations for the current user, plus the helpers other services
       call to create notifications as a side effect of their own work.
Why:   Notification rows are written inside the caller's transaction, so a vote
       or answer that rolls back never leaves a notification behind.
How:   `notify_*` helpers only add and flush; the calling service commits.
       Inbox operations (mark read, delete) commit themselves.

Scoping:
    Every inbox query filters on the recipient. Asking for someone else's
    notification yields 404, exactly like asking for a missing one.
"""

import logging
from typing import Optional

from sqlalchemy import delete, func, select, update

from stackit.constants import NotificationType, TargetType
from stackit.database import MonitoredSession
from stackit.exceptions import NotFoundError
from stackit.models import Answer, Notification, Question, User
from stackit.schemas.common import PaginationMeta
from stackit.schemas.notification import NotificationList, NotificationOut
from stackit.services.common import count_rows, page_offset

logger = logging.getLogger(__name__)


def _preview(text: str, length: int = 50) -> str:
    return text if len(text) <= length else text[:length] + "..."


class NotificationService:
    """Inbox queries and notification fan-in for the other services."""

    # ── Creation ──────────────────────────────────────────────────────────

    async def create(
        self,
        db: MonitoredSession,
        *,
        user_id: int,
        type: str,
        title: str,
        message: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            reference_type=reference_type,
            reference_id=reference_id,
            is_read=False,
        )
        db.add(notification)
        await db.flush()
        logger.debug("Notification %s queued for user %d", type, user_id)
        return notification

    async def notify_upvote(
        self,
        db: MonitoredSession,
        *,
        voter: User,
        author_id: int,
        target_type: str,
        target_id: int,
        question: Question,
    ) -> Optional[Notification]:
        if author_id == voter.id:
            return None
        noun = "question" if target_type == TargetType.QUESTION.value else "answer"
        return await self.create(
            db,
            user_id=author_id,
            type=NotificationType.VOTE.value,
            title=f"Someone upvoted your {noun}",
            message=f'{voter.username} upvoted your {noun}: "{_preview(question.title)}"',
            reference_type=target_type,
            reference_id=target_id,
        )

    async def notify_new_answer(
        self,
        db: MonitoredSession,
        *,
        question: Question,
        answer: Answer,
        answerer: User,
    ) -> Optional[Notification]:
        if question.user_id == answerer.id:
            return None
        return await self.create(
            db,
            user_id=question.user_id,
            type=NotificationType.ANSWER.value,
            title="New answer to your question",
            message=f'{answerer.username} answered your question: "{_preview(question.title)}"',
            reference_type=TargetType.QUESTION.value,
            reference_id=question.id,
        )

    async def notify_answer_accepted(
        self,
        db: MonitoredSession,
        *,
        question: Question,
        answer: Answer,
    ) -> Optional[Notification]:
        if answer.user_id == question.user_id:
            return None
        return await self.create(
            db,
            user_id=answer.user_id,
            type=NotificationType.ACCEPT.value,
            title="Your answer was accepted",
            message=f'Your answer to "{_preview(question.title)}" was accepted',
            reference_type=TargetType.ANSWER.value,
            reference_id=answer.id,
        )

    # ── Inbox ─────────────────────────────────────────────────────────────

    async def _get_owned(self, db: MonitoredSession, user_id: int, notification_id: int) -> Notification:
        notification = await db.scalar(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        if notification is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notification

    async def list_for_user(
        self,
        db: MonitoredSession,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> NotificationList:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        total = await count_rows(db, stmt)
        rows = await db.scalars(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        return NotificationList(
            notifications=[NotificationOut.model_validate(n) for n in rows],
            pagination=PaginationMeta.build(page, limit, total),
            unread=await self.count_unread(db, user_id),
        )

    async def get(self, db: MonitoredSession, user_id: int, notification_id: int) -> NotificationOut:
        return NotificationOut.model_validate(await self._get_owned(db, user_id, notification_id))

    async def count_unread(self, db: MonitoredSession, user_id: int) -> int:
        count = await db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return count or 0

    async def mark_read(self, db: MonitoredSession, user_id: int, notification_id: int) -> NotificationOut:
        notification = await self._get_owned(db, user_id, notification_id)
        notification.is_read = True
        await db.commit()
        return NotificationOut.model_validate(notification)

    async def mark_all_read(self, db: MonitoredSession, user_id: int) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        await db.commit()
        return result.rowcount or 0

    async def delete(self, db: MonitoredSession, user_id: int, notification_id: int) -> None:
        notification = await self._get_owned(db, user_id, notification_id)
        await db.delete(notification)
        await db.commit()

    async def delete_all(self, db: MonitoredSession, user_id: int) -> int:
        result = await db.execute(
            delete(Notification)
            .where(Notification.user_id == user_id)
        )
        await db.commit()
        return result.rowcount or 0


notification_service = NotificationService()
