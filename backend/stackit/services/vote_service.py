"""
StackIt Backend — Vote Service
================================

What:  Casting, cancelling and reading votes on questions and answers.
Why:   A vote touches four things that must agree: the vote row, the target's
       vote_count, the author's reputation and (for upvotes) a notification.
       They are written in one transaction or not at all.

Tri-state toggle (old → requested → stored):
    none  → +1   → +1     insert
    +1    → +1   → none   cancel (delete row)
    +1    → -1   → -1     switch (update row)

    vote_count   += new - old              (a missing vote counts as 0)
    reputation   += weight(new) - weight(old)
                    question: +5 / -2   answer: +10 / -2

    Example: upvote then switch to downvote on a question
        vote_count  0 → 1 → -1
        reputation  0 → 5 → -2

Policy:
    - Voting on your own content is rejected (403), so it can never move your
      own reputation.
    - Only a transition INTO an upvote notifies the author.

Concurrency:
    The target row and the existing vote are read FOR UPDATE (PostgreSQL), so
    two votes on the same target serialize. A duplicate insert that still
    slips through trips the unique constraint and surfaces as 409.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import IntegrityError

from stackit.constants import DOWNVOTE, UPVOTE, TargetType, reputation_for
from stackit.database import MonitoredSession
from stackit.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from stackit.models import Answer, Notification, Question, User, Vote
from stackit.schemas.vote import UserVote, VoteCounts, VoteResult
from stackit.services.notification_service import notification_service

logger = logging.getLogger(__name__)

Target = Union[Question, Answer]


@dataclass
class VoteOutcome:
    """Result of a vote plus what the route needs to broadcast it."""

    result: VoteResult
    question_id: int
    notification: Optional[Notification] = None


class VoteService:
    """Vote state, denormalized counters and reputation."""

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _check_target_type(target_type: str) -> str:
        valid = {t.value for t in TargetType}
        value = target_type.value if isinstance(target_type, TargetType) else target_type
        if value not in valid:
            raise ValidationError(
                f"Invalid target type '{target_type}'. Must be one of: {sorted(valid)}",
                field="target_type",
            )
        return value

    async def _load_target(
        self, db: MonitoredSession, target_type: str, target_id: int, lock: bool = False
    ) -> Target:
        model = Question if target_type == TargetType.QUESTION.value else Answer
        target = await db.get(model, target_id, with_for_update=lock or None)
        if target is None:
            raise NotFoundError(resource=model.__name__, resource_id=target_id)
        return target

    async def _apply(
        self,
        db: MonitoredSession,
        target_type: str,
        target: Target,
        old: int,
        new: int,
    ) -> None:
        """Move vote_count and the author's reputation from state `old` to `new`."""
        target.vote_count += new - old
        delta = reputation_for(target_type, new) - reputation_for(target_type, old)
        if delta:
            author = await db.get(User, target.user_id, with_for_update=True)
            if author is not None:
                author.reputation += delta

    async def _existing_vote(
        self, db: MonitoredSession, user_id: int, target_type: str, target_id: int, lock: bool = False
    ) -> Optional[Vote]:
        stmt = select(Vote).where(
            Vote.user_id == user_id,
            Vote.target_type == target_type,
            Vote.target_id == target_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return await db.scalar(stmt)

    async def _outcome(
        self,
        db: MonitoredSession,
        target_type: str,
        target: Target,
        user_vote: int,
        notification: Optional[Notification] = None,
    ) -> VoteOutcome:
        counts = await self._count(db, target_type, target.id)
        question_id = target.id if isinstance(target, Question) else target.question_id
        return VoteOutcome(
            result=VoteResult(
                target_type=target_type,
                target_id=target.id,
                vote_count=target.vote_count,
                user_vote=user_vote,
                upvotes=counts.upvotes,
                downvotes=counts.downvotes,
            ),
            question_id=question_id,
            notification=notification,
        )

    async def _count(self, db: MonitoredSession, target_type: str, target_id: int) -> VoteCounts:
        row = (
            await db.execute(
                select(
                    func.coalesce(func.sum(case((Vote.vote_type == UPVOTE, 1), else_=0)), 0),
                    func.coalesce(func.sum(case((Vote.vote_type == DOWNVOTE, 1), else_=0)), 0),
                ).where(Vote.target_type == target_type, Vote.target_id == target_id)
            )
        ).one()
        upvotes, downvotes = int(row[0]), int(row[1])
        return VoteCounts(upvotes=upvotes, downvotes=downvotes, total=upvotes - downvotes)

    # ── Commands ──────────────────────────────────────────────────────────

    async def cast_vote(
        self,
        db: MonitoredSession,
        voter: User,
        target_type: str,
        target_id: int,
        vote_type: int,
    ) -> VoteOutcome:
        """
        Apply the tri-state toggle and commit.

        Raises:
            ValidationError:    vote_type not in {1, -1} or unknown target type
            NotFoundError:      target does not exist
            AuthorizationError: voter is the target's author
            ConflictError:      concurrent duplicate vote insert
        """
        target_type = self._check_target_type(target_type)
        if vote_type not in (UPVOTE, DOWNVOTE):
            raise ValidationError("Vote type must be 1 (upvote) or -1 (downvote)", field="vote_type")

        target = await self._load_target(db, target_type, target_id, lock=True)
        if target.user_id == voter.id:
            raise AuthorizationError("You cannot vote on your own content")

        existing = await self._existing_vote(db, voter.id, target_type, target_id, lock=True)
        old = existing.vote_type if existing is not None else 0

        if existing is None:
            db.add(Vote(user_id=voter.id, target_type=target_type, target_id=target_id, vote_type=vote_type))
            new = vote_type
        elif existing.vote_type == vote_type:
            await db.delete(existing)
            new = 0
        else:
            existing.vote_type = vote_type
            new = vote_type

        await self._apply(db, target_type, target, old, new)

        notification = None
        if new == UPVOTE and old != UPVOTE:
            question = target if isinstance(target, Question) else await db.get(Question, target.question_id)
            notification = await notification_service.notify_upvote(
                db,
                voter=voter,
                author_id=target.user_id,
                target_type=target_type,
                target_id=target_id,
                question=question,
            )

        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError(
                "Your vote was recorded concurrently. Refresh and try again.",
                context={"target_type": target_type, "target_id": target_id},
            ) from e

        outcome = await self._outcome(db, target_type, target, new, notification)
        await db.commit()
        logger.info(
            "Vote %s:%d by user %d: %d -> %d (count %d)",
            target_type, target_id, voter.id, old, new, target.vote_count,
        )
        return outcome

    async def remove_vote(
        self, db: MonitoredSession, voter: User, target_type: str, target_id: int
    ) -> VoteOutcome:
        """Explicit cancellation; same counter and reputation rules as a toggle-off."""
        target_type = self._check_target_type(target_type)
        target = await self._load_target(db, target_type, target_id, lock=True)
        existing = await self._existing_vote(db, voter.id, target_type, target_id, lock=True)
        if existing is None:
            raise NotFoundError(resource="Vote")

        old = existing.vote_type
        await db.delete(existing)
        await self._apply(db, target_type, target, old, 0)
        await db.flush()

        outcome = await self._outcome(db, target_type, target, 0)
        await db.commit()
        return outcome

    async def retract_all_for_user(self, db: MonitoredSession, user_id: int) -> int:
        """
        Undo every vote cast by a user (account deletion).

        Targets' counters and their authors' reputation are rolled back as if
        each vote had been cancelled. Does not commit.
        """
        votes = list(await db.scalars(select(Vote).where(Vote.user_id == user_id).with_for_update()))
        for vote in votes:
            model = Question if vote.target_type == TargetType.QUESTION.value else Answer
            target = await db.get(model, vote.target_id, with_for_update=True)
            if target is not None:
                await self._apply(db, vote.target_type, target, vote.vote_type, 0)
            await db.delete(vote)
        await db.flush()
        return len(votes)

    async def delete_votes_for_targets(
        self, db: MonitoredSession, target_type: str, target_ids: Iterable[int]
    ) -> None:
        """Drop votes on content that is being deleted. Reputation is left as is."""
        ids = list(target_ids)
        if not ids:
            return
        await db.execute(
            delete(Vote).where(Vote.target_type == target_type, Vote.target_id.in_(ids))
        )

    # ── Queries ───────────────────────────────────────────────────────────

    async def get_user_vote(
        self, db: MonitoredSession, user_id: int, target_type: str, target_id: int
    ) -> UserVote:
        target_type = self._check_target_type(target_type)
        await self._load_target(db, target_type, target_id)
        vote = await self._existing_vote(db, user_id, target_type, target_id)
        return UserVote(
            target_type=target_type,
            target_id=target_id,
            vote_type=vote.vote_type if vote is not None else 0,
        )

    async def user_votes_for(
        self, db: MonitoredSession, user_id: int, target_type: str, target_ids: Iterable[int]
    ) -> Dict[int, int]:
        """The user's vote on each of `target_ids` that they voted on."""
        ids = list(target_ids)
        if not ids:
            return {}
        rows = await db.execute(
            select(Vote.target_id, Vote.vote_type).where(
                Vote.user_id == user_id,
                Vote.target_type == self._check_target_type(target_type),
                Vote.target_id.in_(ids),
            )
        )
        return {target_id: vote_type for target_id, vote_type in rows.all()}

    async def get_vote_counts(self, db: MonitoredSession, target_type: str, target_id: int) -> VoteCounts:
        target_type = self._check_target_type(target_type)
        await self._load_target(db, target_type, target_id)
        return await self._count(db, target_type, target_id)


vote_service = VoteService()
