"""
StackIt Backend — Vote Model
==============================

One row per (user, target). target is polymorphic (question or answer), so
there is no foreign key to the target; QuestionService and AnswerService
delete votes explicitly when they remove content.

vote_type is +1 or -1. "No vote" is the absence of a row.
"""

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stackit.database import Base
from stackit.models.mixins import TimestampMixin


class Vote(TimestampMixin, Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Voter",
    )
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    vote_type: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "target_type", "target_id", name="uq_votes_user_target"),
        CheckConstraint("vote_type IN (1, -1)", name="ck_votes_vote_type"),
        CheckConstraint("target_type IN ('question', 'answer')", name="ck_votes_target_type"),
        Index("idx_votes_target", "target_type", "target_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Vote(user_id={self.user_id}, {self.target_type}:{self.target_id}, "
            f"vote_type={self.vote_type})>"
        )
