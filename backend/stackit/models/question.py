"""
StackIt Backend — Question Model
==================================

Counters on this table are denormalized and maintained by the services:
    vote_count    signed sum of votes targeting the question (VoteService)
    answer_count  number of answers (AnswerService create/delete)
    view_count    detail-page views (QuestionService)

accepted_answer_id, when set, always names an answer of this question whose
is_accepted flag is true. The FK is created after `answers` exists because
the two tables reference each other.
"""

from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from stackit.database import Base
from stackit.models.mixins import TimestampMixin


class Question(TimestampMixin, Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # URL identifier derived from the title; "-1", "-2", ... on collision
    slug: Mapped[str] = mapped_column(String(300), nullable=False, unique=True, index=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Author",
    )

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    answer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    accepted_answer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey(
            "answers.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_questions_accepted_answer_id",
        ),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        server_default=text("'active'"),
    )

    __table_args__ = (
        CheckConstraint("status IN ('active', 'closed')", name="ck_questions_status"),
        Index("idx_questions_user_id", "user_id"),
        Index("idx_questions_created_at", "created_at"),
        Index("idx_questions_vote_count", "vote_count"),
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, slug='{self.slug}')>"
