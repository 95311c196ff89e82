"""
StackIt Backend — Answer Model
================================

At most one answer per question has is_accepted = true, and it is the one the
question's accepted_answer_id points at. AnswerService keeps both sides in
step inside one transaction.
"""

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Text, false, text
from sqlalchemy.orm import Mapped, mapped_column

from stackit.database import Base
from stackit.models.mixins import TimestampMixin


class Answer(TimestampMixin, Base):
    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    is_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    __table_args__ = (
        Index("idx_answers_question_id", "question_id"),
        Index("idx_answers_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Answer(id={self.id}, question_id={self.question_id}, "
            f"accepted={self.is_accepted})>"
        )
