"""
StackIt Backend — Tag and QuestionTag Models
==============================================

Tag names are stored lowercase and unique. usage_count mirrors the number of
question_tags rows pointing at the tag; TagService changes both together.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from stackit.constants import DEFAULT_TAG_COLOR
from stackit.database import Base
from stackit.models.mixins import TimestampMixin, utcnow


class Tag(TimestampMixin, Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        default=DEFAULT_TAG_COLOR,
        server_default=text(f"'{DEFAULT_TAG_COLOR}'"),
        comment="Hex color used by the frontend chip",
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Number of questions linked to this tag",
    )

    __table_args__ = (Index("idx_tags_usage_count", "usage_count"),)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}', usage={self.usage_count})>"


class QuestionTag(Base):
    """Join row; the composite primary key makes each pair unique."""

    __tablename__ = "question_tags"

    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (Index("idx_question_tags_tag_id", "tag_id"),)
