"""
StackIt Backend — User Model
==============================

What:  ORM model for the `users` table.
Who:   Written by AuthService (register, profile, password, deletion) and by
       VoteService/AnswerService, which adjust `reputation`.

Table Design:
    - username / email: unique; login is by email, display is by username
    - role: user | moderator | admin (moderators and admins may edit or delete
      other people's content; only admins manage tags)
    - reputation: integer score, can go negative; only ever changed by votes
      received and accepted answers, inside the same transaction as the event
    - Deleting a user cascades to their questions, answers, votes and
      notifications at the database level. AuthService walks those paths
      first so counters elsewhere stay correct.
"""

from typing import Optional

from sqlalchemy import CheckConstraint, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from stackit.database import Base
from stackit.models.mixins import TimestampMixin


class User(TimestampMixin, Base):
    """A registered account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="Public display name, unique",
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Login identifier, stored lowercase",
    )

    # bcrypt hash; never serialized by any response schema
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="user",
        server_default=text("'user'"),
    )
    reputation: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Score from votes received and accepted answers",
    )

    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint("role IN ('user', 'moderator', 'admin')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
