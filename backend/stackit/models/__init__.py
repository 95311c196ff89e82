"""
StackIt Backend — ORM Models
==============================

Importing this package registers every table with `Base.metadata`, which is
what Alembic autogenerate and the test schema setup rely on.
"""

from stackit.models.answer import Answer
from stackit.models.notification import Notification
from stackit.models.question import Question
from stackit.models.tag import QuestionTag, Tag
from stackit.models.user import User
from stackit.models.vote import Vote

__all__ = ["Answer", "Notification", "Question", "QuestionTag", "Tag", "User", "Vote"]
