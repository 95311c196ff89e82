"""
StackIt Backend — Domain Constants
====================================

Enumerations and scoring weights shared by models, schemas and services.
Plain `str` enums so values compare equal to what is stored in the database.
"""

from enum import Enum


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


# Roles allowed to edit or delete other people's content
STAFF_ROLES = (Role.ADMIN.value, Role.MODERATOR.value)


class QuestionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class TargetType(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"


class NotificationType(str, Enum):
    ANSWER = "answer"
    VOTE = "vote"
    COMMENT = "comment"
    ACCEPT = "accept"
    MENTION = "mention"


UPVOTE = 1
DOWNVOTE = -1

# ── Reputation ────────────────────────────────────────────────────────────
# Points the author of the target receives for one vote of each kind.
REPUTATION_WEIGHTS = {
    TargetType.QUESTION.value: {UPVOTE: 5, DOWNVOTE: -2},
    TargetType.ANSWER.value: {UPVOTE: 10, DOWNVOTE: -2},
}

# Points the author of an answer receives while it is the accepted one
ACCEPTED_ANSWER_REPUTATION = 15


def reputation_for(target_type: str, vote_type: int) -> int:
    """Reputation carried by a single vote state; 0 means no vote."""
    if vote_type == 0:
        return 0
    return REPUTATION_WEIGHTS[target_type][vote_type]


# ── Pagination ────────────────────────────────────────────────────────────
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50
DEFAULT_TAG_PAGE_SIZE = 50
MAX_TAG_PAGE_SIZE = 100

DEFAULT_TAG_COLOR = "#2196F3"
MAX_TAGS_PER_QUESTION = 5
