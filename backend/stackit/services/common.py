"""
StackIt Backend — Query Helpers Shared by Services
====================================================
"""

from typing import Dict, Iterable

from sqlalchemy import Select, func, select

from stackit.database import MonitoredSession
from stackit.models import User
from stackit.schemas.user import UserSummary


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def like_pattern(term: str) -> str:
    """Wrap a user search term for LIKE, escaping its wildcards."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def count_rows(db: MonitoredSession, stmt: Select) -> int:
    """COUNT(*) over a select, ignoring its ORDER BY / LIMIT."""
    subquery = stmt.order_by(None).limit(None).offset(None).subquery()
    return (await db.scalar(select(func.count()).select_from(subquery))) or 0


async def user_summaries(db: MonitoredSession, user_ids: Iterable[int]) -> Dict[int, UserSummary]:
    """Author blocks for a batch of users, one query."""
    ids = set(user_ids)
    if not ids:
        return {}
    users = await db.scalars(select(User).where(User.id.in_(ids)))
    return {user.id: UserSummary.model_validate(user) for user in users}
