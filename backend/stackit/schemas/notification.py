"""
StackIt Backend — Notification Schemas
========================================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from stackit.schemas.common import PaginationMeta


class NotificationOut(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    notifications: List[NotificationOut]
    pagination: PaginationMeta
    unread: int


class UnreadCount(BaseModel):
    unread: int


class BulkUpdateResult(BaseModel):
    updated: int = 0


class BulkDeleteResult(BaseModel):
    deleted: int = 0
