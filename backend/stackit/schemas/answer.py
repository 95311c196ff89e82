"""
StackIt Backend — Answer Schemas
==================================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from stackit.schemas.common import PaginationMeta
from stackit.schemas.user import UserSummary


class AnswerCreate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    question_id: int = Field(gt=0)
    content: str = Field(min_length=10, max_length=10_000)


class AnswerUpdate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    content: str = Field(min_length=10, max_length=10_000)


class AnswerOut(BaseModel):
    id: int
    content: str
    question_id: int
    author: UserSummary
    is_accepted: bool
    vote_count: int
    user_vote: int = Field(default=0, description="Caller's vote on this answer; 0 when anonymous or not voted")
    created_at: datetime
    updated_at: datetime


class AnswerList(BaseModel):
    answers: List[AnswerOut]
    pagination: Optional[PaginationMeta] = None


class AcceptanceState(BaseModel):
    """Question-side view after an accept/unaccept."""

    question_id: int
    accepted_answer_id: Optional[int] = None
