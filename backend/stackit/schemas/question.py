"""
StackIt Backend — Question Schemas
====================================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from stackit.constants import MAX_TAGS_PER_QUESTION, QuestionStatus
from stackit.schemas.common import PaginationMeta
from stackit.schemas.tag import TagSummary
from stackit.schemas.user import UserSummary


def _clean_tag_names(names: List[str]) -> List[str]:
    cleaned = []
    for raw in names:
        name = raw.strip().lower()
        if not name:
            raise ValueError("Tag names cannot be empty")
        if len(name) > 50:
            raise ValueError(f"Tag '{name[:20]}...' is longer than 50 characters")
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


class QuestionCreate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    title: str = Field(min_length=10, max_length=255)
    description: str = Field(min_length=20, max_length=10_000)
    tags: List[str] = Field(min_length=1, max_length=MAX_TAGS_PER_QUESTION)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return _clean_tag_names(v)


class QuestionUpdate(BaseModel):
    """Every field optional; tags, when given, replace the whole set."""

    model_config = {"str_strip_whitespace": True}

    title: Optional[str] = Field(default=None, min_length=10, max_length=255)
    description: Optional[str] = Field(default=None, min_length=20, max_length=10_000)
    tags: Optional[List[str]] = Field(default=None, min_length=1, max_length=MAX_TAGS_PER_QUESTION)
    status: Optional[QuestionStatus] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_tag_names(v) if v is not None else v


class QuestionSummary(BaseModel):
    """List item: everything but the full description."""

    id: int
    title: str
    slug: str
    excerpt: str = Field(description="First 200 characters of the description")
    author: UserSummary
    tags: List[TagSummary]
    vote_count: int
    answer_count: int
    view_count: int
    accepted_answer_id: Optional[int] = None
    status: str
    created_at: datetime
    updated_at: datetime


class QuestionDetail(QuestionSummary):
    description: str


class QuestionList(BaseModel):
    questions: List[QuestionSummary]
    pagination: PaginationMeta
