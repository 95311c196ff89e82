"""
StackIt Backend — Tag Schemas
===============================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from stackit.constants import DEFAULT_TAG_COLOR
from stackit.schemas.common import PaginationMeta

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class TagSummary(BaseModel):
    id: int
    name: str
    color: str

    model_config = {"from_attributes": True}


class TagOut(TagSummary):
    description: Optional[str] = None
    usage_count: int
    created_at: datetime


class TagList(BaseModel):
    tags: List[TagOut]
    pagination: PaginationMeta


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    color: str = Field(default=DEFAULT_TAG_COLOR, pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        name = v.strip().lower()
        if not name:
            raise ValueError("Tag name cannot be empty")
        return name


class TagUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        name = v.strip().lower()
        if not name:
            raise ValueError("Tag name cannot be empty")
        return name
