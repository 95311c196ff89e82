"""
StackIt Backend — Shared Response Schemas
===========================================

What:  The response envelope every endpoint returns, plus pagination and
       health payloads.
Why:   Clients parse one shape everywhere:
           {"success": true,  "message": "...", "data": {...}}
           {"success": false, "message": "...", "errors": [...]}
How:   `ApiResponse[T]` is a generic pydantic model; routes declare
       `response_model=ApiResponse[QuestionDetail]` and OpenAPI documents the
       concrete payload for each endpoint.
"""

import math
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class FieldError(BaseModel):
    """One input problem, pointing at the offending field when known."""

    field: Optional[str] = Field(default=None, description="Dotted path of the invalid field")
    message: str = Field(description="What is wrong with it")


class ApiResponse(BaseModel, Generic[DataT]):
    """
    Envelope for every JSON response.

    Example:
        {
            "success": true,
            "message": "Question created successfully",
            "data": {"id": 12, "slug": "how-to-code", ...}
        }
    """

    success: bool = Field(default=True, description="False for every error response")
    message: str = Field(default="OK", description="Human-readable summary")
    data: Optional[DataT] = Field(default=None, description="Payload, absent on most errors")
    errors: Optional[List[FieldError]] = Field(default=None, description="Per-field problems")


class ErrorResponse(BaseModel):
    """Shape of error bodies, used only to document `responses=` in routes."""

    success: bool = Field(default=False)
    message: str = Field(description="Human-readable error description")
    errors: Optional[List[FieldError]] = Field(default=None)
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class PaginationMeta(BaseModel):
    page: int = Field(description="1-based page number")
    limit: int = Field(description="Items per page")
    total: int = Field(description="Items matching the filters")
    total_pages: int = Field(description="Number of pages at this limit")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class DatabaseHealth(BaseModel):
    status: str = Field(description="connected | disconnected")
    pool: Dict[str, Any] = Field(default_factory=dict, description="Pool occupancy")


class HealthData(BaseModel):
    """
    Payload of GET /health.

    A healthy process that cannot reach its database is reported as
    unhealthy (HTTP 503) so load balancers stop routing to it.
    """

    status: str = Field(description="healthy | unhealthy")
    version: str
    environment: str
    uptime_seconds: float
    database: DatabaseHealth
    cache: Dict[str, Any] = Field(description="Hit/miss counters and entry count")
    realtime: Dict[str, Any] = Field(description="Open WebSocket connections")
