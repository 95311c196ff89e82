"""
StackIt Backend — Tag Route Handlers
======================================

What:  /api/tags: browse and search tags; staff manage the catalogue.
Roles:
    POST        admin or moderator
    PUT/DELETE  admin only
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from stackit.constants import DEFAULT_TAG_PAGE_SIZE, MAX_TAG_PAGE_SIZE, Role
from stackit.database import MonitoredSession, get_db_session
from stackit.dependencies import require_roles
from stackit.schemas.common import ApiResponse, ErrorResponse
from stackit.schemas.tag import TagCreate, TagList, TagOut, TagUpdate
from stackit.services.tag_service import TAG_SORTS, tag_service

router = APIRouter(prefix="/api/tags", tags=["Tags"])


@router.get("", response_model=ApiResponse[TagList], summary="List tags")
async def list_tags(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_TAG_PAGE_SIZE, ge=1, le=MAX_TAG_PAGE_SIZE),
    search: Optional[str] = Query(default=None, max_length=50),
    sort: str = Query(default="usage", pattern="^(" + "|".join(TAG_SORTS) + ")$"),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[TagList]:
    return ApiResponse(data=await tag_service.list_tags(db, page=page, limit=limit, search=search, sort=sort))


@router.get("/popular", response_model=ApiResponse[list[TagOut]], summary="Most used tags")
async def popular_tags(
    limit: int = Query(default=20, ge=1, le=MAX_TAG_PAGE_SIZE),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[list[TagOut]]:
    return ApiResponse(data=await tag_service.popular(db, limit=limit))


@router.get("/search", response_model=ApiResponse[list[TagOut]], summary="Tag name autocomplete")
async def search_tags(
    q: str = Query(min_length=1, max_length=50),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[list[TagOut]]:
    return ApiResponse(data=await tag_service.search(db, q))


@router.get("/question/{question_id}", response_model=ApiResponse[list[TagOut]], summary="Tags of a question")
async def tags_for_question(
    question_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[list[TagOut]]:
    return ApiResponse(data=await tag_service.tags_for_question(db, question_id))


@router.get("/{tag_id}", response_model=ApiResponse[TagOut], summary="Single tag")
async def get_tag(
    tag_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[TagOut]:
    return ApiResponse(data=await tag_service.get_tag(db, tag_id))


@router.post(
    "",
    response_model=ApiResponse[TagOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(Role.ADMIN, Role.MODERATOR))],
    responses={409: {"description": "Tag name taken", "model": ErrorResponse}},
    summary="Create a tag",
)
async def create_tag(
    body: TagCreate,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[TagOut]:
    return ApiResponse(message="Tag created successfully", data=await tag_service.create_tag(db, body))


@router.put(
    "/{tag_id}",
    response_model=ApiResponse[TagOut],
    dependencies=[Depends(require_roles(Role.ADMIN))],
    summary="Edit a tag",
)
async def update_tag(
    tag_id: int,
    body: TagUpdate,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[TagOut]:
    return ApiResponse(message="Tag updated successfully", data=await tag_service.update_tag(db, tag_id, body))


@router.delete(
    "/{tag_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(require_roles(Role.ADMIN))],
    summary="Delete a tag",
)
async def delete_tag(
    tag_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await tag_service.delete_tag(db, tag_id)
    return ApiResponse(message="Tag deleted successfully")
