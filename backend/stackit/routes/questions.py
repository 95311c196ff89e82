"""
StackIt Backend — Question Route Handlers
===========================================

What:  /api/questions: listing, detail (by id or slug), CRUD, and accepting
       an answer from the question side.

Caching:
    GET responses under /api/questions are served by ResponseCacheMiddleware
    for up to 60 s, so a repeated detail request inside that window does not
    count another view.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from stackit.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from stackit.database import MonitoredSession, get_db_session
from stackit.dependencies import get_current_user, get_realtime
from stackit.models import User
from stackit.realtime import ConnectionManager
from stackit.schemas.answer import AcceptanceState
from stackit.schemas.common import ApiResponse, ErrorResponse
from stackit.schemas.question import QuestionCreate, QuestionDetail, QuestionList, QuestionUpdate
from stackit.services.question_service import QUESTION_SORTS, question_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/questions", tags=["Questions"])

SORT_PATTERN = "^(" + "|".join(QUESTION_SORTS) + ")$"


def _split_tags(tags: Optional[str]) -> list:
    return [t for t in (tags or "").split(",") if t.strip()]


@router.get(
    "",
    response_model=ApiResponse[QuestionList],
    summary="List questions",
    description=(
        "Paginated question list. `search` matches title and description, "
        "`tags` is comma separated and matches questions carrying any of them."
    ),
)
async def list_questions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(default=None, max_length=200),
    tags: Optional[str] = Query(default=None, description="Comma separated tag names"),
    sort: str = Query(default="newest", pattern=SORT_PATTERN),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionList]:
    result = await question_service.list_questions(
        db, page=page, limit=limit, search=search, tags=_split_tags(tags), sort=sort
    )
    return ApiResponse(data=result)


@router.get(
    "/id/{question_id}",
    response_model=ApiResponse[QuestionDetail],
    responses={404: {"description": "Question not found", "model": ErrorResponse}},
    summary="Question detail by id",
)
async def get_question(
    question_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionDetail]:
    return ApiResponse(data=await question_service.get_question(db, question_id))


@router.get(
    "/slug/{slug}",
    response_model=ApiResponse[QuestionDetail],
    responses={404: {"description": "Question not found", "model": ErrorResponse}},
    summary="Question detail by slug",
)
async def get_question_by_slug(
    slug: str,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionDetail]:
    return ApiResponse(data=await question_service.get_by_slug(db, slug))


@router.get("/tag/{tag}", response_model=ApiResponse[QuestionList], summary="Questions with a tag")
async def list_by_tag(
    tag: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str = Query(default="newest", pattern=SORT_PATTERN),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionList]:
    result = await question_service.list_questions(db, page=page, limit=limit, tags=[tag], sort=sort)
    return ApiResponse(data=result)


@router.get("/user/{user_id}", response_model=ApiResponse[QuestionList], summary="Questions asked by a user")
async def list_by_user(
    user_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str = Query(default="newest", pattern=SORT_PATTERN),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionList]:
    result = await question_service.list_questions(db, page=page, limit=limit, user_id=user_id, sort=sort)
    return ApiResponse(data=result)


@router.post(
    "",
    response_model=ApiResponse[QuestionDetail],
    status_code=status.HTTP_201_CREATED,
    summary="Ask a question",
)
async def create_question(
    body: QuestionCreate,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionDetail]:
    question = await question_service.create_question(db, user, body)
    return ApiResponse(message="Question created successfully", data=question)


@router.put(
    "/{question_id}",
    response_model=ApiResponse[QuestionDetail],
    responses={403: {"description": "Not the owner", "model": ErrorResponse}},
    summary="Edit a question",
)
async def update_question(
    question_id: int,
    body: QuestionUpdate,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[QuestionDetail]:
    question = await question_service.update_question(db, user, question_id, body)
    return ApiResponse(message="Question updated successfully", data=question)


@router.delete("/{question_id}", response_model=ApiResponse[None], summary="Delete a question")
async def delete_question(
    question_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await question_service.delete_question(db, user, question_id)
    return ApiResponse(message="Question deleted successfully")


@router.post(
    "/{question_id}/accept/{answer_id}",
    response_model=ApiResponse[AcceptanceState],
    summary="Accept an answer",
)
async def accept_answer(
    question_id: int,
    answer_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
    realtime: ConnectionManager = Depends(get_realtime),
) -> ApiResponse[AcceptanceState]:
    outcome = await question_service.accept_answer(db, user, question_id, answer_id)
    await realtime.push_notification(outcome.notification)
    return ApiResponse(
        message="Answer accepted",
        data=AcceptanceState(question_id=outcome.question_id, accepted_answer_id=outcome.accepted_answer_id),
    )


@router.delete(
    "/{question_id}/accept",
    response_model=ApiResponse[AcceptanceState],
    summary="Clear the accepted answer",
)
async def unaccept_answer(
    question_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AcceptanceState]:
    outcome = await question_service.unaccept_answer(db, user, question_id)
    return ApiResponse(
        message="Answer unaccepted",
        data=AcceptanceState(question_id=outcome.question_id, accepted_answer_id=None),
    )
