"""
StackIt Backend — Answer Route Handlers
=========================================

What:  /api/answers: post, read, edit, delete, accept/unaccept.
Real-time:
    POST /          → `answer_added` to question:{id}, `notification` to the
                      question author
    PATCH accept    → `notification` to the answer author
    Events are emitted after AnswerService has committed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from stackit.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TargetType
from stackit.database import MonitoredSession, get_db_session
from stackit.dependencies import get_current_user, get_optional_user, get_realtime
from stackit.models import User
from stackit.realtime import ConnectionManager
from stackit.schemas.answer import AnswerCreate, AnswerList, AnswerOut, AnswerUpdate
from stackit.schemas.common import ApiResponse, ErrorResponse
from stackit.services.answer_service import ANSWER_SORTS, answer_service
from stackit.services.vote_service import vote_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/answers", tags=["Answers"])


@router.post(
    "",
    response_model=ApiResponse[AnswerOut],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Question is closed", "model": ErrorResponse},
        404: {"description": "Question not found", "model": ErrorResponse},
    },
    summary="Answer a question",
)
async def create_answer(
    body: AnswerCreate,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
    realtime: ConnectionManager = Depends(get_realtime),
) -> ApiResponse[AnswerOut]:
    outcome = await answer_service.create_answer(db, user, body)
    await realtime.emit_to_question(
        outcome.question_id,
        "answer_added",
        outcome.answer.model_dump(mode="json"),
    )
    await realtime.push_notification(outcome.notification)
    return ApiResponse(message="Answer posted successfully", data=outcome.answer)


@router.get("/question/{question_id}", response_model=ApiResponse[AnswerList], summary="Answers to a question")
async def list_for_question(
    question_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str = Query(default="votes", pattern="^(" + "|".join(ANSWER_SORTS) + ")$"),
    viewer: Optional[User] = Depends(get_optional_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AnswerList]:
    result = await answer_service.list_for_question(db, question_id, page=page, limit=limit, sort=sort)
    if viewer is not None:
        votes = await vote_service.user_votes_for(
            db, viewer.id, TargetType.ANSWER.value, (answer.id for answer in result.answers)
        )
        for answer in result.answers:
            answer.user_vote = votes.get(answer.id, 0)
    return ApiResponse(data=result)


@router.get("/user/{user_id}", response_model=ApiResponse[AnswerList], summary="Answers written by a user")
async def list_for_user(
    user_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AnswerList]:
    return ApiResponse(data=await answer_service.list_for_user(db, user_id, page=page, limit=limit))


@router.get("/{answer_id}", response_model=ApiResponse[AnswerOut], summary="Single answer")
async def get_answer(
    answer_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AnswerOut]:
    return ApiResponse(data=await answer_service.get_answer(db, answer_id))


@router.put("/{answer_id}", response_model=ApiResponse[AnswerOut], summary="Edit your answer")
async def update_answer(
    answer_id: int,
    body: AnswerUpdate,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AnswerOut]:
    answer = await answer_service.update_answer(db, user, answer_id, body)
    return ApiResponse(message="Answer updated successfully", data=answer)


@router.delete("/{answer_id}", response_model=ApiResponse[None], summary="Delete an answer")
async def delete_answer(
    answer_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await answer_service.delete_answer(db, user, answer_id)
    return ApiResponse(message="Answer deleted successfully")


@router.patch("/{answer_id}/accept", response_model=ApiResponse[AnswerOut], summary="Accept an answer")
async def accept_answer(
    answer_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
    realtime: ConnectionManager = Depends(get_realtime),
) -> ApiResponse[AnswerOut]:
    outcome = await answer_service.accept(db, user, answer_id)
    await realtime.push_notification(outcome.notification)
    return ApiResponse(message="Answer accepted", data=outcome.answer)


@router.patch("/{answer_id}/unaccept", response_model=ApiResponse[AnswerOut], summary="Unaccept an answer")
async def unaccept_answer(
    answer_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AnswerOut]:
    outcome = await answer_service.unaccept(db, user, answer_id)
    return ApiResponse(message="Answer unaccepted", data=outcome.answer)
