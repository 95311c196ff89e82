"""
StackIt Backend — Vote Route Handlers
=======================================

What:  /api/votes: cast/toggle, cancel, and read votes.
Real-time:
    Every change emits `vote_updated` {target_type, target_id, vote_count}
    to the room of the question the target belongs to; a new upvote also
    pushes a `notification` to the target's author.
"""

from fastapi import APIRouter, Depends

from stackit.constants import TargetType
from stackit.database import MonitoredSession, get_db_session
from stackit.dependencies import get_current_user, get_realtime
from stackit.models import User
from stackit.realtime import ConnectionManager
from stackit.schemas.common import ApiResponse, ErrorResponse
from stackit.schemas.vote import UserVote, VoteCounts, VoteCreate, VoteResult
from stackit.services.vote_service import VoteOutcome, vote_service

router = APIRouter(prefix="/api/votes", tags=["Votes"])


async def broadcast_vote(realtime: ConnectionManager, outcome: VoteOutcome) -> None:
    """`vote_updated` to the question room, plus the upvote notification if any."""
    result = outcome.result
    await realtime.emit_to_question(
        outcome.question_id,
        "vote_updated",
        {
            "target_type": result.target_type.value,
            "target_id": result.target_id,
            "vote_count": result.vote_count,
        },
    )
    await realtime.push_notification(outcome.notification)


@router.post(
    "",
    response_model=ApiResponse[VoteResult],
    responses={
        403: {"description": "Voting on your own content", "model": ErrorResponse},
        404: {"description": "Target not found", "model": ErrorResponse},
    },
    summary="Cast, switch or cancel a vote",
)
async def cast_vote(
    body: VoteCreate,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
    realtime: ConnectionManager = Depends(get_realtime),
) -> ApiResponse[VoteResult]:
    outcome = await vote_service.cast_vote(db, user, body.target_type.value, body.target_id, body.vote_type)
    await broadcast_vote(realtime, outcome)
    message = "Vote removed" if outcome.result.user_vote == 0 else "Vote recorded"
    return ApiResponse(message=message, data=outcome.result)


@router.get("/user/{target_type}/{target_id}", response_model=ApiResponse[UserVote], summary="Caller's vote")
async def get_user_vote(
    target_type: TargetType,
    target_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[UserVote]:
    return ApiResponse(data=await vote_service.get_user_vote(db, user.id, target_type.value, target_id))


@router.delete(
    "/{target_type}/{target_id}",
    response_model=ApiResponse[VoteResult],
    responses={404: {"description": "No vote to remove", "model": ErrorResponse}},
    summary="Cancel the caller's vote",
)
async def remove_vote(
    target_type: TargetType,
    target_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
    realtime: ConnectionManager = Depends(get_realtime),
) -> ApiResponse[VoteResult]:
    outcome = await vote_service.remove_vote(db, user, target_type.value, target_id)
    await broadcast_vote(realtime, outcome)
    return ApiResponse(message="Vote removed", data=outcome.result)


@router.get("/count/{target_type}/{target_id}", response_model=ApiResponse[VoteCounts], summary="Vote totals")
async def get_vote_counts(
    target_type: TargetType,
    target_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[VoteCounts]:
    return ApiResponse(data=await vote_service.get_vote_counts(db, target_type.value, target_id))
