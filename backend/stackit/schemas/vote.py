"""
StackIt Backend — Vote Schemas
================================
"""

from typing import Literal

from pydantic import BaseModel, Field

from stackit.constants import TargetType


class VoteCreate(BaseModel):
    """
    Casting the same direction twice cancels the vote; the opposite direction
    switches it.
    """

    target_type: TargetType
    target_id: int = Field(gt=0)
    vote_type: Literal[1, -1] = Field(description="1 for upvote, -1 for downvote")


class VoteCounts(BaseModel):
    upvotes: int
    downvotes: int
    total: int = Field(description="upvotes - downvotes")


class VoteResult(BaseModel):
    target_type: TargetType
    target_id: int
    vote_count: int = Field(description="Target's vote_count after this vote")
    user_vote: int = Field(description="Caller's resulting vote: 1, -1, or 0 when cancelled")
    upvotes: int
    downvotes: int


class UserVote(BaseModel):
    target_type: TargetType
    target_id: int
    vote_type: int = Field(description="1, -1, or 0 when the caller has not voted")
