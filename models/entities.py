"""Domain entities passed between repositories, services and routes."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


MAX_REVIEWERS = 2


class PullRequestStatus(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"


def needs_more_reviewers(status: PullRequestStatus, reviewer_count: int) -> bool:
    return status == PullRequestStatus.OPEN and reviewer_count < MAX_REVIEWERS


class PullRequest(BaseModel):
    id: str
    name: str
    author_id: str
    status: PullRequestStatus = PullRequestStatus.OPEN
    need_more_reviewers: bool = True
    assigned_reviewers: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None


class User(BaseModel):
    id: str
    name: str
    is_active: bool = True
    team_id: str
    created_at: Optional[datetime] = None


class Team(BaseModel):
    name: str
    created_at: Optional[datetime] = None


class UserAssignmentStat(BaseModel):
    user_id: str
    username: str
    assignment_count: int


class UserActivityChanged(BaseModel):
    """Event sent from the request path to the rebalancing worker."""

    user_id: str
    is_active: bool
