from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from models import entities


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


class TeamMember(BaseModel):
    user_id: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    is_active: bool = True

    @classmethod
    def from_entity(cls, user: entities.User) -> "TeamMember":
        return cls(user_id=user.id, username=user.name, is_active=user.is_active)


class TeamRequest(BaseModel):
    team_name: str = Field(..., min_length=1)
    members: List[TeamMember]


class TeamResponse(BaseModel):
    team_name: str
    members: List[TeamMember]


class TeamCreateResponse(BaseModel):
    team: TeamResponse


class UserResponse(BaseModel):
    user_id: str
    username: str
    team_name: str
    is_active: bool

    @classmethod
    def from_entity(cls, user: entities.User) -> "UserResponse":
        return cls(user_id=user.id, username=user.name, team_name=user.team_id, is_active=user.is_active)


class UserUpdateResponse(BaseModel):
    user: UserResponse


class SetIsActiveRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    is_active: bool


class PullRequestShort(BaseModel):
    pull_request_id: str
    pull_request_name: str
    author_id: str
    status: str

    @classmethod
    def from_entity(cls, pr: entities.PullRequest) -> "PullRequestShort":
        return cls(
            pull_request_id=pr.id,
            pull_request_name=pr.name,
            author_id=pr.author_id,
            status=pr.status.value,
        )


class PullRequestResponse(BaseModel):
    pull_request_id: str
    pull_request_name: str
    author_id: str
    status: str
    assigned_reviewers: List[str]
    need_more_reviewers: bool = False
    createdAt: Optional[datetime] = None
    mergedAt: Optional[datetime] = None

    @classmethod
    def from_entity(cls, pr: entities.PullRequest) -> "PullRequestResponse":
        return cls(
            pull_request_id=pr.id,
            pull_request_name=pr.name,
            author_id=pr.author_id,
            status=pr.status.value,
            assigned_reviewers=pr.assigned_reviewers,
            need_more_reviewers=pr.need_more_reviewers,
            createdAt=pr.created_at,
            mergedAt=pr.merged_at,
        )


class PullRequestCreateRequest(BaseModel):
    pull_request_id: str = Field(..., min_length=1)
    pull_request_name: str = Field(..., min_length=1)
    author_id: str = Field(..., min_length=1)


class PullRequestCreateResponse(BaseModel):
    pr: PullRequestResponse


class PullRequestMergeRequest(BaseModel):
    pull_request_id: str = Field(..., min_length=1)


class PullRequestMergeResponse(BaseModel):
    pr: PullRequestResponse


class PullRequestReassignRequest(BaseModel):
    pull_request_id: str = Field(..., min_length=1)
    old_user_id: str = Field(..., min_length=1)


class PullRequestReassignResponse(BaseModel):
    pr: PullRequestResponse
    replaced_by: str


class GetReviewResponse(BaseModel):
    user_id: str
    pull_requests: List[PullRequestShort]


class BulkDeactivateRequest(BaseModel):
    team_name: str = Field(..., min_length=1)


class BulkDeactivateResponse(BaseModel):
    team_name: str
    deactivated_users: List[str]


class AssignmentStat(BaseModel):
    user_id: str
    username: str
    assignment_count: int


class AssignmentStatsResponse(BaseModel):
    stats: List[AssignmentStat]
