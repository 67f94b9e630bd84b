import logging

from fastapi import HTTPException, Request, status

from errors import AppError, ErrorCode
from services.pull_request import PullRequestService
from services.stats import StatsService
from services.teams import TeamService
from services.users import UserService


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PR_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.PR_MERGED: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_ASSIGNED: status.HTTP_409_CONFLICT,
    ErrorCode.NO_CANDIDATE: status.HTTP_409_CONFLICT,
    ErrorCode.TEAM_EXISTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.USER_EXISTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INTERNAL_SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_error(exc: AppError) -> HTTPException:
    message = exc.message
    if exc.code == ErrorCode.INTERNAL_SERVER_ERROR:
        # the cause stays in the log, clients get a generic message
        logger.error("Request failed: %s", exc, exc_info=exc)
        message = "internal server error"
    return HTTPException(
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={"error": {"code": exc.code.value, "message": message}},
    )


def get_pr_service(request: Request) -> PullRequestService:
    return request.app.state.pr_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_team_service(request: Request) -> TeamService:
    return request.app.state.team_service


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats_service
