from fastapi import APIRouter, Depends, status
from schemas import (
    PullRequestCreateRequest, PullRequestCreateResponse,
    PullRequestMergeRequest, PullRequestMergeResponse,
    PullRequestReassignRequest, PullRequestReassignResponse,
    PullRequestResponse, ErrorResponse
)
from errors import AppError
from routes.deps import get_pr_service, http_error
from services.pull_request import PullRequestService


router = APIRouter(prefix="/pullRequest")


@router.post("/create", status_code=status.HTTP_201_CREATED,
                summary="Создать PR и автоматически назначить до 2 ревьюверов из команды автора",
                response_model=PullRequestCreateResponse,
                responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}})
async def create(request: PullRequestCreateRequest,
                 pr_service: PullRequestService = Depends(get_pr_service)):
    try:
        pr = await pr_service.create_pull_request(
            request.pull_request_id,
            request.pull_request_name,
            request.author_id
        )
    except AppError as e:
        raise http_error(e)
    return PullRequestCreateResponse(pr=PullRequestResponse.from_entity(pr))


@router.post("/merge", status_code=status.HTTP_200_OK,
                summary="Пометить PR как MERGED (повторный merge отклоняется)",
                response_model=PullRequestMergeResponse,
                responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}})
async def merge(request: PullRequestMergeRequest,
                pr_service: PullRequestService = Depends(get_pr_service)):
    try:
        pr = await pr_service.merge(request.pull_request_id)
    except AppError as e:
        raise http_error(e)
    return PullRequestMergeResponse(pr=PullRequestResponse.from_entity(pr))


@router.post("/reassign", status_code=status.HTTP_200_OK,
                summary="Переназначить конкретного ревьювера на другого из команды автора",
                response_model=PullRequestReassignResponse,
                responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}})
async def reassign(request: PullRequestReassignRequest,
                   pr_service: PullRequestService = Depends(get_pr_service)):
    try:
        pr, replaced_by = await pr_service.reassign(
            request.pull_request_id,
            request.old_user_id
        )
    except AppError as e:
        raise http_error(e)
    return PullRequestReassignResponse(
        pr=PullRequestResponse.from_entity(pr),
        replaced_by=replaced_by
    )
