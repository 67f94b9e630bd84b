from fastapi import APIRouter, Depends, status, Query
from schemas import (
    SetIsActiveRequest, UserUpdateResponse, UserResponse,
    GetReviewResponse, PullRequestShort,
    ErrorResponse
)
from errors import AppError
from routes.deps import get_user_service, http_error
from services.users import UserService


router = APIRouter(prefix="/users")


@router.post("/setIsActive", status_code=status.HTTP_200_OK,
                   summary="Установить флаг активности пользователя",
                   response_model=UserUpdateResponse,
                   responses={404: {"model": ErrorResponse}})
async def setIsActive(request: SetIsActiveRequest, user_service: UserService = Depends(get_user_service)):
    try:
        user = await user_service.set_is_active(request.user_id, request.is_active)
    except AppError as e:
        raise http_error(e)
    return UserUpdateResponse(user=UserResponse.from_entity(user))


@router.get("/getReview", status_code=status.HTTP_200_OK,
                  summary="Получить PR'ы, где пользователь назначен ревьювером",
                  response_model=GetReviewResponse)
async def getReview(user_id: str = Query(..., description="Идентификатор пользователя"),
                    user_service: UserService = Depends(get_user_service)):
    try:
        pull_requests = await user_service.get_review(user_id)
    except AppError as e:
        raise http_error(e)
    return GetReviewResponse(
        user_id=user_id,
        pull_requests=[PullRequestShort.from_entity(pr) for pr in pull_requests]
    )
