from fastapi import APIRouter, Depends, status, Query
from schemas import (
    TeamRequest, TeamCreateResponse, TeamResponse, TeamMember,
    BulkDeactivateRequest, BulkDeactivateResponse,
    ErrorResponse
)
from errors import AppError
from models.entities import User
from routes.deps import get_team_service, http_error
from services.teams import TeamService


router = APIRouter(prefix="/team")


@router.post("/add", status_code=status.HTTP_201_CREATED,
                  summary="Создать команду с участниками (создаёт/обновляет пользователей)",
                  response_model=TeamCreateResponse,
                  responses={400: {"model": ErrorResponse}})
async def add(request: TeamRequest, team_service: TeamService = Depends(get_team_service)):
    members = [
        User(id=member.user_id, name=member.username, is_active=member.is_active, team_id=request.team_name)
        for member in request.members
    ]
    try:
        team, users = await team_service.add_team(request.team_name, members)
    except AppError as e:
        raise http_error(e)
    return TeamCreateResponse(team=TeamResponse(
        team_name=team.name,
        members=[TeamMember.from_entity(user) for user in users]
    ))


@router.get("/get", status_code=status.HTTP_200_OK,
                 summary="Получить команду с участниками",
                 response_model=TeamResponse,
                 responses={404: {"model": ErrorResponse}})
async def get(team_name: str = Query(..., description="Уникальное имя команды"),
              team_service: TeamService = Depends(get_team_service)):
    try:
        team, users = await team_service.get_team(team_name)
    except AppError as e:
        raise http_error(e)
    return TeamResponse(team_name=team.name, members=[TeamMember.from_entity(user) for user in users])


@router.post("/bulkDeactivate", status_code=status.HTTP_200_OK,
                  summary="Массовая деактивация пользователей команды с фоновым переназначением ревьюверов",
                  response_model=BulkDeactivateResponse,
                  responses={404: {"model": ErrorResponse}})
async def bulk_deactivate(request: BulkDeactivateRequest, team_service: TeamService = Depends(get_team_service)):
    try:
        users = await team_service.bulk_deactivate(request.team_name)
    except AppError as e:
        raise http_error(e)
    return BulkDeactivateResponse(
        team_name=request.team_name,
        deactivated_users=[user.id for user in users]
    )
