from fastapi import APIRouter, Depends, status
from schemas import AssignmentStat, AssignmentStatsResponse
from errors import AppError
from routes.deps import get_stats_service, http_error
from services.stats import StatsService


router = APIRouter(prefix="/stats")


@router.get("/assignments", status_code=status.HTTP_200_OK,
                  summary="Количество назначений ревьювером по пользователям",
                  response_model=AssignmentStatsResponse)
async def assignments(stats_service: StatsService = Depends(get_stats_service)):
    try:
        stats = await stats_service.get_user_assignment_stats()
    except AppError as e:
        raise http_error(e)
    return AssignmentStatsResponse(stats=[AssignmentStat(**stat.model_dump()) for stat in stats])
