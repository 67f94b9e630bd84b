from typing import List

from errors import wrap_error
from models.entities import UserAssignmentStat
from repositories.users import UserRepository


class StatsService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def get_user_assignment_stats(self) -> List[UserAssignmentStat]:
        try:
            return await self.user_repo.get_user_assignment_stats()
        except Exception as exc:
            raise wrap_error(exc, "failed to get user assignment stats")
