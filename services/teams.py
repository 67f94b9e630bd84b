import logging
from typing import List, Optional, Tuple

from errors import wrap_error
from models.entities import Team, User, UserActivityChanged
from repositories.teams import TeamRepository
from repositories.users import UserRepository
from services.events import EventChannel


class TeamService:
    def __init__(self, team_repo: TeamRepository, user_repo: UserRepository, channel: EventChannel,
                 logger: Optional[logging.Logger] = None):
        self.team_repo = team_repo
        self.user_repo = user_repo
        self.channel = channel
        self.logger = logger or logging.getLogger(__name__)

    async def add_team(self, team_name: str, members: List[User]) -> Tuple[Team, List[User]]:
        try:
            team, users = await self.team_repo.create_with_members(team_name, members)
        except Exception as exc:
            raise wrap_error(exc, f"failed to create team {team_name}")
        self.logger.info("Team %s created with %d members", team_name, len(users))
        return team, users

    async def get_team(self, team_name: str) -> Tuple[Team, List[User]]:
        try:
            team = await self.team_repo.get(team_name)
            users = await self.user_repo.get_by_team(team_name)
        except Exception as exc:
            raise wrap_error(exc, f"failed to get team {team_name}")
        return team, users

    async def bulk_deactivate(self, team_name: str) -> List[User]:
        """
        Deactivate every active member of the team.
        Each deactivated user gets its own rebalancing event, so reviewer
        reassignment happens in the background worker.
        """
        try:
            await self.team_repo.get(team_name)
            deactivated = await self.user_repo.set_team_inactive(team_name)
        except Exception as exc:
            raise wrap_error(exc, f"failed to deactivate team {team_name}")

        for user in deactivated:
            self.channel.publish(UserActivityChanged(user_id=user.id, is_active=False))
        self.logger.info("Team %s: %d users deactivated", team_name, len(deactivated))
        return deactivated
