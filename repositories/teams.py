import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from errors import AppError, ErrorCode
from models import entities
from models.models import Team, utcnow
from repositories.base import BaseRepository, is_unique_violation
from repositories.users import to_entity as user_to_entity, upsert_user


def to_entity(team: Team) -> entities.Team:
    return entities.Team(name=team.name, created_at=team.created_at)


class TeamRepository(BaseRepository):
    def __init__(self, session_maker: async_sessionmaker, logger: Optional[logging.Logger] = None):
        super().__init__(session_maker, logger or logging.getLogger(__name__))

    async def create_with_members(self, team_name: str,
                                  members: List[entities.User]) -> Tuple[entities.Team, List[entities.User]]:
        """Insert the team and create or move its members into it, atomically."""
        async with self.transaction("create team") as session:
            if await session.get(Team, team_name) is not None:
                raise AppError(ErrorCode.TEAM_EXISTS, f"team with name '{team_name}' already exists")

            team = Team(name=team_name, created_at=utcnow())
            session.add(team)
            try:
                await session.flush()
            except IntegrityError as exc:
                if is_unique_violation(exc):
                    raise AppError(ErrorCode.TEAM_EXISTS, f"team with name '{team_name}' already exists") from exc
                raise

            users = []
            for member in members:
                row = await upsert_user(session, member.model_copy(update={"team_id": team_name}))
                users.append(row)

        return to_entity(team), [user_to_entity(user) for user in users]

    async def get(self, team_name: str) -> entities.Team:
        async with self.transaction("get team") as session:
            team = await session.get(Team, team_name)
            if team is None:
                raise AppError(ErrorCode.NOT_FOUND, f"team with name '{team_name}' not found")
        return to_entity(team)
