import logging
from typing import List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from errors import AppError, ErrorCode
from models import entities
from models.models import PullRequestReviewer, User, utcnow
from repositories.base import BaseRepository, is_foreign_key_violation, is_unique_violation


def to_entity(user: User) -> entities.User:
    return entities.User(
        id=user.id,
        name=user.name,
        is_active=user.is_active,
        team_id=user.team_id,
        created_at=user.created_at,
    )


async def upsert_user(session: AsyncSession, user: entities.User) -> User:
    """Create the user or overwrite its name, activity and team."""
    existing = await session.get(User, user.id)
    if existing is not None:
        existing.name = user.name
        existing.is_active = user.is_active
        existing.team_id = user.team_id
    else:
        existing = User(
            id=user.id,
            name=user.name,
            is_active=user.is_active,
            team_id=user.team_id,
            created_at=utcnow(),
        )
        session.add(existing)

    try:
        await session.flush()
    except IntegrityError as exc:
        if is_unique_violation(exc):
            raise AppError(ErrorCode.USER_EXISTS, f"user with id '{user.id}' already exists") from exc
        if is_foreign_key_violation(exc):
            raise AppError(ErrorCode.NOT_FOUND, f"team '{user.team_id}' not found") from exc
        raise
    return existing


class UserRepository(BaseRepository):
    def __init__(self, session_maker: async_sessionmaker, logger: Optional[logging.Logger] = None):
        super().__init__(session_maker, logger or logging.getLogger(__name__))

    async def get_by_id(self, user_id: str) -> entities.User:
        async with self.transaction("get user by id") as session:
            user = await session.get(User, user_id)
            if user is None:
                raise AppError(ErrorCode.NOT_FOUND, f"user with id '{user_id}' not found")
        return to_entity(user)

    async def get_by_team(self, team_name: str) -> List[entities.User]:
        async with self.transaction("get users by team") as session:
            result = await session.execute(
                select(User).where(User.team_id == team_name).order_by(User.id)
            )
            users = result.scalars().all()
        return [to_entity(user) for user in users]

    async def upsert(self, user: entities.User) -> entities.User:
        async with self.transaction("create or update user") as session:
            row = await upsert_user(session, user)
        return to_entity(row)

    async def set_is_active(self, user_id: str, is_active: bool) -> entities.User:
        async with self.transaction("set user active status") as session:
            result = await session.execute(
                select(User).where(User.id == user_id).with_for_update()
            )
            user = result.scalar_one_or_none()
            if user is None:
                raise AppError(ErrorCode.NOT_FOUND, f"user with id '{user_id}' not found for update")
            user.is_active = is_active
        return to_entity(user)

    async def set_team_inactive(self, team_name: str) -> List[entities.User]:
        """Deactivate every active member of a team, returning the deactivated users."""
        async with self.transaction("deactivate team members") as session:
            result = await session.execute(
                select(User)
                .where(and_(User.team_id == team_name, User.is_active == True))
                .order_by(User.id)
                .with_for_update()
            )
            users = result.scalars().all()
            for user in users:
                user.is_active = False
        return [to_entity(user) for user in users]

    async def get_active_team_candidate_ids(self, author_id: str) -> List[str]:
        """Ids of active teammates of the author, excluding the author."""
        async with self.transaction("get active team candidates") as session:
            author = await session.get(User, author_id)
            if author is None:
                raise AppError(ErrorCode.NOT_FOUND, f"author with id '{author_id}' not found")

            result = await session.execute(
                select(User.id)
                .where(
                    and_(
                        User.team_id == author.team_id,
                        User.is_active == True,
                        User.id != author_id,
                    )
                )
                .order_by(User.id)
            )
            return [row[0] for row in result.all()]

    async def get_user_assignment_stats(self) -> List[entities.UserAssignmentStat]:
        assignment_count = func.count(PullRequestReviewer.reviewer_id).label("assignment_count")
        async with self.transaction("get user assignment stats") as session:
            result = await session.execute(
                select(User.id, User.name, assignment_count)
                .outerjoin(PullRequestReviewer, User.id == PullRequestReviewer.reviewer_id)
                .group_by(User.id, User.name)
                .order_by(assignment_count.desc(), User.name.asc())
            )
            rows = result.all()
        return [
            entities.UserAssignmentStat(user_id=user_id, username=name, assignment_count=count)
            for user_id, name, count in rows
        ]
