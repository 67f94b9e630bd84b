import logging
import random
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from errors import AppError, ErrorCode
from models import entities
from models.entities import MAX_REVIEWERS, PullRequestStatus, needs_more_reviewers
from models.models import PullRequest, PullRequestReviewer, User, utcnow
from repositories.base import BaseRepository, is_foreign_key_violation, is_unique_violation
from services.selection import choose_one


def to_entity(pr: PullRequest, reviewer_ids: Iterable[str]) -> entities.PullRequest:
    return entities.PullRequest(
        id=pr.id,
        name=pr.name,
        author_id=pr.author_id,
        status=PullRequestStatus(pr.status),
        need_more_reviewers=pr.need_more_reviewers,
        assigned_reviewers=list(reviewer_ids),
        created_at=pr.created_at,
        merged_at=pr.merged_at,
    )


class PullRequestRepository(BaseRepository):
    """Transactional operations on pull requests and their reviewer links.

    Every read-then-write operation locks the pull request rows it touches
    with SELECT ... FOR UPDATE before reading reviewer links, so concurrent
    operations on the same pull request are serialized by the database.
    """

    def __init__(self, session_maker: async_sessionmaker, logger: Optional[logging.Logger] = None,
                 rng: Optional[random.Random] = None):
        super().__init__(session_maker, logger or logging.getLogger(__name__))
        self.rng = rng or random.Random()

    async def _lock(self, session: AsyncSession, pr_id: str) -> Optional[PullRequest]:
        result = await session.execute(
            select(PullRequest).where(PullRequest.id == pr_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def _reviewer_ids(self, session: AsyncSession, pr_id: str) -> List[str]:
        result = await session.execute(
            select(PullRequestReviewer.reviewer_id)
            .where(PullRequestReviewer.pull_request_id == pr_id)
            .order_by(PullRequestReviewer.reviewer_id)
        )
        return [row[0] for row in result.all()]

    async def _find_replacement(self, session: AsyncSession, pr: PullRequest,
                                exclude: Iterable[str] = ()) -> Optional[str]:
        """Pick one active teammate of the author who is not yet on the pull request."""
        author_team = select(User.team_id).where(User.id == pr.author_id).scalar_subquery()
        assigned = select(PullRequestReviewer.reviewer_id).where(
            PullRequestReviewer.pull_request_id == pr.id
        )
        query = select(User.id).where(
            and_(
                User.team_id == author_team,
                User.is_active == True,
                User.id != pr.author_id,
                User.id.notin_(assigned),
            )
        )
        excluded = list(exclude)
        if excluded:
            query = query.where(User.id.notin_(excluded))

        result = await session.execute(query.order_by(User.id))
        return choose_one([row[0] for row in result.all()], self.rng)

    async def create_with_reviewers(self, pr: entities.PullRequest, reviewer_ids: List[str]) -> entities.PullRequest:
        async with self.transaction("create pull request") as session:
            if await session.get(PullRequest, pr.id) is not None:
                raise AppError(ErrorCode.PR_EXISTS, f"pull request with id '{pr.id}' already exists")
            if await session.get(User, pr.author_id) is None:
                raise AppError(ErrorCode.NOT_FOUND, f"author with id '{pr.author_id}' not found")

            now = utcnow()
            new_pr = PullRequest(
                id=pr.id,
                name=pr.name,
                author_id=pr.author_id,
                status=PullRequestStatus.OPEN.value,
                need_more_reviewers=needs_more_reviewers(PullRequestStatus.OPEN, len(reviewer_ids)),
                created_at=now,
                updated_at=now,
            )
            session.add(new_pr)
            try:
                await session.flush()
            except IntegrityError as exc:
                if is_unique_violation(exc):
                    raise AppError(ErrorCode.PR_EXISTS, f"pull request with id '{pr.id}' already exists") from exc
                if is_foreign_key_violation(exc):
                    raise AppError(ErrorCode.NOT_FOUND, f"author with id '{pr.author_id}' not found") from exc
                raise

            if reviewer_ids:
                session.add_all([
                    PullRequestReviewer(pull_request_id=new_pr.id, reviewer_id=reviewer_id)
                    for reviewer_id in reviewer_ids
                ])
                try:
                    await session.flush()
                except IntegrityError as exc:
                    if is_foreign_key_violation(exc):
                        raise AppError(ErrorCode.NOT_FOUND, "one of the reviewers not found") from exc
                    raise

        return to_entity(new_pr, reviewer_ids)

    async def merge(self, pr_id: str) -> entities.PullRequest:
        async with self.transaction("merge pull request") as session:
            pr = await self._lock(session, pr_id)
            if pr is None:
                raise AppError(ErrorCode.NOT_FOUND, f"pull request with id '{pr_id}' not found")
            if pr.status == PullRequestStatus.MERGED.value:
                raise AppError(ErrorCode.PR_MERGED, f"pull request '{pr_id}' is already merged")

            now = utcnow()
            pr.status = PullRequestStatus.MERGED.value
            pr.need_more_reviewers = False
            pr.merged_at = now
            pr.updated_at = now
            reviewers = await self._reviewer_ids(session, pr_id)

        return to_entity(pr, reviewers)

    async def reassign(self, pr_id: str, old_reviewer_id: str) -> Tuple[entities.PullRequest, str]:
        async with self.transaction("reassign reviewer") as session:
            pr = await self._lock(session, pr_id)
            if pr is None:
                raise AppError(ErrorCode.NOT_FOUND, f"pull request with id '{pr_id}' not found")
            if pr.status == PullRequestStatus.MERGED.value:
                raise AppError(ErrorCode.PR_MERGED, "cannot reassign on merged PR")

            current = await self._reviewer_ids(session, pr_id)
            if old_reviewer_id not in current:
                raise AppError(ErrorCode.NOT_ASSIGNED, "old reviewer is not assigned to this pull request")

            new_reviewer_id = await self._find_replacement(session, pr, exclude=[old_reviewer_id])
            if new_reviewer_id is None:
                raise AppError(ErrorCode.NO_CANDIDATE, "no replacement candidate found")

            await session.execute(
                delete(PullRequestReviewer)
                .where(
                    and_(
                        PullRequestReviewer.pull_request_id == pr_id,
                        PullRequestReviewer.reviewer_id == old_reviewer_id,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            session.add(PullRequestReviewer(pull_request_id=pr_id, reviewer_id=new_reviewer_id))
            pr.updated_at = utcnow()

            reviewers = [r for r in current if r != old_reviewer_id] + [new_reviewer_id]

        return to_entity(pr, reviewers), new_reviewer_id

    async def get(self, pr_id: str) -> entities.PullRequest:
        async with self.transaction("get pull request") as session:
            pr = await session.get(PullRequest, pr_id)
            if pr is None:
                raise AppError(ErrorCode.NOT_FOUND, f"pull request with id '{pr_id}' not found")
            reviewers = await self._reviewer_ids(session, pr_id)
        return to_entity(pr, reviewers)

    async def get_user_reviews(self, user_id: str) -> List[entities.PullRequest]:
        async with self.transaction("get user reviews") as session:
            result = await session.execute(
                select(PullRequest)
                .join(PullRequestReviewer, PullRequest.id == PullRequestReviewer.pull_request_id)
                .where(PullRequestReviewer.reviewer_id == user_id)
                .order_by(PullRequest.created_at, PullRequest.id)
            )
            prs = result.scalars().all()
            if not prs:
                return []

            links = await session.execute(
                select(PullRequestReviewer.pull_request_id, PullRequestReviewer.reviewer_id)
                .where(PullRequestReviewer.pull_request_id.in_([pr.id for pr in prs]))
                .order_by(PullRequestReviewer.reviewer_id)
            )
            reviewers: Dict[str, List[str]] = {}
            for pr_id, reviewer_id in links.all():
                reviewers.setdefault(pr_id, []).append(reviewer_id)

        return [to_entity(pr, reviewers.get(pr.id, [])) for pr in prs]

    async def assign_to_needy_prs(self, user_id: str) -> List[str]:
        """Add an active user to every understaffed open pull request of their team.

        Returns ids of the pull requests the user was added to.
        """
        async with self.transaction("assign user to needy pull requests") as session:
            user = await session.get(User, user_id)
            if user is None:
                raise AppError(ErrorCode.NOT_FOUND, f"user with id '{user_id}' not found")
            if not user.is_active:
                self.logger.info("User %s is no longer active, nothing to assign", user_id)
                return []

            already_reviewing = select(PullRequestReviewer.pull_request_id).where(
                PullRequestReviewer.reviewer_id == user_id
            )
            # Lock in id order so concurrent bulk updates cannot deadlock
            result = await session.execute(
                select(PullRequest)
                .join(User, User.id == PullRequest.author_id)
                .where(
                    and_(
                        PullRequest.status == PullRequestStatus.OPEN.value,
                        PullRequest.need_more_reviewers == True,
                        User.team_id == user.team_id,
                        PullRequest.author_id != user_id,
                        PullRequest.id.notin_(already_reviewing),
                    )
                )
                .order_by(PullRequest.id)
                .with_for_update(of=PullRequest)
            )
            needy = result.scalars().all()

            now = utcnow()
            assigned = []
            for pr in needy:
                current = await self._reviewer_ids(session, pr.id)
                # a concurrent reassign may have picked this user already
                if user_id in current:
                    continue
                count = len(current)
                if count >= MAX_REVIEWERS:
                    pr.need_more_reviewers = False
                    continue

                session.add(PullRequestReviewer(pull_request_id=pr.id, reviewer_id=user_id))
                pr.need_more_reviewers = needs_more_reviewers(PullRequestStatus.OPEN, count + 1)
                pr.updated_at = now
                assigned.append(pr.id)

        return assigned

    async def reassign_from_all_prs(self, user_id: str) -> Dict[str, Optional[str]]:
        """Remove a user from every open pull request and backfill each one.

        Returns a mapping of affected pull request id to the replacement
        reviewer id, or None when no candidate was found.
        """
        async with self.transaction("reassign user from open pull requests") as session:
            result = await session.execute(
                select(PullRequest)
                .join(PullRequestReviewer, PullRequest.id == PullRequestReviewer.pull_request_id)
                .where(
                    and_(
                        PullRequestReviewer.reviewer_id == user_id,
                        PullRequest.status == PullRequestStatus.OPEN.value,
                    )
                )
                .order_by(PullRequest.id)
                .with_for_update(of=PullRequest)
            )
            affected = result.scalars().all()
            if not affected:
                return {}

            # Links swapped away by a reassign committed while we waited for
            # the row locks are not returned here.
            deleted = await session.execute(
                delete(PullRequestReviewer)
                .where(
                    and_(
                        PullRequestReviewer.reviewer_id == user_id,
                        PullRequestReviewer.pull_request_id.in_([pr.id for pr in affected]),
                    )
                )
                .returning(PullRequestReviewer.pull_request_id)
                .execution_options(synchronize_session=False)
            )
            removed_from = {row[0] for row in deleted.all()}

            now = utcnow()
            replacements: Dict[str, Optional[str]] = {}
            for pr in affected:
                if pr.id not in removed_from:
                    continue

                remaining = await self._reviewer_ids(session, pr.id)
                if len(remaining) >= MAX_REVIEWERS:
                    pr.need_more_reviewers = False
                    pr.updated_at = now
                    continue

                new_reviewer_id = await self._find_replacement(session, pr, exclude=[user_id])
                if new_reviewer_id is None:
                    self.logger.warning("No replacement for user %s on pull request %s", user_id, pr.id)
                    pr.need_more_reviewers = True
                else:
                    session.add(PullRequestReviewer(pull_request_id=pr.id, reviewer_id=new_reviewer_id))
                    await session.flush()
                    pr.need_more_reviewers = needs_more_reviewers(PullRequestStatus.OPEN, len(remaining) + 1)
                pr.updated_at = now
                replacements[pr.id] = new_reviewer_id

        return replacements
