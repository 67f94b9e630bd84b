import logging
import random
from typing import List, Optional, Tuple

from errors import AppError, wrap_error
from models.entities import MAX_REVIEWERS, PullRequest, PullRequestStatus
from repositories.pull_request import PullRequestRepository
from repositories.users import UserRepository
from services.selection import choose_reviewers


class PullRequestService:
    """Creation, merge and reviewer reassignment of pull requests.

    Domain errors from the repositories pass through unchanged; anything
    else is wrapped as INTERNAL_SERVER_ERROR.
    """

    def __init__(self, user_repo: UserRepository, pr_repo: PullRequestRepository,
                 logger: Optional[logging.Logger] = None, rng: Optional[random.Random] = None):
        self.user_repo = user_repo
        self.pr_repo = pr_repo
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng or random.Random()

    async def create_pull_request(self, pull_request_id: str, pull_request_name: str, author_id: str) -> PullRequest:
        """
        Create a PR and assign up to MAX_REVIEWERS random active teammates of the author.
        needMoreReviewers is set when fewer candidates were available.
        """
        try:
            candidates = await self.user_repo.get_active_team_candidate_ids(author_id)
        except Exception as exc:
            raise wrap_error(exc, "failed to get team candidates")

        reviewer_ids = choose_reviewers(candidates, MAX_REVIEWERS, self.rng)
        pr = PullRequest(
            id=pull_request_id,
            name=pull_request_name,
            author_id=author_id,
            status=PullRequestStatus.OPEN,
        )
        try:
            created = await self.pr_repo.create_with_reviewers(pr, reviewer_ids)
        except Exception as exc:
            raise wrap_error(exc, "failed to create pull request with reviewers")

        self.logger.info(
            "Pull request %s created by %s with reviewers %s", created.id, author_id, created.assigned_reviewers
        )
        return created

    async def merge(self, pull_request_id: str) -> PullRequest:
        try:
            merged = await self.pr_repo.merge(pull_request_id)
        except Exception as exc:
            raise wrap_error(exc, f"failed to merge pull request {pull_request_id}")
        self.logger.info("Pull request %s merged", pull_request_id)
        return merged

    async def reassign(self, pull_request_id: str, old_user_id: str) -> Tuple[PullRequest, str]:
        """Replace one reviewer; returns the updated PR and the new reviewer id."""
        try:
            pr, new_reviewer_id = await self.pr_repo.reassign(pull_request_id, old_user_id)
        except AppError as exc:
            self.logger.info("Reassign on %s from %s rejected: %s", pull_request_id, old_user_id, exc.code.value)
            raise
        except Exception as exc:
            raise wrap_error(exc, f"failed to reassign reviewer for pull request {pull_request_id}")

        self.logger.info("Pull request %s: reviewer %s replaced by %s", pull_request_id, old_user_id, new_reviewer_id)
        return pr, new_reviewer_id

    async def get_user_reviews(self, user_id: str) -> List[PullRequest]:
        try:
            return await self.pr_repo.get_user_reviews(user_id)
        except Exception as exc:
            raise wrap_error(exc, f"failed to get reviews of user {user_id}")
