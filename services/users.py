import logging
from typing import List, Optional

from errors import wrap_error
from models.entities import PullRequest, User, UserActivityChanged
from repositories.pull_request import PullRequestRepository
from repositories.users import UserRepository
from services.events import EventChannel


class UserService:
    def __init__(self, user_repo: UserRepository, pr_repo: PullRequestRepository, channel: EventChannel,
                 logger: Optional[logging.Logger] = None):
        self.user_repo = user_repo
        self.pr_repo = pr_repo
        self.channel = channel
        self.logger = logger or logging.getLogger(__name__)

    async def set_is_active(self, user_id: str, is_active: bool) -> User:
        """
        POST /users/setIsActive
        Persist the flag, then hand a rebalancing event to the worker.
        The event is dropped if the channel is full; the request still succeeds.
        """
        try:
            user = await self.user_repo.set_is_active(user_id, is_active)
        except Exception as exc:
            raise wrap_error(exc, f"failed to set active status of user {user_id}")

        self.channel.publish(UserActivityChanged(user_id=user.id, is_active=is_active))
        return user

    async def get_review(self, user_id: str) -> List[PullRequest]:
        """
        GET /users/getReview
        PRs where the user is currently a reviewer
        """
        try:
            return await self.pr_repo.get_user_reviews(user_id)
        except Exception as exc:
            raise wrap_error(exc, f"failed to get reviews of user {user_id}")
