import asyncio
import logging
from typing import Optional

from models.entities import UserActivityChanged
from repositories.pull_request import PullRequestRepository
from services.events import EventChannel


class RebalancingWorker:
    """Single background consumer of user activity events.

    An activated user is added to understaffed pull requests of their
    team. A deactivated user is removed from every open pull request and
    replaced where a candidate exists. Failures are logged per event and
    never stop the loop.
    """

    def __init__(self, channel: EventChannel, pr_repo: PullRequestRepository,
                 logger: Optional[logging.Logger] = None):
        self.channel = channel
        self.pr_repo = pr_repo
        self.logger = logger or logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None

    async def handle(self, event: UserActivityChanged) -> None:
        if event.is_active:
            assigned = await self.pr_repo.assign_to_needy_prs(event.user_id)
            self.logger.info("User %s assigned to %d pull requests", event.user_id, len(assigned))
        else:
            replaced = await self.pr_repo.reassign_from_all_prs(event.user_id)
            self.logger.info("User %s removed from %d pull requests", event.user_id, len(replaced))

    async def run(self) -> None:
        self.logger.info("Starting PR event worker...")
        try:
            while True:
                event = await self.channel.get()
                try:
                    await self.handle(event)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    if event.is_active:
                        self.logger.exception("Failed to assign user %s to needy PRs", event.user_id)
                    else:
                        self.logger.exception("Failed to reassign user %s from open PRs", event.user_id)
                finally:
                    self.channel.task_done()
        finally:
            self.logger.info("Stopping PR event worker...")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="pr-rebalancing-worker")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
