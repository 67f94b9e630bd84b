import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker
import uvicorn

from config import Settings, get_settings, setup_logging
from models.database import async_session_maker, engine, init_db
from repositories.pull_request import PullRequestRepository
from repositories.teams import TeamRepository
from repositories.users import UserRepository
from routes import users, teams, pull_request, stats
from services.events import EventChannel
from services.pull_request import PullRequestService
from services.rebalancer import RebalancingWorker
from services.stats import StatsService
from services.teams import TeamService
from services.users import UserService


logger = logging.getLogger(__name__)


def setup_services(app: FastAPI, session_maker: async_sessionmaker, settings: Settings,
                   rng: Optional[random.Random] = None) -> RebalancingWorker:
    """Build repositories, services and the rebalancing worker and attach them to app.state."""
    rng = rng or random.Random()

    user_repo = UserRepository(session_maker, logging.getLogger("repositories.users"))
    team_repo = TeamRepository(session_maker, logging.getLogger("repositories.teams"))
    pr_repo = PullRequestRepository(session_maker, logging.getLogger("repositories.pull_request"), rng=rng)

    channel = EventChannel(settings.event_queue_size, logging.getLogger("services.events"))
    worker = RebalancingWorker(channel, pr_repo, logging.getLogger("services.rebalancer"))

    app.state.channel = channel
    app.state.worker = worker
    app.state.pr_service = PullRequestService(
        user_repo, pr_repo, logging.getLogger("services.pull_request"), rng=rng
    )
    app.state.user_service = UserService(user_repo, pr_repo, channel, logging.getLogger("services.users"))
    app.state.team_service = TeamService(team_repo, user_repo, channel, logging.getLogger("services.teams"))
    app.state.stats_service = StatsService(user_repo)
    return worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    await init_db()

    worker = setup_services(app, async_session_maker, settings)
    worker.start()
    logger.info("PR reviewer service started")

    yield

    await worker.stop()
    await engine.dispose()
    logger.info("PR reviewer service stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="PR Reviewer Assignment Service", lifespan=lifespan)

    app.include_router(users.router)
    app.include_router(teams.router)
    app.include_router(pull_request.router)
    app.include_router(stats.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
