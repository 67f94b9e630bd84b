import asyncio
import logging
import os

import pytest
from sqlalchemy import Delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AppError, ErrorCode
from models.entities import UserActivityChanged
from models.models import PullRequest


# Competing writes are committed between the worker's lock and its write.
# On PostgreSQL the competing write would block on the row lock instead.
sqlite_only = pytest.mark.skipif(
    os.getenv("TEST_DATABASE_URL", "").startswith("postgresql"),
    reason="interleaving is replayed without row locks",
)


async def _deactivate(user_repo, worker, user_id):
    await user_repo.set_is_active(user_id, False)
    await worker.handle(UserActivityChanged(user_id=user_id, is_active=False))


async def _activate(user_repo, worker, user_id):
    await user_repo.set_is_active(user_id, True)
    await worker.handle(UserActivityChanged(user_id=user_id, is_active=True))


@pytest.mark.asyncio
async def test_deactivated_reviewer_is_replaced(make_team, make_pr, user_repo, pr_repo, worker):
    await make_team("backend", {"a": True, "b": True, "c": True, "d": True})
    await make_pr("p1", "a", ["b", "c"])

    await _deactivate(user_repo, worker, "c")

    pr = await pr_repo.get("p1")
    assert sorted(pr.assigned_reviewers) == ["b", "d"]
    assert pr.need_more_reviewers is False


@pytest.mark.asyncio
async def test_deactivated_reviewer_without_replacement(make_team, make_pr, user_repo, pr_repo, worker):
    await make_team("backend", {"a": True, "b": True, "c": True})
    await make_pr("p1", "a", ["b", "c"])

    await _deactivate(user_repo, worker, "c")

    pr = await pr_repo.get("p1")
    assert pr.assigned_reviewers == ["b"]
    assert pr.need_more_reviewers is True


@pytest.mark.asyncio
async def test_deactivation_leaves_merged_prs_alone(make_team, make_pr, user_repo, pr_repo, pr_service):
    await make_team("backend", {"a": True, "b": True, "c": True, "d": True})
    await make_pr("p1", "a", ["b", "c"])
    await make_pr("p2", "a", ["c"])
    await pr_service.merge("p1")

    await user_repo.set_is_active("c", False)
    replaced = await pr_repo.reassign_from_all_prs("c")

    assert list(replaced) == ["p2"]
    assert sorted((await pr_repo.get("p1")).assigned_reviewers) == ["b", "c"]
    p2 = await pr_repo.get("p2")
    assert "c" not in p2.assigned_reviewers
    assert len(p2.assigned_reviewers) == 1
    assert p2.need_more_reviewers is True


@pytest.mark.asyncio
async def test_deactivation_backfills_each_pr(make_team, make_pr, user_repo, pr_repo):
    await make_team("backend", {"a": True, "b": True, "c": True, "d": True, "e": True})
    await make_pr("p1", "a", ["b", "c"])
    await make_pr("p2", "d", ["c", "e"])

    await user_repo.set_is_active("c", False)
    replaced = await pr_repo.reassign_from_all_prs("c")

    assert set(replaced) == {"p1", "p2"}
    for pr_id in ("p1", "p2"):
        pr = await pr_repo.get(pr_id)
        assert "c" not in pr.assigned_reviewers
        assert pr.author_id not in pr.assigned_reviewers
        assert len(pr.assigned_reviewers) == 2
        assert replaced[pr_id] in pr.assigned_reviewers


@pytest.mark.asyncio
async def test_activated_user_joins_needy_prs(make_team, make_pr, user_repo, pr_repo, worker):
    await make_team("backend", {"a": True, "b": True, "e": False})
    await make_team("frontend", {"x": True})
    await make_pr("p1", "a", ["b"])
    await make_pr("p2", "e", [])
    await make_pr("p3", "x", [])

    await _activate(user_repo, worker, "e")

    p1 = await pr_repo.get("p1")
    assert sorted(p1.assigned_reviewers) == ["b", "e"]
    assert p1.need_more_reviewers is False
    # own PR and other teams are untouched
    assert (await pr_repo.get("p2")).assigned_reviewers == []
    assert (await pr_repo.get("p3")).assigned_reviewers == []


@pytest.mark.asyncio
async def test_activation_keeps_pr_below_capacity(make_team, make_pr, user_repo, pr_repo, session_maker, worker):
    await make_team("backend", {"a": True, "b": True, "c": True, "e": False})
    await make_pr("p1", "a", [])
    await make_pr("p2", "a", ["b", "c"])
    # stale flag left behind by a concurrent writer
    async with session_maker() as session:
        async with session.begin():
            await session.execute(
                update(PullRequest).where(PullRequest.id == "p2").values(need_more_reviewers=True)
            )

    await _activate(user_repo, worker, "e")

    p1 = await pr_repo.get("p1")
    assert p1.assigned_reviewers == ["e"]
    assert p1.need_more_reviewers is True
    p2 = await pr_repo.get("p2")
    assert sorted(p2.assigned_reviewers) == ["b", "c"]
    assert p2.need_more_reviewers is False


@pytest.mark.asyncio
async def test_activation_skips_merged_and_inactive(make_team, make_pr, user_repo, pr_repo, pr_service):
    await make_team("backend", {"a": True, "e": False})
    await make_pr("p1", "a", [])
    await make_pr("p2", "a", [])
    await pr_service.merge("p2")

    # event processed after the user was switched off again
    assert await pr_repo.assign_to_needy_prs("e") == []

    await user_repo.set_is_active("e", True)
    assert await pr_repo.assign_to_needy_prs("e") == ["p1"]
    assert (await pr_repo.get("p2")).assigned_reviewers == []

    with pytest.raises(AppError) as exc_info:
        await pr_repo.assign_to_needy_prs("ghost")
    assert exc_info.value.code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_worker_survives_failed_event(make_team, make_pr, user_repo, pr_repo, channel, worker, caplog):
    await make_team("backend", {"a": True, "b": True, "c": True, "d": True})
    await make_pr("p1", "a", ["b", "c"])
    await user_repo.set_is_active("c", False)

    worker.start()
    with caplog.at_level(logging.ERROR, logger="services.rebalancer"):
        channel.publish(UserActivityChanged(user_id="ghost", is_active=True))
        channel.publish(UserActivityChanged(user_id="c", is_active=False))
        await asyncio.wait_for(channel.join(), timeout=5)
    await worker.stop()

    assert "Failed to assign user ghost" in caplog.text
    assert sorted((await pr_repo.get("p1")).assigned_reviewers) == ["b", "d"]
    assert not worker.running


@pytest.mark.asyncio
async def test_worker_stops_while_idle(worker):
    task = worker.start()
    await asyncio.sleep(0)
    assert worker.running

    await asyncio.wait_for(worker.stop(), timeout=1)
    assert task.done()
    assert not worker.running


@sqlite_only
@pytest.mark.asyncio
async def test_deactivation_after_reviewer_was_swapped(make_team, make_pr, user_repo, pr_repo, monkeypatch):
    await make_team("backend", {"a": True, "b": True, "c": True, "d": True, "e": True})
    await make_pr("p1", "a", ["b", "c"])
    await user_repo.set_is_active("c", False)

    execute = AsyncSession.execute
    swapped = []

    async def execute_after_swap(session, statement, *args, **kwargs):
        if isinstance(statement, Delete) and not swapped:
            swapped.append("c")
            await pr_repo.reassign("p1", "c")
        return await execute(session, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", execute_after_swap)
    replaced = await pr_repo.reassign_from_all_prs("c")
    monkeypatch.undo()

    assert swapped == ["c"]
    assert replaced == {}
    pr = await pr_repo.get("p1")
    assert len(pr.assigned_reviewers) == 2
    assert "b" in pr.assigned_reviewers
    assert "c" not in pr.assigned_reviewers
    assert pr.need_more_reviewers is False


@sqlite_only
@pytest.mark.asyncio
async def test_activation_after_user_was_picked_by_reassign(make_team, make_pr, user_repo, pr_repo, monkeypatch):
    await make_team("backend", {"a": True, "b": True, "e": False})
    await make_pr("p1", "a", ["b"])
    await make_pr("p2", "a", [])
    await user_repo.set_is_active("e", True)

    reviewer_ids = pr_repo._reviewer_ids
    swapped = {}

    async def reviewer_ids_after_swap(session, pr_id):
        if not swapped:
            swapped["p1"] = None
            _, swapped["p1"] = await pr_repo.reassign("p1", "b")
        return await reviewer_ids(session, pr_id)

    monkeypatch.setattr(pr_repo, "_reviewer_ids", reviewer_ids_after_swap)
    assigned = await pr_repo.assign_to_needy_prs("e")
    monkeypatch.undo()

    assert swapped == {"p1": "e"}
    assert assigned == ["p2"]
    assert (await pr_repo.get("p1")).assigned_reviewers == ["e"]
    assert (await pr_repo.get("p2")).assigned_reviewers == ["e"]


@pytest.mark.asyncio
async def test_stopping_worker_mid_event_rolls_back(make_team, make_pr, user_repo, pr_repo, channel, worker,
                                                     monkeypatch):
    await make_team("backend", {"a": True, "b": True, "c": True, "d": True})
    await make_pr("p1", "a", ["b", "c"])
    await user_repo.set_is_active("c", False)

    reached = asyncio.Event()

    async def stall(session, pr_id):
        reached.set()
        await asyncio.Event().wait()

    monkeypatch.setattr(pr_repo, "_reviewer_ids", stall)
    worker.start()
    channel.publish(UserActivityChanged(user_id="c", is_active=False))
    await asyncio.wait_for(reached.wait(), timeout=5)
    await asyncio.wait_for(worker.stop(), timeout=5)
    monkeypatch.undo()

    assert not worker.running
    pr = await pr_repo.get("p1")
    assert pr.assigned_reviewers == ["b", "c"]
    assert pr.need_more_reviewers is False
