"""Unit tests for LeaderboardRanker"""
import pytest

from progress_engine.exceptions import ValidationError
from progress_engine.models import ProgressKey


async def seed(store, clock, rows):
    for user_id, best, xp in rows:
        def mutate(progress, best=best, xp=xp):
            return progress.model_copy(update={
                "best_score": best,
                "experience_points": xp,
                "total_sessions": 1,
            })
        await store.update_progress(ProgressKey("breathing", user_id), mutate, clock())


@pytest.mark.asyncio
async def test_ordering_and_ranks(container, store, clock):
    await seed(store, clock, [
        ("carol", 70, 900),
        ("bob", 90, 200),
        ("dave", 90, 300),
        ("alice", 90, 200),
    ])

    board = await container.leaderboard.get_leaderboard("breathing")

    assert [e.user_id for e in board] == ["dave", "alice", "bob", "carol"]
    assert [e.rank for e in board] == [1, 2, 3, 4]
    assert board[0].best_score == 90
    assert board[0].experience_points == 300


@pytest.mark.asyncio
async def test_only_requested_app(container, store, clock):
    await seed(store, clock, [("alice", 50, 100)])
    await store.ensure_progress(ProgressKey("mood", "bob"), clock())

    board = await container.leaderboard.get_leaderboard("mood")

    assert [e.user_id for e in board] == ["bob"]


@pytest.mark.asyncio
async def test_limit(container, store, clock):
    await seed(store, clock, [(f"user-{i}", i, 0) for i in range(15)])

    assert len(await container.leaderboard.get_leaderboard("breathing")) == 10
    top = await container.leaderboard.get_leaderboard("breathing", limit=3)
    assert [e.user_id for e in top] == ["user-14", "user-13", "user-12"]


@pytest.mark.asyncio
async def test_empty_app(container):
    assert await container.leaderboard.get_leaderboard("journal") == []


@pytest.mark.asyncio
async def test_invalid_limit(container):
    with pytest.raises(ValidationError):
        await container.leaderboard.get_leaderboard("breathing", limit=0)
