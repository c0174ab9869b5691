"""Unit tests for SessionLifecycleManager"""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from progress_engine.db.memory_store import InMemoryStore
from progress_engine.exceptions import (
    ContentionError,
    InvalidStateError,
    NotFoundError,
    QueryError,
    ValidationError,
)
from progress_engine.models import MasteryLevel, ProgressKey, SessionKind, SessionStatus
from progress_engine.services import analytics_service as events
from progress_engine.services.container import ServiceContainer


# ============================================================================
# Opening
# ============================================================================

@pytest.mark.asyncio
async def test_open_session(sessions, store, clock, test_user_id):
    session = await sessions.open_session("gad7", test_user_id, SessionKind.ASSESSMENT)

    assert session.status == SessionStatus.STARTED
    assert session.started_at == clock()
    assert session.max_score == 21
    assert session.session_type == SessionKind.ASSESSMENT

    progress = await store.get_progress(ProgressKey("gad7", test_user_id))
    assert progress.total_sessions == 0


@pytest.mark.asyncio
async def test_open_session_unknown_app(sessions, test_user_id):
    with pytest.raises(NotFoundError):
        await sessions.open_session("no-such-app", test_user_id)


@pytest.mark.asyncio
async def test_open_session_unknown_type(sessions, store, test_user_id):
    with pytest.raises(ValidationError) as exc_info:
        await sessions.open_session("breathing", test_user_id, "bogus")

    assert exc_info.value.field == "session_type"
    assert await store.get_progress(ProgressKey("breathing", test_user_id)) is None
    assert store.events == []


@pytest.mark.asyncio
async def test_open_session_records_event(sessions, store, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)

    assert [e.event_type for e in store.events] == [events.SESSION_STARTED]
    assert store.events[0].session_id == session.id


# ============================================================================
# In progress
# ============================================================================

@pytest.mark.asyncio
async def test_mark_in_progress_is_idempotent(sessions, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)

    first = await sessions.mark_in_progress(session.id, test_user_id)
    second = await sessions.mark_in_progress(session.id, test_user_id)

    assert first.status == SessionStatus.IN_PROGRESS
    assert second.status == SessionStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_mark_in_progress_after_completion(sessions, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)
    await sessions.complete_session(session.id, test_user_id, 50)

    with pytest.raises(InvalidStateError):
        await sessions.mark_in_progress(session.id, test_user_id)


# ============================================================================
# Completion
# ============================================================================

@pytest.mark.asyncio
async def test_complete_session_updates_progress(sessions, clock, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)
    await sessions.mark_in_progress(session.id, test_user_id)
    clock.advance(minutes=3, seconds=10)

    result = await sessions.complete_session(
        session.id, test_user_id, 80, responses={"q1": "yes"}, interaction_data={"taps": 4}
    )

    assert result.session.status == SessionStatus.COMPLETED
    assert result.session.score == 80
    assert result.session.duration_seconds == 190
    assert result.session.completed_at == clock()
    assert result.session.scored_at is not None
    assert result.session.responses == {"q1": "yes"}
    assert result.progress.total_sessions == 1
    assert result.progress.total_time_minutes == 3
    assert result.progress.best_score == 80
    # 80 * 2 plus the first_completion reward
    assert result.progress.experience_points == 185
    assert [u.achievement_id for u in result.achievements_unlocked] == ["first_completion"]
    assert result.leveled_up is True
    assert result.new_best is False


@pytest.mark.asyncio
async def test_perfect_score_uses_app_max(sessions, test_user_id):
    session = await sessions.open_session("gad7", test_user_id)

    result = await sessions.complete_session(session.id, test_user_id, 21)

    ids = [u.achievement_id for u in result.achievements_unlocked]
    assert ids == ["first_completion", "perfect_score"]
    assert result.progress.achievements == ["first_completion", "perfect_score"]
    assert result.progress.experience_points == 21 * 2 + 25 + 50


@pytest.mark.asyncio
async def test_new_best_flag(sessions, test_user_id):
    first = await sessions.open_session("breathing", test_user_id)
    await sessions.complete_session(first.id, test_user_id, 60)
    second = await sessions.open_session("breathing", test_user_id)

    result = await sessions.complete_session(second.id, test_user_id, 75)

    assert result.new_best is True
    assert result.achievements_unlocked == []


@pytest.mark.asyncio
async def test_matching_best_counts_as_new_best(sessions, store, test_user_id):
    first = await sessions.open_session("breathing", test_user_id)
    await sessions.complete_session(first.id, test_user_id, 60)
    second = await sessions.open_session("breathing", test_user_id)

    result = await sessions.complete_session(second.id, test_user_id, 60)

    assert result.new_best is True
    earned = [e for e in store.events if e.event_type == events.ACHIEVEMENT_EARNED]
    assert [e.event_data["achievement"] for e in earned] == ["first_completion", "new_best_score"]
    assert earned[-1].session_id == second.id


@pytest.mark.asyncio
async def test_lower_score_is_not_new_best(sessions, store, test_user_id):
    first = await sessions.open_session("breathing", test_user_id)
    await sessions.complete_session(first.id, test_user_id, 60)
    second = await sessions.open_session("breathing", test_user_id)

    result = await sessions.complete_session(second.id, test_user_id, 40)

    assert result.new_best is False
    assert not any(
        e.event_data.get("achievement") == "new_best_score" for e in store.events
    )


@pytest.mark.asyncio
async def test_complete_twice_is_rejected_and_progress_unchanged(sessions, store, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)
    result = await sessions.complete_session(session.id, test_user_id, 90)

    with pytest.raises(InvalidStateError):
        await sessions.complete_session(session.id, test_user_id, 10)

    progress = await store.get_progress(ProgressKey("breathing", test_user_id))
    assert progress == result.progress
    assert (await store.get_session(session.id)).score == 90


@pytest.mark.asyncio
async def test_concurrent_completion_of_same_session(sessions, store, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)

    outcomes = await asyncio.gather(
        sessions.complete_session(session.id, test_user_id, 70),
        sessions.complete_session(session.id, test_user_id, 70),
        return_exceptions=True,
    )

    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidStateError)
    progress = await store.get_progress(ProgressKey("breathing", test_user_id))
    assert progress.total_sessions == 1


@pytest.mark.asyncio
async def test_concurrent_sessions_same_app(sessions, store, test_user_id):
    opened = [await sessions.open_session("breathing", test_user_id) for _ in range(3)]

    await asyncio.gather(*(
        sessions.complete_session(s.id, test_user_id, score)
        for s, score in zip(opened, (80, 100, 60))
    ))

    progress = await store.get_progress(ProgressKey("breathing", test_user_id))
    assert progress.total_sessions == 3
    assert progress.best_score == 100
    assert progress.average_score == 80
    assert sorted(progress.achievements) == ["first_completion", "perfect_score"]
    # 240 * 2 + 25 + 50
    assert progress.experience_points == 555
    assert progress.current_level == 3
    assert progress.mastery_level == MasteryLevel.INTERMEDIATE


@pytest.mark.asyncio
@pytest.mark.parametrize("score", [-1, 101])
async def test_invalid_score_leaves_session_open(sessions, store, test_user_id, score):
    session = await sessions.open_session("breathing", test_user_id)

    with pytest.raises(ValidationError):
        await sessions.complete_session(session.id, test_user_id, score)

    assert (await store.get_session(session.id)).status == SessionStatus.STARTED


@pytest.mark.asyncio
async def test_other_users_session_is_not_found(sessions, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)

    with pytest.raises(NotFoundError):
        await sessions.complete_session(session.id, "intruder", 50)
    with pytest.raises(NotFoundError):
        await sessions.abandon_session(session.id, "intruder")


@pytest.mark.asyncio
async def test_contention_then_retry_resumes_scoring(clock, sample_apps, test_user_id):
    store = InMemoryStore(apps=sample_apps, lock_timeout=0.01)
    sessions = ServiceContainer(store=store, clock=clock, max_retries=0).sessions
    session = await sessions.open_session("breathing", test_user_id)
    key = ProgressKey("breathing", test_user_id)

    lock = store._locks[key]
    await lock.acquire()
    try:
        with pytest.raises(ContentionError):
            await sessions.complete_session(session.id, test_user_id, 64)
    finally:
        lock.release()

    stuck = await store.get_session(session.id)
    assert stuck.status == SessionStatus.COMPLETED
    assert stuck.scored_at is None
    assert (await store.get_progress(key)).total_sessions == 0

    # Retry applies the stored score, not the retried argument
    result = await sessions.complete_session(session.id, test_user_id, 99)

    assert result.progress.total_sessions == 1
    assert result.progress.best_score == 64
    assert result.session.scored_at is not None


@pytest.mark.asyncio
async def test_analytics_failure_does_not_fail_completion(sessions, store, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)

    with patch.object(store, "record_event", AsyncMock(side_effect=QueryError("insert failed"))):
        result = await sessions.complete_session(session.id, test_user_id, 40)

    assert result.progress.total_sessions == 1


@pytest.mark.asyncio
async def test_completion_events(sessions, store, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)
    await sessions.complete_session(session.id, test_user_id, 100)

    types = [e.event_type for e in store.events]
    assert types == [
        events.SESSION_STARTED,
        events.SESSION_COMPLETED,
        events.ACHIEVEMENT_EARNED,
        events.ACHIEVEMENT_EARNED,
    ]
    completed = store.events[1]
    assert completed.event_data["score"] == 100
    assert completed.event_data["new_best"] is False


# ============================================================================
# Abandonment
# ============================================================================

@pytest.mark.asyncio
async def test_abandon_has_no_effect_on_progress(sessions, store, clock, test_user_id):
    session = await sessions.open_session("breathing", test_user_id)
    clock.advance(minutes=5)

    abandoned = await sessions.abandon_session(session.id, test_user_id)

    assert abandoned.status == SessionStatus.ABANDONED
    assert abandoned.completed_at == clock()
    assert abandoned.duration_seconds == 300
    progress = await store.get_progress(ProgressKey("breathing", test_user_id))
    assert progress.total_sessions == 0
    assert progress.total_time_minutes == 0
    assert progress.version == 0


@pytest.mark.asyncio
async def test_terminal_sessions_cannot_change(sessions, test_user_id):
    abandoned = await sessions.open_session("breathing", test_user_id)
    await sessions.abandon_session(abandoned.id, test_user_id)
    completed = await sessions.open_session("breathing", test_user_id)
    await sessions.complete_session(completed.id, test_user_id, 50)

    with pytest.raises(InvalidStateError):
        await sessions.abandon_session(abandoned.id, test_user_id)
    with pytest.raises(InvalidStateError):
        await sessions.complete_session(abandoned.id, test_user_id, 50)
    with pytest.raises(InvalidStateError):
        await sessions.abandon_session(completed.id, test_user_id)
