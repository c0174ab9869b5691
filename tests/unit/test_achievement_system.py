"""Unit tests for the achievement registry and built-in rules"""
import pytest
from datetime import datetime, timezone

from progress_engine.gamification.achievement_system import (
    AchievementRegistry,
    default_registry,
    evaluate_achievements,
    get_achievement_details,
)
from progress_engine.models import ProgressSummary, Session, SessionStatus


NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_session(score=70, max_score=100):
    return Session(
        id="session-1",
        app_id="breathing",
        user_id="user-1",
        status=SessionStatus.COMPLETED,
        started_at=NOW,
        completed_at=NOW,
        score=score,
        max_score=max_score,
    )


def make_progress(**overrides):
    values = {"app_id": "breathing", "user_id": "user-1", "total_sessions": 1}
    values.update(overrides)
    return ProgressSummary(**values)


def earned_ids(session, progress, registry=default_registry):
    return [rule.id for rule in evaluate_achievements(registry, session, progress)]


# ============================================================================
# Built-in Rules
# ============================================================================

def test_default_registry_has_builtin_achievements():
    ids = {a.id for a in default_registry.achievements}
    assert ids == {
        "first_completion", "perfect_score", "week_streak", "month_streak",
        "dedicated_user", "power_user", "hour_invested", "ten_hours_invested",
    }


def test_first_completion():
    assert earned_ids(make_session(), make_progress()) == ["first_completion"]


def test_perfect_score_uses_session_max_score():
    session = make_session(score=21, max_score=21)
    assert "perfect_score" in earned_ids(session, make_progress(total_sessions=2))


def test_no_perfect_score_below_max():
    session = make_session(score=99)
    assert "perfect_score" not in earned_ids(session, make_progress(total_sessions=2))


def test_streak_and_time_rules():
    progress = make_progress(total_sessions=12, streak_days=7, total_time_minutes=61)
    ids = earned_ids(make_session(), progress)

    assert "week_streak" in ids
    assert "hour_invested" in ids
    assert "dedicated_user" in ids
    assert "month_streak" not in ids
    assert "ten_hours_invested" not in ids


def test_already_earned_achievements_are_skipped():
    progress = make_progress(achievements=["first_completion"])
    assert earned_ids(make_session(), progress) == []


# ============================================================================
# Registry
# ============================================================================

def test_register_custom_rule():
    registry = AchievementRegistry()

    @registry.register("high_scorer", "High Scorer", "Scored 90 or more", reward_xp=20)
    def high_scorer(session, progress):
        return session.score >= 90

    assert len(registry) == 1
    assert earned_ids(make_session(score=95), make_progress(), registry) == ["high_scorer"]
    assert earned_ids(make_session(score=50), make_progress(), registry) == []
    assert registry.get("high_scorer").reward_xp == 20


def test_duplicate_id_rejected():
    registry = AchievementRegistry()
    registry.register("x", "X", "x")(lambda s, p: True)

    with pytest.raises(ValueError):
        registry.register("x", "X again", "x")(lambda s, p: True)


def test_failing_rule_is_skipped():
    registry = AchievementRegistry()

    @registry.register("broken", "Broken", "Always raises")
    def broken(session, progress):
        raise KeyError("missing")

    @registry.register("works", "Works", "Always true")
    def works(session, progress):
        return True

    assert earned_ids(make_session(), make_progress(), registry) == ["works"]


def test_evaluation_follows_registration_order():
    registry = AchievementRegistry()
    for achievement_id in ("c", "a", "b"):
        registry.register(achievement_id, achievement_id.upper(), "always")(lambda s, p: True)

    assert earned_ids(make_session(), make_progress(), registry) == ["c", "a", "b"]


# ============================================================================
# Details
# ============================================================================

def test_get_achievement_details_known():
    details = get_achievement_details("perfect_score")
    assert details.name == "Perfect Score"
    assert details.reward_xp == 50


def test_get_achievement_details_unknown():
    details = get_achievement_details("does_not_exist")
    assert details.id == "does_not_exist"
    assert details.name == "Unknown Achievement"
    assert details.reward_xp == 0
