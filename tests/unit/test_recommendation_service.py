"""Unit tests for RecommendationScorer"""
import pytest

from progress_engine.db.memory_store import InMemoryStore
from progress_engine.exceptions import ValidationError
from progress_engine.models import ActivityKind, AppDefinition
from progress_engine.services.recommendation_service import (
    RecommendationScorer,
    calculate_recommendation_score,
)


def test_score_formula(sample_apps):
    by_id = {app.id: app for app in sample_apps}

    assert calculate_recommendation_score(by_id["breathing"]) == pytest.approx(130)
    assert calculate_recommendation_score(by_id["journal"]) == pytest.approx(84)


@pytest.mark.asyncio
async def test_ordered_by_score(container, test_user_id):
    recs = await container.recommendations.get_recommendations(test_user_id)

    assert [r.app.id for r in recs] == ["breathing", "gad7", "mood", "journal"]
    assert recs[0].recommendation_reason == "Evidence-based and highly rated"
    assert recs[2].recommendation_reason == "Popular with other clients"


@pytest.mark.asyncio
async def test_completed_apps_are_excluded(container, test_user_id):
    session = await container.sessions.open_session("breathing", test_user_id)
    await container.sessions.complete_session(session.id, test_user_id, 50)

    recs = await container.recommendations.get_recommendations(test_user_id)

    assert "breathing" not in [r.app.id for r in recs]
    # Other users are unaffected
    others = await container.recommendations.get_recommendations("user-2")
    assert others[0].app.id == "breathing"


@pytest.mark.asyncio
async def test_open_and_abandoned_sessions_do_not_exclude(container, test_user_id):
    await container.sessions.open_session("breathing", test_user_id)
    abandoned = await container.sessions.open_session("gad7", test_user_id)
    await container.sessions.abandon_session(abandoned.id, test_user_id)

    recs = await container.recommendations.get_recommendations(test_user_id)

    assert [r.app.id for r in recs][:2] == ["breathing", "gad7"]


@pytest.mark.asyncio
async def test_ties_keep_catalog_order():
    apps = [
        AppDefinition(id=app_id, app_type=ActivityKind.EXERCISE, name=app_id, popularity_score=10)
        for app_id in ("zeta", "alpha", "mid")
    ]
    scorer = RecommendationScorer(InMemoryStore(apps=apps))

    recs = await scorer.get_recommendations("user-1")

    assert [r.app.id for r in recs] == ["zeta", "alpha", "mid"]


@pytest.mark.asyncio
async def test_limit(container, test_user_id):
    recs = await container.recommendations.get_recommendations(test_user_id, limit=2)
    assert len(recs) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1, 101])
async def test_invalid_limit(container, test_user_id, limit):
    with pytest.raises(ValidationError):
        await container.recommendations.get_recommendations(test_user_id, limit=limit)
