"""
RecommendationScorer - ranks catalog entries a user has not completed

score = popularity_score * 0.3 + clinical_rating * 20 + (25 if evidence_based)

Candidates and the user's completion set come from one store read, so a
single call is internally consistent. Ties keep catalog order.
"""

import logging
from typing import Optional

from progress_engine.db.store import ProgressStore
from progress_engine.models.catalog import AppDefinition
from progress_engine.models.ranking import Recommendation
from progress_engine.validators import validate_limit

logger = logging.getLogger(__name__)

POPULARITY_WEIGHT = 0.3
CLINICAL_RATING_WEIGHT = 20
EVIDENCE_BASED_BONUS = 25


def calculate_recommendation_score(app: AppDefinition) -> float:
    """Ranking score for one catalog entry"""
    score = app.popularity_score * POPULARITY_WEIGHT + app.clinical_rating * CLINICAL_RATING_WEIGHT
    if app.evidence_based:
        score += EVIDENCE_BASED_BONUS
    return score


def recommendation_reason(app: AppDefinition) -> str:
    if app.evidence_based:
        return "Evidence-based and highly rated"
    return "Popular with other clients"


class RecommendationScorer:
    """Read-only service producing personalized app recommendations"""

    def __init__(self, store: ProgressStore):
        self.store = store

    async def get_recommendations(self, user_id: str, limit: Optional[int] = None) -> list[Recommendation]:
        """
        Top uncompleted apps for a user, best first.

        Args:
            user_id: Who the recommendations are for
            limit: Maximum results (default DEFAULT_RESULT_LIMIT)
        """
        limit = validate_limit(limit)
        candidates = await self.store.list_uncompleted_apps(user_id)

        scored = [
            Recommendation(
                app=app,
                recommendation_score=calculate_recommendation_score(app),
                recommendation_reason=recommendation_reason(app),
            )
            for app in candidates
        ]
        # sorted() is stable: equal scores keep catalog order
        scored = sorted(scored, key=lambda r: r.recommendation_score, reverse=True)

        logger.debug(f"Ranked {len(scored)} recommendation candidates for user {user_id}")
        return scored[:limit]
