"""
LeaderboardRanker - top performers on one app

Order: best_score desc, experience_points desc, user_id asc (so the
ranking is a deterministic total order).
"""

import logging
from typing import Optional

from progress_engine.db.store import ProgressStore
from progress_engine.models.progress import ProgressSummary
from progress_engine.models.ranking import LeaderboardEntry
from progress_engine.validators import validate_limit

logger = logging.getLogger(__name__)


def leaderboard_sort_key(progress: ProgressSummary) -> tuple:
    return (-progress.best_score, -progress.experience_points, progress.user_id)


class LeaderboardRanker:
    """Read-only service ranking progress summaries for an app"""

    def __init__(self, store: ProgressStore):
        self.store = store

    async def get_leaderboard(self, app_id: str, limit: Optional[int] = None) -> list[LeaderboardEntry]:
        limit = validate_limit(limit)
        rows = await self.store.list_app_progress(app_id)
        ranked = sorted(rows, key=leaderboard_sort_key)[:limit]

        return [
            LeaderboardEntry(
                rank=position,
                user_id=progress.user_id,
                best_score=progress.best_score,
                total_sessions=progress.total_sessions,
                experience_points=progress.experience_points,
                mastery_level=progress.mastery_level,
            )
            for position, progress in enumerate(ranked, start=1)
        ]
