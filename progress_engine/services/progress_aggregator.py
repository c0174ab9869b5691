"""
ProgressAggregator - applies completed sessions to progress summaries

Each completed session is applied exactly once to exactly one
(app, user) summary, as a single atomic read-modify-write in the store.
Lock conflicts are retried with backoff; when retries run out the caller
gets a ContentionError and nothing has been written.

Update rules (from the pre-update snapshot):
- total_sessions + 1
- total_time_minutes + duration // 60
- best_score = max(best, score)
- average_score = exact mean of all completed scores
- experience_points + score * XP_PER_SCORE_POINT
- streak_days from the previous activity date
- last_played_at = now
- current_level and mastery_level recomputed (mastery never regresses)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from progress_engine import config
from progress_engine.db.store import ProgressMutator, ProgressStore, StoreConflict
from progress_engine.exceptions import ContentionError, NotFoundError
from progress_engine.gamification.mastery import calculate_mastery_level
from progress_engine.gamification.streak_system import calculate_streak
from progress_engine.gamification.xp_system import calculate_level_from_xp, get_xp_for_score
from progress_engine.models.progress import ProgressKey, ProgressSummary
from progress_engine.monitoring import track_contention_failure
from progress_engine.resilience.retry import retry_with_backoff
from progress_engine.validators import validate_duration, validate_score

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def refresh_derived_fields(progress: ProgressSummary) -> ProgressSummary:
    """Recompute level and mastery tier from XP and session count"""
    return progress.model_copy(update={
        "current_level": calculate_level_from_xp(progress.experience_points),
        "mastery_level": calculate_mastery_level(
            progress.experience_points,
            progress.total_sessions,
            previous=progress.mastery_level
        ),
    })


def apply_completion(
    progress: ProgressSummary,
    duration_seconds: int,
    score: int,
    now: datetime
) -> ProgressSummary:
    """Progress summary after one more completed session (pure)"""
    total_sessions = progress.total_sessions + 1
    score_total = progress.score_total + score

    updated = progress.model_copy(update={
        "total_sessions": total_sessions,
        "total_time_minutes": progress.total_time_minutes + duration_seconds // 60,
        "best_score": max(progress.best_score, score),
        "score_total": score_total,
        "average_score": score_total / total_sessions,
        "experience_points": progress.experience_points + get_xp_for_score(score),
        "streak_days": calculate_streak(progress.streak_days, progress.last_played_at, now.date()),
        "last_played_at": now,
    })
    return refresh_derived_fields(updated)


class ProgressAggregator:
    """
    Service owning all writes to progress summaries.

    Responsibilities:
    - Lazy creation of the (app, user) summary
    - Atomic application of completed sessions
    - Bounded retry on lock conflicts, ContentionError when exhausted
    - Progress reads (single summary, per user)
    """

    def __init__(
        self,
        store: ProgressStore,
        clock: Callable[[], datetime] = utc_now,
        max_retries: Optional[int] = None
    ):
        self.store = store
        self.clock = clock
        self.max_retries = max_retries
        logger.debug("ProgressAggregator initialized")

    async def ensure(self, key: ProgressKey) -> ProgressSummary:
        """Create the summary with zeroed counters if it does not exist (idempotent)"""
        return await self.store.ensure_progress(key, self.clock())

    async def update(
        self,
        key: ProgressKey,
        mutate: ProgressMutator,
        scored_session_id: Optional[str] = None
    ) -> ProgressSummary:
        """
        Run mutate against the summary as one atomic unit, retrying conflicts.

        Raises:
            ContentionError: the summary stayed locked through every retry
            SessionAlreadyScored: scored_session_id was already applied
        """
        now = self.clock()
        try:
            return await retry_with_backoff(
                self.store.update_progress,
                key,
                mutate,
                now,
                scored_session_id=scored_session_id,
                max_retries=self.max_retries
            )
        except StoreConflict as e:
            track_contention_failure()
            raise ContentionError(
                message=f"Progress update for app {key.app_id} could not be applied: {e}",
                progress_key=tuple(key),
                attempts=(self.max_retries if self.max_retries is not None else config.PROGRESS_MAX_RETRIES) + 1,
                user_id=key.user_id,
                operation="update_progress",
                cause=e
            )

    async def apply(
        self,
        key: ProgressKey,
        duration_seconds: int,
        score: int,
        max_score: int,
        scored_session_id: Optional[str] = None,
        then: Optional[ProgressMutator] = None
    ) -> ProgressSummary:
        """
        Apply one completed session to the (app, user) summary.

        Args:
            key: Which summary to update
            duration_seconds: Session duration
            score: Session score (0..max_score)
            max_score: Session max score
            scored_session_id: Session whose scored_at is stamped in the same atomic unit
            then: Optional follow-up stage run on the post-update snapshot
                  inside the same atomic unit (achievement unlocking)

        Returns:
            Post-update snapshot
        """
        validate_score(score, max_score, user_id=key.user_id)
        validate_duration(duration_seconds)
        now = self.clock()

        def mutate(current: ProgressSummary) -> ProgressSummary:
            updated = apply_completion(current, duration_seconds, score, now)
            if then is not None:
                updated = then(updated)
            return updated

        progress = await self.update(key, mutate, scored_session_id=scored_session_id)

        logger.info(
            f"Applied session to progress app={key.app_id} user={key.user_id}: "
            f"sessions={progress.total_sessions} avg={progress.average_score:.2f} "
            f"best={progress.best_score} xp={progress.experience_points} "
            f"mastery={progress.mastery_level.value}"
        )
        return progress

    async def get(self, key: ProgressKey) -> ProgressSummary:
        progress = await self.store.get_progress(key)
        if progress is None:
            raise NotFoundError(
                message=f"No progress for app {key.app_id} and user {key.user_id}",
                record_type="Progress",
                record_id=f"{key.app_id}:{key.user_id}",
                user_id=key.user_id,
                operation="get_progress"
            )
        return progress

    async def list_for_user(self, user_id: str, app_id: Optional[str] = None) -> list[ProgressSummary]:
        return await self.store.list_user_progress(user_id, app_id)
