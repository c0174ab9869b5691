"""
SessionLifecycleManager - opens and closes play/assessment attempts

States:
    started -> in_progress (optional) -> completed | abandoned

Completing a session is a synchronous pipeline: the session is closed,
then the completion is applied to the (app, user) progress summary and
achievements are unlocked in the same atomic unit, and only then does the
caller get a result.

Completion and scoring are tracked separately (completed_at vs scored_at).
If scoring fails with ContentionError the session stays completed but
unscored; calling complete again resumes scoring with the stored score.
Completing a scored or abandoned session is an InvalidStateError.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from progress_engine.db.store import ProgressStore, SessionAlreadyScored
from progress_engine.exceptions import InvalidStateError, NotFoundError
from progress_engine.gamification.achievement_system import AchievementRule
from progress_engine.models.completion import CompletionResult
from progress_engine.models.progress import ProgressKey, ProgressSummary
from progress_engine.models.session import OPEN_STATUSES, Session, SessionKind, SessionStatus
from progress_engine.monitoring import (
    track_achievement_unlock,
    track_completion,
    track_session_transition,
)
from progress_engine.services import analytics_service as events
from progress_engine.services.achievement_service import AchievementEngine, to_unlock
from progress_engine.services.analytics_service import AnalyticsRecorder
from progress_engine.services.progress_aggregator import ProgressAggregator, utc_now
from progress_engine.validators import validate_score, validate_session_kind

logger = logging.getLogger(__name__)


class SessionLifecycleManager:
    """
    Service owning the session state machine.

    Responsibilities:
    - Opening sessions (and lazily creating the progress summary)
    - Moving sessions through in_progress, completed and abandoned
    - Driving the progress update and achievement unlock on completion
    - Recording lifecycle analytics events
    """

    def __init__(
        self,
        store: ProgressStore,
        aggregator: ProgressAggregator,
        achievements: AchievementEngine,
        analytics: AnalyticsRecorder,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.aggregator = aggregator
        self.achievements = achievements
        self.analytics = analytics
        self.clock = clock
        logger.debug("SessionLifecycleManager initialized")

    async def open_session(
        self,
        app_id: str,
        user_id: str,
        session_type: SessionKind = SessionKind.PLAY
    ) -> Session:
        """
        Start a new attempt at an app.

        Raises:
            ValidationError: session_type is not a known SessionKind
            NotFoundError: app_id is not in the catalog
        """
        session_type = validate_session_kind(session_type, user_id=user_id)
        app = await self.store.get_app(app_id)
        if app is None:
            raise NotFoundError(
                message=f"App {app_id} does not exist",
                record_type="App",
                record_id=app_id,
                user_id=user_id,
                operation="open_session"
            )

        session = Session(
            id=str(uuid4()),
            app_id=app.id,
            user_id=user_id,
            session_type=session_type,
            status=SessionStatus.STARTED,
            started_at=self.clock(),
            max_score=app.max_score,
        )
        session = await self.store.create_session(session)
        await self.aggregator.ensure(ProgressKey(app.id, user_id))

        track_session_transition("opened")
        await self.analytics.record_event(
            session.id, events.SESSION_STARTED, {"session_type": session.session_type.value},
            user_id=user_id, app_id=app.id
        )
        logger.info(f"Opened session {session.id} on app {app.id} for user {user_id}")
        return session

    async def get_session(self, session_id: str, user_id: str) -> Session:
        """
        Fetch a session owned by user_id.

        Raises:
            NotFoundError: missing, or owned by someone else
        """
        session = await self.store.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise NotFoundError(
                message=f"Session {session_id} not found for user {user_id}",
                record_type="Session",
                record_id=session_id,
                user_id=user_id,
                operation="get_session"
            )
        return session

    async def mark_in_progress(self, session_id: str, user_id: str) -> Session:
        """Move a started session to in_progress (no-op if already there)"""
        session = await self.get_session(session_id, user_id)
        if session.status == SessionStatus.IN_PROGRESS:
            return session
        if session.status != SessionStatus.STARTED:
            raise self._invalid_state(session, "mark_in_progress")

        updated = await self.store.transition_session(
            session_id, [SessionStatus.STARTED], status=SessionStatus.IN_PROGRESS
        )
        if updated is None:
            current = await self.get_session(session_id, user_id)
            if current.status == SessionStatus.IN_PROGRESS:
                return current
            raise self._invalid_state(current, "mark_in_progress")

        track_session_transition("in_progress")
        await self.analytics.record_event(
            session_id, events.SESSION_IN_PROGRESS, user_id=user_id, app_id=session.app_id
        )
        return updated

    async def complete_session(
        self,
        session_id: str,
        user_id: str,
        score: int,
        responses: Optional[Any] = None,
        interaction_data: Optional[Any] = None
    ) -> CompletionResult:
        """
        Close a session and apply it to progress and achievements.

        Raises:
            NotFoundError: session missing or owned by someone else
            ValidationError: score outside 0..max_score
            InvalidStateError: session abandoned, or completed and already scored
            ContentionError: progress could not be updated; retry this call
        """
        with track_completion():
            return await self._complete(session_id, user_id, score, responses, interaction_data)

    async def _complete(
        self,
        session_id: str,
        user_id: str,
        score: int,
        responses: Optional[Any],
        interaction_data: Optional[Any]
    ) -> CompletionResult:
        session = await self.get_session(session_id, user_id)

        if session.status == SessionStatus.COMPLETED:
            if session.is_scored:
                raise self._invalid_state(session, "complete_session")
            logger.info(f"Resuming scoring for completed session {session_id}")
        elif session.status in OPEN_STATUSES:
            validate_score(score, session.max_score, user_id=user_id)
            completed_at = self.clock()
            duration_seconds = max(int((completed_at - session.started_at).total_seconds()), 0)

            closed = await self.store.transition_session(
                session_id,
                OPEN_STATUSES,
                status=SessionStatus.COMPLETED,
                completed_at=completed_at,
                duration_seconds=duration_seconds,
                score=score,
                responses=responses if responses is not None else {},
                interaction_data=interaction_data if interaction_data is not None else {},
            )
            if closed is None:
                await self._lost_race(session_id, user_id, "complete_session")
            session = closed
            track_session_transition("completed")
            logger.info(f"Completed session {session_id} with score {score}/{session.max_score}")
        else:
            raise self._invalid_state(session, "complete_session")

        return await self._score(session)

    async def abandon_session(self, session_id: str, user_id: str) -> Session:
        """
        Terminate a session without contributing to progress.

        Raises:
            NotFoundError: session missing or owned by someone else
            InvalidStateError: session already terminal
        """
        session = await self.get_session(session_id, user_id)
        if session.is_terminal:
            raise self._invalid_state(session, "abandon_session")

        now = self.clock()
        abandoned = await self.store.transition_session(
            session_id,
            OPEN_STATUSES,
            status=SessionStatus.ABANDONED,
            completed_at=now,
            duration_seconds=max(int((now - session.started_at).total_seconds()), 0),
        )
        if abandoned is None:
            return await self._lost_race(session_id, user_id, "abandon_session")

        track_session_transition("abandoned")
        await self.analytics.record_event(
            session_id, events.SESSION_ABANDONED, user_id=user_id, app_id=session.app_id
        )
        logger.info(f"Abandoned session {session_id}")
        return abandoned

    # ------------------------------------------
    # Helpers
    # ------------------------------------------

    async def _score(self, session: Session) -> CompletionResult:
        """Apply a completed, unscored session to progress and achievements"""
        key = ProgressKey(session.app_id, session.user_id)
        previous = await self.store.get_progress(key)
        granted: list[AchievementRule] = []

        def unlock_stage(progress: ProgressSummary) -> ProgressSummary:
            granted.clear()
            updated, rules = self.achievements.unlock(session, progress)
            granted.extend(rules)
            return updated

        try:
            progress = await self.aggregator.apply(
                key,
                session.duration_seconds or 0,
                session.score or 0,
                session.max_score,
                scored_session_id=session.id,
                then=unlock_stage
            )
        except SessionAlreadyScored:
            # A concurrent retry scored it first
            current = await self.store.get_session(session.id)
            raise self._invalid_state(current or session, "complete_session")

        unlocks = [to_unlock(rule) for rule in granted]
        # Judged on the post-update summary; matching the best counts
        new_best = progress.total_sessions > 1 and (session.score or 0) == progress.best_score
        leveled_up = previous is not None and progress.current_level > previous.current_level

        await self.analytics.record_event(
            session.id,
            events.SESSION_COMPLETED,
            {
                "score": session.score,
                "duration_seconds": session.duration_seconds,
                "new_best": new_best,
            },
            user_id=session.user_id,
            app_id=session.app_id
        )
        if new_best:
            await self.analytics.record_event(
                session.id,
                events.ACHIEVEMENT_EARNED,
                {"achievement": "new_best_score", "score": session.score},
                user_id=session.user_id,
                app_id=session.app_id
            )
        for unlock in unlocks:
            track_achievement_unlock(unlock.achievement_id)
            logger.info(
                f"User {session.user_id} unlocked achievement: {unlock.achievement_id} "
                f"({unlock.name}) +{unlock.reward_xp} XP"
            )
            await self.analytics.record_event(
                session.id,
                events.ACHIEVEMENT_EARNED,
                {"achievement": unlock.achievement_id, "reward_xp": unlock.reward_xp},
                user_id=session.user_id,
                app_id=session.app_id
            )

        scored = await self.store.get_session(session.id)
        return CompletionResult(
            session=scored or session,
            progress=progress,
            achievements_unlocked=unlocks,
            new_best=new_best,
            leveled_up=leveled_up,
        )

    def _invalid_state(self, session: Session, attempted: str) -> InvalidStateError:
        state = session.status.value
        if session.status == SessionStatus.COMPLETED and session.is_scored:
            state = "completed (scored)"
        return InvalidStateError(
            message=f"Cannot {attempted.replace('_', ' ')}: session {session.id} is {state}",
            current_state=session.status.value,
            attempted=attempted,
            user_id=session.user_id,
            operation=attempted
        )

    async def _lost_race(self, session_id: str, user_id: str, attempted: str):
        """A concurrent call changed the session between read and write"""
        current = await self.get_session(session_id, user_id)
        raise self._invalid_state(current, attempted)
