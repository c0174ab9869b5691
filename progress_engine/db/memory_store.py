"""
In-memory store

Dict-backed implementation of the ProgressStore contract for tests and
local development. Each (app, user) progress key has its own asyncio.Lock,
so updates to one key are serialized while other keys proceed. Nothing is
persisted across restarts.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from progress_engine import config
from progress_engine.db.store import ProgressMutator, SessionAlreadyScored, StoreConflict
from progress_engine.models.analytics import AnalyticsEvent
from progress_engine.models.catalog import ActivityKind, AppDefinition
from progress_engine.models.progress import ProgressKey, ProgressSummary
from progress_engine.models.session import Session, SessionStatus

logger = logging.getLogger(__name__)


class InMemoryStore:
    """In-memory ProgressStore (NOT persisted)"""

    def __init__(
        self,
        apps: Optional[Iterable[AppDefinition]] = None,
        lock_timeout: Optional[float] = None
    ):
        self._apps: dict[str, AppDefinition] = {}
        self._sessions: dict[str, Session] = {}
        self._progress: dict[ProgressKey, ProgressSummary] = {}
        self._locks: defaultdict[ProgressKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._events: list[AnalyticsEvent] = []
        self.lock_timeout = (
            lock_timeout if lock_timeout is not None
            else config.PROGRESS_LOCK_TIMEOUT_MS / 1000
        )

        for app in apps or []:
            self.add_app(app)

    def add_app(self, app: AppDefinition) -> None:
        """Add a catalog entry (catalog curation happens outside the engine)"""
        self._apps[app.id] = app

    @property
    def events(self) -> list[AnalyticsEvent]:
        return list(self._events)

    # ------------------------------------------
    # Catalog
    # ------------------------------------------

    async def get_app(self, app_id: str) -> Optional[AppDefinition]:
        return self._apps.get(app_id)

    async def list_apps(self, app_type: Optional[ActivityKind] = None) -> list[AppDefinition]:
        return [
            app for app in self._apps.values()
            if app.is_active and (app_type is None or app.app_type == app_type)
        ]

    async def list_uncompleted_apps(self, user_id: str) -> list[AppDefinition]:
        # No await between the two reads: one consistent snapshot
        completed = {
            s.app_id for s in self._sessions.values()
            if s.user_id == user_id and s.status == SessionStatus.COMPLETED
        }
        return [
            app for app in self._apps.values()
            if app.is_active and app.id not in completed
        ]

    # ------------------------------------------
    # Sessions
    # ------------------------------------------

    async def create_session(self, session: Session) -> Session:
        if session.id in self._sessions:
            raise ValueError(f"Session {session.id} already exists")
        self._sessions[session.id] = session.model_copy(deep=True)
        return session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def transition_session(
        self,
        session_id: str,
        expected: Iterable[SessionStatus],
        **changes
    ) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None or session.status not in set(expected):
            return None

        updated = session.model_copy(update=changes, deep=True)
        self._sessions[session_id] = updated
        return updated.model_copy(deep=True)

    # ------------------------------------------
    # Progress
    # ------------------------------------------

    async def ensure_progress(self, key: ProgressKey, now: datetime) -> ProgressSummary:
        progress = self._progress.get(key)
        if progress is None:
            progress = ProgressSummary(
                app_id=key.app_id,
                user_id=key.user_id,
                created_at=now,
                updated_at=now,
            )
            self._progress[key] = progress
            logger.info(f"Created progress record for app {key.app_id}, user {key.user_id}")
        return progress.model_copy(deep=True)

    async def get_progress(self, key: ProgressKey) -> Optional[ProgressSummary]:
        progress = self._progress.get(key)
        return progress.model_copy(deep=True) if progress else None

    async def update_progress(
        self,
        key: ProgressKey,
        mutate: ProgressMutator,
        now: datetime,
        scored_session_id: Optional[str] = None
    ) -> ProgressSummary:
        lock = self._locks[key]
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
        except asyncio.TimeoutError as e:
            raise StoreConflict(f"Timed out waiting for progress lock {key}") from e

        try:
            if scored_session_id is not None:
                session = self._sessions.get(scored_session_id)
                if session is None:
                    raise LookupError(f"Session {scored_session_id} does not exist")
                if session.scored_at is not None:
                    raise SessionAlreadyScored(scored_session_id)

            current = self._progress.get(key)
            if current is None:
                current = ProgressSummary(app_id=key.app_id, user_id=key.user_id, created_at=now)

            updated = mutate(current.model_copy(deep=True))
            updated = updated.model_copy(update={"version": current.version + 1, "updated_at": now})

            # Commit point: both writes happen together
            self._progress[key] = updated
            if scored_session_id is not None:
                self._sessions[scored_session_id] = self._sessions[scored_session_id].model_copy(
                    update={"scored_at": now}
                )
            return updated.model_copy(deep=True)
        finally:
            lock.release()

    async def list_user_progress(self, user_id: str, app_id: Optional[str] = None) -> list[ProgressSummary]:
        return [
            p.model_copy(deep=True) for p in self._progress.values()
            if p.user_id == user_id and (app_id is None or p.app_id == app_id)
        ]

    async def list_app_progress(self, app_id: str) -> list[ProgressSummary]:
        return [p.model_copy(deep=True) for p in self._progress.values() if p.app_id == app_id]

    # ------------------------------------------
    # Analytics
    # ------------------------------------------

    async def record_event(self, event: AnalyticsEvent) -> None:
        self._events.append(event)

    # ------------------------------------------
    # Lifecycle
    # ------------------------------------------

    async def open(self) -> None:
        logger.info(f"In-memory store ready with {len(self._apps)} catalog entries")

    async def close(self) -> None:
        pass

    async def ping(self) -> bool:
        return True
