"""
Storage contract used by the services

Every implementation must guarantee that update_progress is an indivisible
read-modify-write with respect to any other update_progress on the same
(app, user) key. Updates on different keys must not block each other.
"""
from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol

from progress_engine.models.analytics import AnalyticsEvent
from progress_engine.models.catalog import ActivityKind, AppDefinition
from progress_engine.models.progress import ProgressKey, ProgressSummary
from progress_engine.models.session import Session, SessionStatus

# Receives the current snapshot, returns the replacement snapshot
ProgressMutator = Callable[[ProgressSummary], ProgressSummary]


class StoreConflict(Exception):
    """The atomic update could not acquire the row in time; safe to retry"""


class SessionAlreadyScored(Exception):
    """The session's completion has already been applied to progress"""


class ProgressStore(Protocol):
    """Persistence operations the progress engine relies on"""

    # Catalog (read-only)
    async def get_app(self, app_id: str) -> Optional[AppDefinition]: ...

    async def list_apps(self, app_type: Optional[ActivityKind] = None) -> list[AppDefinition]: ...

    async def list_uncompleted_apps(self, user_id: str) -> list[AppDefinition]:
        """Active apps with no completed session by user_id, catalog order, one snapshot"""
        ...

    # Sessions
    async def create_session(self, session: Session) -> Session: ...

    async def get_session(self, session_id: str) -> Optional[Session]: ...

    async def transition_session(
        self,
        session_id: str,
        expected: Iterable[SessionStatus],
        **changes
    ) -> Optional[Session]:
        """Apply changes only if the session's status is in expected; None otherwise"""
        ...

    # Progress
    async def ensure_progress(self, key: ProgressKey, now: datetime) -> ProgressSummary: ...

    async def get_progress(self, key: ProgressKey) -> Optional[ProgressSummary]: ...

    async def update_progress(
        self,
        key: ProgressKey,
        mutate: ProgressMutator,
        now: datetime,
        scored_session_id: Optional[str] = None
    ) -> ProgressSummary:
        """
        Atomically replace the progress summary with mutate(current)

        When scored_session_id is given, the session's scored_at is stamped
        in the same atomic unit; SessionAlreadyScored is raised (and nothing
        is written) if it was already stamped. Raises StoreConflict when the
        row could not be locked in time.
        """
        ...

    async def list_user_progress(self, user_id: str, app_id: Optional[str] = None) -> list[ProgressSummary]: ...

    async def list_app_progress(self, app_id: str) -> list[ProgressSummary]: ...

    # Analytics (write-only)
    async def record_event(self, event: AnalyticsEvent) -> None: ...

    # Lifecycle
    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def ping(self) -> bool:
        """True when the backing storage is reachable"""
        ...
