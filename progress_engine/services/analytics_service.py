"""
AnalyticsRecorder - appends fine-grained interaction events

Write-only: nothing inside the engine reads these events back. A failed
write is logged and reported to the caller as False instead of failing the
lifecycle operation that produced it.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from progress_engine.db.store import ProgressStore
from progress_engine.exceptions import ProgressEngineError
from progress_engine.models.analytics import AnalyticsEvent
from progress_engine.services.progress_aggregator import utc_now

logger = logging.getLogger(__name__)

SESSION_STARTED = "session_started"
SESSION_IN_PROGRESS = "session_in_progress"
SESSION_COMPLETED = "session_completed"
SESSION_ABANDONED = "session_abandoned"
ACHIEVEMENT_EARNED = "achievement_earned"


class AnalyticsRecorder:
    """Service appending analytics events to the store"""

    def __init__(self, store: ProgressStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    async def record_event(
        self,
        session_id: str,
        event_type: str,
        event_data: Optional[Any] = None,
        user_id: str = "",
        app_id: str = ""
    ) -> bool:
        """
        Append one event.

        Returns:
            True if stored, False if the write failed (already logged)
        """
        event = AnalyticsEvent(
            session_id=session_id,
            event_type=event_type,
            event_data=event_data if event_data is not None else {},
            user_id=user_id,
            app_id=app_id,
            timestamp=self.clock(),
        )
        try:
            await self.store.record_event(event)
        except ProgressEngineError as e:
            logger.warning(f"Dropped analytics event {event_type} for session {session_id}: {e.message}")
            return False

        logger.debug(f"Recorded analytics event {event_type} for session {session_id}")
        return True
