"""
Service Container - Dependency Injection Container

Holds the store and the clock, and lazily builds the services on first
access. The API and tests share one container per store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
import logging

from progress_engine import config
from progress_engine.services.progress_aggregator import utc_now

logger = logging.getLogger(__name__)


def create_store(backend: Optional[str] = None):
    """
    Build the configured ProgressStore.

    Args:
        backend: 'postgres' or 'memory' (default config.STORAGE_BACKEND)
    """
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "memory":
        from progress_engine.db.memory_store import InMemoryStore
        logger.warning("Using in-memory store: progress is NOT persisted")
        return InMemoryStore()
    if backend == "postgres":
        from progress_engine.db.postgres_store import PostgresStore
        return PostgresStore()
    raise ValueError(f"Unknown storage backend: {backend}")


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    The store and clock are injected.
    """

    # Infrastructure dependencies (injected)
    store: object  # ProgressStore implementation
    clock: Callable[[], datetime] = utc_now
    max_retries: Optional[int] = None

    # Services (lazy-loaded via properties)
    _aggregator: Optional[object] = field(default=None, init=False, repr=False)
    _achievements: Optional[object] = field(default=None, init=False, repr=False)
    _analytics: Optional[object] = field(default=None, init=False, repr=False)
    _sessions: Optional[object] = field(default=None, init=False, repr=False)
    _recommendations: Optional[object] = field(default=None, init=False, repr=False)
    _leaderboard: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def aggregator(self):
        """Get ProgressAggregator instance (lazy-loaded)"""
        if self._aggregator is None:
            from progress_engine.services.progress_aggregator import ProgressAggregator
            self._aggregator = ProgressAggregator(self.store, clock=self.clock, max_retries=self.max_retries)
            logger.debug("ProgressAggregator instantiated")
        return self._aggregator

    @property
    def achievements(self):
        """Get AchievementEngine instance (lazy-loaded)"""
        if self._achievements is None:
            from progress_engine.services.achievement_service import AchievementEngine
            self._achievements = AchievementEngine(self.aggregator)
            logger.debug("AchievementEngine instantiated")
        return self._achievements

    @property
    def analytics(self):
        """Get AnalyticsRecorder instance (lazy-loaded)"""
        if self._analytics is None:
            from progress_engine.services.analytics_service import AnalyticsRecorder
            self._analytics = AnalyticsRecorder(self.store, clock=self.clock)
            logger.debug("AnalyticsRecorder instantiated")
        return self._analytics

    @property
    def sessions(self):
        """Get SessionLifecycleManager instance (lazy-loaded)"""
        if self._sessions is None:
            from progress_engine.services.session_service import SessionLifecycleManager
            self._sessions = SessionLifecycleManager(
                self.store,
                self.aggregator,
                self.achievements,
                self.analytics,
                clock=self.clock
            )
            logger.debug("SessionLifecycleManager instantiated")
        return self._sessions

    @property
    def recommendations(self):
        """Get RecommendationScorer instance (lazy-loaded)"""
        if self._recommendations is None:
            from progress_engine.services.recommendation_service import RecommendationScorer
            self._recommendations = RecommendationScorer(self.store)
            logger.debug("RecommendationScorer instantiated")
        return self._recommendations

    @property
    def leaderboard(self):
        """Get LeaderboardRanker instance (lazy-loaded)"""
        if self._leaderboard is None:
            from progress_engine.services.leaderboard_service import LeaderboardRanker
            self._leaderboard = LeaderboardRanker(self.store)
            logger.debug("LeaderboardRanker instantiated")
        return self._leaderboard

