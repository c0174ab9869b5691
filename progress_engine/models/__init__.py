"""Pydantic models for the progress engine"""
from progress_engine.models.catalog import ActivityKind, DifficultyLevel, AppDefinition
from progress_engine.models.session import SessionKind, SessionStatus, Session, TERMINAL_STATUSES
from progress_engine.models.progress import MasteryLevel, ProgressKey, ProgressSummary
from progress_engine.models.achievement import AchievementRarity, Achievement, AchievementUnlock
from progress_engine.models.ranking import Recommendation, LeaderboardEntry
from progress_engine.models.analytics import AnalyticsEvent
from progress_engine.models.completion import CompletionResult

__all__ = [
    "ActivityKind",
    "DifficultyLevel",
    "AppDefinition",
    "SessionKind",
    "SessionStatus",
    "Session",
    "TERMINAL_STATUSES",
    "MasteryLevel",
    "ProgressKey",
    "ProgressSummary",
    "AchievementRarity",
    "Achievement",
    "AchievementUnlock",
    "Recommendation",
    "LeaderboardEntry",
    "AnalyticsEvent",
    "CompletionResult",
]
