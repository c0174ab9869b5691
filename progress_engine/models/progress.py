"""Progress summary models"""
from enum import Enum
from typing import NamedTuple, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class MasteryLevel(str, Enum):
    """Mastery tiers, lowest first"""
    NOVICE = "novice"
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return list(MasteryLevel).index(self)


class ProgressKey(NamedTuple):
    """Identifies the single progress summary of a user on an app"""
    app_id: str
    user_id: str


class ProgressSummary(BaseModel):
    """Durable aggregate of every completed session for one (app, user)"""
    app_id: str
    user_id: str
    total_sessions: int = 0
    total_time_minutes: int = 0
    best_score: int = 0
    # Sum of all completed scores; average_score is derived from it
    score_total: int = 0
    average_score: float = 0.0
    current_level: int = 1
    experience_points: int = 0
    achievements: list[str] = Field(default_factory=list)
    streak_days: int = 0
    last_played_at: Optional[datetime] = None
    mastery_level: MasteryLevel = MasteryLevel.NOVICE
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> ProgressKey:
        return ProgressKey(self.app_id, self.user_id)

    def has_achievement(self, achievement_id: str) -> bool:
        return achievement_id in self.achievements
