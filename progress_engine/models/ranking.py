"""Derived read views: recommendations and leaderboard rows"""
from pydantic import BaseModel

from progress_engine.models.catalog import AppDefinition
from progress_engine.models.progress import MasteryLevel


class Recommendation(BaseModel):
    """Catalog entry suggested to a user, with its ranking score"""
    app: AppDefinition
    recommendation_score: float
    recommendation_reason: str


class LeaderboardEntry(BaseModel):
    """One ranked row of an app leaderboard"""
    rank: int
    user_id: str
    best_score: int
    total_sessions: int
    experience_points: int
    mastery_level: MasteryLevel
