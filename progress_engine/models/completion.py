"""Result of completing a session"""
from pydantic import BaseModel, Field

from progress_engine.models.achievement import AchievementUnlock
from progress_engine.models.progress import ProgressSummary
from progress_engine.models.session import Session


class CompletionResult(BaseModel):
    """Session, post-update progress snapshot and what the completion unlocked"""
    session: Session
    progress: ProgressSummary
    achievements_unlocked: list[AchievementUnlock] = Field(default_factory=list)
    new_best: bool = False
    leveled_up: bool = False
