"""
Gamification rules for the progress engine

- XP and level curve
- Mastery tiers
- Consecutive-day streaks
- Achievement registry (predicate + reward pairs)
"""

from progress_engine.gamification.xp_system import calculate_level_from_xp, get_xp_for_next_level, get_xp_for_score
from progress_engine.gamification.mastery import calculate_mastery_level
from progress_engine.gamification.streak_system import calculate_streak
from progress_engine.gamification.achievement_system import (
    AchievementRegistry,
    AchievementRule,
    default_registry,
    evaluate_achievements,
    get_achievement_details,
)

__all__ = [
    "calculate_level_from_xp",
    "get_xp_for_next_level",
    "get_xp_for_score",
    "calculate_mastery_level",
    "calculate_streak",
    "AchievementRegistry",
    "AchievementRule",
    "default_registry",
    "evaluate_achievements",
    "get_achievement_details",
]
