"""
XP and Leveling System

Level curve: level = floor(sqrt(xp / 100)) + 1
XP needed to leave a level: level^2 * 100

XP Award Rules:
- Completed session: score * XP_PER_SCORE_POINT
- Achievement unlocks: the achievement's reward
"""

import math
from typing import Dict

from progress_engine import config


def calculate_level_from_xp(total_xp: int) -> int:
    """Level for a total XP amount (level 1 for zero or negative XP)"""
    if total_xp <= 0:
        return 1
    return math.isqrt(total_xp // 100) + 1


def get_xp_for_next_level(current_level: int) -> int:
    """Total XP at which current_level is left behind"""
    return current_level * current_level * 100


def get_xp_for_score(score: int) -> int:
    """XP earned by a completed session"""
    return score * config.XP_PER_SCORE_POINT


def get_level_info(total_xp: int) -> Dict[str, int]:
    """
    Level breakdown for display

    Returns:
        {
            'current_level': int,
            'total_xp': int,
            'xp_for_next_level': int,
            'xp_to_next_level': int
        }
    """
    level = calculate_level_from_xp(total_xp)
    next_level_xp = get_xp_for_next_level(level)
    return {
        "current_level": level,
        "total_xp": total_xp,
        "xp_for_next_level": next_level_xp,
        "xp_to_next_level": max(next_level_xp - total_xp, 0),
    }
