"""
Mastery tiers

A tier is reached when either its XP threshold or its session threshold is
met. Both inputs only grow, so the tier never regresses; callers still pass
the previous tier so a stored value is never lowered.

| Tier         |   XP | Sessions |
|--------------|------|----------|
| novice       |    0 |        0 |
| beginner     |  100 |        5 |
| intermediate |  500 |       15 |
| advanced     | 2000 |       40 |
| expert       | 5000 |      100 |
"""

from typing import Optional

from progress_engine.models.progress import MasteryLevel

MASTERY_THRESHOLDS: list[tuple[MasteryLevel, int, int]] = [
    (MasteryLevel.EXPERT, 5000, 100),
    (MasteryLevel.ADVANCED, 2000, 40),
    (MasteryLevel.INTERMEDIATE, 500, 15),
    (MasteryLevel.BEGINNER, 100, 5),
    (MasteryLevel.NOVICE, 0, 0),
]


def calculate_mastery_level(
    experience_points: int,
    total_sessions: int,
    previous: Optional[MasteryLevel] = None
) -> MasteryLevel:
    """Mastery tier for the given XP and session count, never below previous"""
    computed = MasteryLevel.NOVICE
    for level, min_xp, min_sessions in MASTERY_THRESHOLDS:
        if experience_points >= min_xp or total_sessions >= min_sessions:
            computed = level
            break

    if previous is not None and previous.rank > computed.rank:
        return previous
    return computed
