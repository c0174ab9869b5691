"""
AchievementEngine - unlocks achievements against the post-update progress

Stateless over a registry of (predicate, reward) rules. Unlocking is
set-union: an id already in the summary is never added or rewarded again,
so re-running evaluation for the same completion is harmless.
"""

import logging
from typing import Optional

from progress_engine.gamification.achievement_system import (
    AchievementRegistry,
    AchievementRule,
    default_registry,
    evaluate_achievements,
)
from progress_engine.models.achievement import Achievement, AchievementUnlock
from progress_engine.models.progress import ProgressKey, ProgressSummary
from progress_engine.models.session import Session
from progress_engine.services.progress_aggregator import ProgressAggregator, refresh_derived_fields

logger = logging.getLogger(__name__)


def grant_rules(progress: ProgressSummary, rules: list[AchievementRule]) -> tuple[ProgressSummary, list[AchievementRule]]:
    """
    Add the rules' achievements and rewards to a summary (pure)

    Returns:
        (updated summary, rules actually granted)
    """
    achievements = list(progress.achievements)
    granted = []
    reward = 0
    for rule in rules:
        if rule.id in achievements:
            continue
        achievements.append(rule.id)
        reward += rule.reward_xp
        granted.append(rule)

    if not granted:
        return progress, []

    updated = progress.model_copy(update={
        "achievements": achievements,
        "experience_points": progress.experience_points + reward,
    })
    return refresh_derived_fields(updated), granted


class AchievementEngine:
    """Evaluates achievement rules and grants the newly earned ones"""

    def __init__(self, aggregator: ProgressAggregator, registry: Optional[AchievementRegistry] = None):
        self.aggregator = aggregator
        self.registry = registry or default_registry

    def unlock(self, session: Session, progress: ProgressSummary) -> tuple[ProgressSummary, list[AchievementRule]]:
        """
        Evaluate and grant against an in-flight snapshot (pure).

        Used as the follow-up stage of ProgressAggregator.apply so the
        unlock happens inside the same atomic unit as the session update.
        """
        earned = evaluate_achievements(self.registry, session, progress)
        return grant_rules(progress, earned)

    async def evaluate(self, session: Session) -> tuple[ProgressSummary, list[AchievementUnlock]]:
        """
        Re-evaluate rules for a completed session as its own atomic update.

        Safe to call any number of times: earned achievements are skipped.
        """
        key = ProgressKey(session.app_id, session.user_id)
        granted: list[AchievementRule] = []

        def mutate(current: ProgressSummary) -> ProgressSummary:
            granted.clear()
            updated, rules = self.unlock(session, current)
            granted.extend(rules)
            return updated

        progress = await self.aggregator.update(key, mutate)
        unlocks = [to_unlock(rule) for rule in granted]
        for unlock in unlocks:
            logger.info(
                f"User {session.user_id} unlocked achievement: {unlock.achievement_id} "
                f"({unlock.name}) +{unlock.reward_xp} XP"
            )
        return progress, unlocks

    def list_achievements(self) -> list[Achievement]:
        return self.registry.achievements


def to_unlock(rule: AchievementRule) -> AchievementUnlock:
    return AchievementUnlock(
        achievement_id=rule.id,
        name=rule.achievement.name,
        reward_xp=rule.reward_xp,
    )
