"""
Achievement System

Achievements are registered as (definition, predicate) pairs. A predicate
receives the just-completed session and the post-update progress summary
and returns True when the achievement is earned. Adding an achievement
means registering one more rule; sessions and progress summaries are not
touched.

Built-in rules:
- Milestones: first completion, 10 and 50 sessions
- Performance: perfect score
- Consistency: 7- and 30-day streaks
- Time invested: 1 hour and 10 hours

Features:
- Already-earned achievements are never evaluated again
- A rule that raises is logged and skipped, the rest still run
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional
import logging

from progress_engine.models.achievement import Achievement, AchievementRarity
from progress_engine.models.progress import ProgressSummary
from progress_engine.models.session import Session

logger = logging.getLogger(__name__)

AchievementPredicate = Callable[[Session, ProgressSummary], bool]


@dataclass(frozen=True)
class AchievementRule:
    """An achievement definition and the predicate that unlocks it"""
    achievement: Achievement
    predicate: AchievementPredicate

    @property
    def id(self) -> str:
        return self.achievement.id

    @property
    def reward_xp(self) -> int:
        return self.achievement.reward_xp


class AchievementRegistry:
    """Ordered, extensible collection of achievement rules"""

    def __init__(self, rules: Optional[Iterable[AchievementRule]] = None):
        self._rules: dict[str, AchievementRule] = {}
        for rule in rules or []:
            self.add(rule)

    def add(self, rule: AchievementRule) -> None:
        if rule.id in self._rules:
            raise ValueError(f"Achievement '{rule.id}' is already registered")
        self._rules[rule.id] = rule

    def register(
        self,
        id: str,
        name: str,
        description: str,
        icon: str = "🎖️",
        rarity: AchievementRarity = AchievementRarity.COMMON,
        reward_xp: int = 0
    ) -> Callable[[AchievementPredicate], AchievementPredicate]:
        """
        Decorator registering a predicate as an achievement rule

        Example:
            @registry.register("night_owl", "Night Owl", "Completed a session after 10pm", reward_xp=20)
            def night_owl(session, progress):
                return session.completed_at.hour >= 22
        """
        def decorator(predicate: AchievementPredicate) -> AchievementPredicate:
            achievement = Achievement(
                id=id,
                name=name,
                description=description,
                icon=icon,
                rarity=rarity,
                reward_xp=reward_xp,
            )
            self.add(AchievementRule(achievement=achievement, predicate=predicate))
            return predicate
        return decorator

    def get(self, achievement_id: str) -> Optional[AchievementRule]:
        return self._rules.get(achievement_id)

    @property
    def rules(self) -> List[AchievementRule]:
        return list(self._rules.values())

    @property
    def achievements(self) -> List[Achievement]:
        return [rule.achievement for rule in self._rules.values()]

    def __len__(self) -> int:
        return len(self._rules)


def evaluate_achievements(
    registry: AchievementRegistry,
    session: Session,
    progress: ProgressSummary
) -> List[AchievementRule]:
    """
    Rules newly satisfied by a completed session

    Args:
        registry: Rules to evaluate
        session: The just-completed session
        progress: Progress summary after the session was applied

    Returns:
        Rules whose predicate holds and whose achievement is not yet earned,
        in registration order
    """
    earned = []
    for rule in registry.rules:
        if progress.has_achievement(rule.id):
            continue

        try:
            unlocked = bool(rule.predicate(session, progress))
        except Exception as e:
            logger.error(
                f"Achievement rule '{rule.id}' failed for session {session.id}: {e}",
                exc_info=True
            )
            continue

        if unlocked:
            earned.append(rule)

    return earned


def get_achievement_details(
    achievement_id: str,
    registry: Optional[AchievementRegistry] = None
) -> Achievement:
    """Definition of an achievement, or a placeholder for unknown ids"""
    rule = (registry or default_registry).get(achievement_id)
    if rule:
        return rule.achievement

    return Achievement(
        id=achievement_id,
        name="Unknown Achievement",
        description="Achievement details not found",
        icon="🎖️",
        rarity=AchievementRarity.COMMON,
        reward_xp=0,
    )


# ============================================
# Built-in achievements
# ============================================

default_registry = AchievementRegistry()


@default_registry.register(
    "first_completion", "First Steps", "Completed your first session",
    icon="🎯", rarity=AchievementRarity.COMMON, reward_xp=25
)
def _first_completion(session: Session, progress: ProgressSummary) -> bool:
    return progress.total_sessions == 1


@default_registry.register(
    "perfect_score", "Perfect Score", "Achieved a perfect score",
    icon="⭐", rarity=AchievementRarity.RARE, reward_xp=50
)
def _perfect_score(session: Session, progress: ProgressSummary) -> bool:
    return session.score is not None and session.score == session.max_score


@default_registry.register(
    "week_streak", "Week Warrior", "7-day activity streak",
    icon="🔥", rarity=AchievementRarity.UNCOMMON, reward_xp=100
)
def _week_streak(session: Session, progress: ProgressSummary) -> bool:
    return progress.streak_days >= 7


@default_registry.register(
    "month_streak", "Monthly Master", "30-day activity streak",
    icon="👑", rarity=AchievementRarity.EPIC, reward_xp=500
)
def _month_streak(session: Session, progress: ProgressSummary) -> bool:
    return progress.streak_days >= 30


@default_registry.register(
    "dedicated_user", "Dedicated User", "Completed 10 sessions",
    icon="💪", rarity=AchievementRarity.UNCOMMON, reward_xp=100
)
def _dedicated_user(session: Session, progress: ProgressSummary) -> bool:
    return progress.total_sessions >= 10


@default_registry.register(
    "power_user", "Power User", "Completed 50 sessions",
    icon="🚀", rarity=AchievementRarity.LEGENDARY, reward_xp=500
)
def _power_user(session: Session, progress: ProgressSummary) -> bool:
    return progress.total_sessions >= 50


@default_registry.register(
    "hour_invested", "Time Investor", "Spent 1 hour in activities",
    icon="⏰", rarity=AchievementRarity.COMMON, reward_xp=50
)
def _hour_invested(session: Session, progress: ProgressSummary) -> bool:
    return progress.total_time_minutes >= 60


@default_registry.register(
    "ten_hours_invested", "Commitment Champion", "Spent 10 hours in activities",
    icon="🏆", rarity=AchievementRarity.EPIC, reward_xp=250
)
def _ten_hours_invested(session: Session, progress: ProgressSummary) -> bool:
    return progress.total_time_minutes >= 600
