"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, ConfigDict


class AchievementRarity(str, Enum):
    """How hard an achievement is to earn"""
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class Achievement(BaseModel):
    """Achievement definition"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    icon: str
    rarity: AchievementRarity = AchievementRarity.COMMON
    reward_xp: int = 0


class AchievementUnlock(BaseModel):
    """An achievement newly earned by a completed session"""
    achievement_id: str
    name: str
    reward_xp: int
