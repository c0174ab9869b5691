"""App catalog models (read-only reference data)"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ActivityKind(str, Enum):
    """Kind of gamified activity"""
    ASSESSMENT = "assessment"
    WORKSHEET = "worksheet"
    EXERCISE = "exercise"
    INTAKE = "intake"
    PSYCHOEDUCATION = "psychoeducation"


class DifficultyLevel(str, Enum):
    """Difficulty tier of an activity"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class AppDefinition(BaseModel):
    """Catalog entry for one gamified activity"""
    model_config = ConfigDict(frozen=True)

    id: str
    app_type: ActivityKind
    name: str
    description: Optional[str] = None
    difficulty_level: DifficultyLevel = DifficultyLevel.BEGINNER
    estimated_duration: Optional[int] = None  # minutes
    evidence_based: bool = False
    max_score: int = Field(default=100, ge=0)
    popularity_score: float = 0
    clinical_rating: float = 0
    is_active: bool = True
    tags: list[str] = Field(default_factory=list)
