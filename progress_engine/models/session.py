"""Session models"""
from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class SessionKind(str, Enum):
    """Why the user is running the activity"""
    PLAY = "play"
    ASSESSMENT = "assessment"
    PRACTICE = "practice"
    REVIEW = "review"


class SessionStatus(str, Enum):
    """Session lifecycle state"""
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABANDONED})
OPEN_STATUSES = frozenset({SessionStatus.STARTED, SessionStatus.IN_PROGRESS})


class Session(BaseModel):
    """One attempt by one user at one app"""
    id: str
    app_id: str
    user_id: str
    session_type: SessionKind = SessionKind.PLAY
    status: SessionStatus = SessionStatus.STARTED
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    score: Optional[int] = None
    max_score: int = 100
    # Opaque payloads: stored and returned, never interpreted
    responses: Any = Field(default_factory=dict)
    interaction_data: Any = Field(default_factory=dict)
    # Set when the completion has been applied to the progress summary
    scored_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_scored(self) -> bool:
        return self.scored_at is not None
