"""Pydantic models for API request/response validation"""
from typing import Optional, Any
from pydantic import BaseModel, Field
from datetime import datetime

from progress_engine.gamification.xp_system import get_level_info
from progress_engine.models.progress import ProgressSummary
from progress_engine.models.session import SessionKind


class OpenSessionRequest(BaseModel):
    """Request to start a session"""
    app_id: str = Field(..., description="Catalog app identifier")
    session_type: SessionKind = Field(default=SessionKind.PLAY, description="Kind of attempt")


class CompleteSessionRequest(BaseModel):
    """Request to complete a session"""
    # Range is checked against the session's max_score by the service
    score: int = Field(..., description="Score achieved (0..max_score)")
    responses: Optional[Any] = Field(default=None, description="Opaque per-item responses")
    interaction_data: Optional[Any] = Field(default=None, description="Opaque client telemetry")


class AnalyticsEventRequest(BaseModel):
    """Client-reported analytics event for a session"""
    event_type: str = Field(..., min_length=1, description="Event name")
    event_data: Optional[Any] = Field(default=None, description="Opaque event payload")


class AnalyticsEventResponse(BaseModel):
    """Whether the event was stored"""
    recorded: bool


class ProgressResponse(ProgressSummary):
    """Progress summary with the XP still needed for the next level"""
    xp_for_next_level: int = Field(..., description="Total XP at which the next level starts")
    xp_to_next_level: int = Field(..., description="XP still needed to reach the next level")

    @classmethod
    def from_summary(cls, summary: ProgressSummary) -> "ProgressResponse":
        info = get_level_info(summary.experience_points)
        return cls(
            **summary.model_dump(),
            xp_for_next_level=info["xp_for_next_level"],
            xp_to_next_level=info["xp_to_next_level"],
        )


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Storage connection status")
    timestamp: datetime = Field(..., description="Check timestamp")


class ErrorResponse(BaseModel):
    """Error body produced from ProgressEngineError.to_dict()"""
    error: str
    message: str
    user_message: str
    retriable: bool
    request_id: str
    timestamp: datetime
