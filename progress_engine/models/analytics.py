"""Analytics event model"""
from typing import Any
from datetime import datetime
from pydantic import BaseModel, Field


class AnalyticsEvent(BaseModel):
    """Fine-grained interaction event (write-only from the engine's point of view)"""
    session_id: str
    event_type: str
    event_data: Any = Field(default_factory=dict)
    user_id: str
    app_id: str
    timestamp: datetime
