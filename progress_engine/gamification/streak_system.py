"""
Consecutive-day streak tracking

Logic:
- First activity: streak of 1
- Activity on the same day: no change (already counted)
- Activity on the next day: streak continues (+1)
- Gap of more than one day: reset to 1
"""

from typing import Optional
from datetime import date, datetime, timezone
import logging

logger = logging.getLogger(__name__)


def calculate_streak(
    current_streak: int,
    last_activity: Optional[datetime | date],
    activity_date: date
) -> int:
    """
    Streak count after an activity on activity_date

    Args:
        current_streak: Streak before this activity
        last_activity: When the previous counted activity happened (None if never)
        activity_date: Date of this activity

    Returns:
        New streak count (always >= 1)
    """
    if isinstance(last_activity, datetime):
        # Day boundaries are UTC; stored timestamps may carry any offset
        if last_activity.tzinfo is not None:
            last_activity = last_activity.astimezone(timezone.utc)
        last_activity = last_activity.date()

    if last_activity is None:
        return 1

    gap_days = (activity_date - last_activity).days

    if gap_days <= 0:
        # Same day (or clock skew): already counted
        return max(current_streak, 1)

    if gap_days == 1:
        return current_streak + 1

    logger.debug(f"Streak broken after {gap_days} days (was {current_streak})")
    return 1
