"""Activity fact models"""
from enum import Enum
from datetime import date, datetime
from typing import Optional, Any
from pydantic import BaseModel, Field


class ActivityType(str, Enum):
    """Categories of user action that feed streaks"""
    MOOD_LOG = "mood_log"
    JOURNAL_ENTRY = "journal_entry"
    HABIT_COMPLETION = "habit_completion"
    CHALLENGE_CHECKIN = "challenge_checkin"
    MICRO_SESSION = "micro_session"


# Types whose facts carry a timestamp and live in activity_events
TIMESTAMPED_ACTIVITY_TYPES = frozenset({ActivityType.MOOD_LOG, ActivityType.JOURNAL_ENTRY})


class ActivityEvent(BaseModel):
    """Immutable timestamped fact (mood check-in, journal entry)"""
    id: str
    user_id: str
    activity_type: ActivityType
    occurred_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)
    event_key: Optional[str] = None  # client idempotency key for retried writes


class HabitCompletion(BaseModel):
    """One row per habit per day"""
    habit_id: str
    user_id: str
    date: date
    completed: bool = False


class MicroSession(BaseModel):
    """Daily five-minute coaching session, one per user per day"""
    user_id: str
    date: date
    duration_seconds: int = Field(0, ge=0)
    target_duration_seconds: int = Field(300, gt=0)
    completed: bool = False
    session_type: str = "daily-checkin"
    notes: Optional[str] = None


class DailyMetricsInput(BaseModel):
    """Daily check-in values as submitted; every field is optional"""
    mood_score: Optional[int] = Field(None, ge=1, le=5)
    energy_score: Optional[int] = Field(None, ge=1, le=10)
    stress_score: Optional[int] = Field(None, ge=1, le=10)
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    sleep_quality: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = Field(None, max_length=2000)


class DailyMetrics(DailyMetricsInput):
    """Stored daily check-in, one per user per day"""
    id: str
    user_id: str
    date: date
