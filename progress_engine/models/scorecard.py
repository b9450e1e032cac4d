"""Weekly scorecard model"""
from datetime import date
from typing import Optional
from pydantic import BaseModel


class WeeklyScorecard(BaseModel):
    """Monday-anchored weekly aggregate; averages are None when nothing was logged"""
    user_id: str
    week_start: date
    avg_mood: Optional[float] = None
    avg_energy: Optional[float] = None
    avg_stress: Optional[float] = None
    avg_sleep_hours: Optional[float] = None
    avg_sleep_quality: Optional[float] = None
    total_habits_completed: int = 0
    total_journal_entries: int = 0
