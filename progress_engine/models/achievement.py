"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime


class AchievementId(str, Enum):
    """Closed set of achievements; each member has exactly one rule"""
    FIRST_MOOD = "first_mood"
    FIRST_JOURNAL = "first_journal"
    FIRST_HABIT = "first_habit"
    STREAK_3 = "streak_3"
    STREAK_7 = "streak_7"
    MOOD_10 = "mood_10"
    JOURNAL_5 = "journal_5"
    HABITS_20 = "habits_20"


class SummaryMetric(str, Enum):
    """Counters an achievement rule may test"""
    TOTAL_MOOD_CHECKINS = "total_mood_checkins"
    TOTAL_JOURNAL_ENTRIES = "total_journal_entries"
    TOTAL_HABITS_COMPLETED = "total_habits_completed"
    CURRENT_HABIT_STREAK = "current_habit_streak"


class ActivitySummary(BaseModel):
    """Aggregate counters the evaluator runs against"""
    total_mood_checkins: int = Field(0, ge=0)
    total_journal_entries: int = Field(0, ge=0)
    total_habits_completed: int = Field(0, ge=0)
    current_habit_streak: int = Field(0, ge=0)

    def value_of(self, metric: SummaryMetric) -> int:
        return getattr(self, metric.value)


class AchievementAward(BaseModel):
    """User's earned achievement"""
    user_id: str
    achievement_id: AchievementId
    earned_at: datetime
