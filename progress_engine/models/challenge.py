"""Challenge participation models"""
from enum import Enum
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class ParticipantStatus(str, Enum):
    """Participant lifecycle"""
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"


class Challenge(BaseModel):
    """The subset of a challenge the engine reads"""
    id: str
    title: str
    duration_days: int
    start_date: date
    end_date: date
    is_active: bool = True


class ChallengeParticipant(BaseModel):
    """Per-participant counters, updated in place on each check-in"""
    id: str
    challenge_id: str
    user_id: str
    current_streak: int = Field(0, ge=0)
    best_streak: int = Field(0, ge=0)
    total_completions: int = Field(0, ge=0)
    last_completed_date: Optional[date] = None
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    joined_at: datetime


class ChallengeCheckin(BaseModel):
    """One row per participant per date"""
    id: str
    participant_id: str
    date: date
    completed: bool = False
    notes: Optional[str] = None


class CheckinResult(BaseModel):
    """Outcome of a check-in upsert"""
    checkin: ChallengeCheckin
    participant: ChallengeParticipant
    newly_completed: bool


class LeaderboardEntry(BaseModel):
    """Ranked participant"""
    rank: int
    participant: ChallengeParticipant
