"""XP, level and streak models"""
from datetime import datetime
from typing import Generic, Optional, TypeVar
from pydantic import BaseModel, Field
from progress_engine.models.achievement import AchievementId


class StreakState(BaseModel):
    """Computed on read, never persisted"""
    current: int = Field(0, ge=0)
    longest: int = Field(0, ge=0)


class LevelInfo(BaseModel):
    """Output of the leveling curve for one XP total"""
    level: int
    xp_to_next_level: int
    xp_in_current_level: int


class GamificationProfile(BaseModel):
    """Cached projection of the XP ledger; level fields derive from total_xp"""
    user_id: str
    total_xp: int = 0
    current_level: int = 1
    xp_to_next_level: int = 100
    updated_at: Optional[datetime] = None


class XpTransaction(BaseModel):
    """Immutable ledger row"""
    id: str
    user_id: str
    amount: int = Field(gt=0)
    source: str
    source_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class XpAward(BaseModel):
    """Result of award_xp"""
    transaction: XpTransaction
    profile: GamificationProfile
    applied: bool = True  # False when (source, source_id) had already been awarded
    leveled_up: bool = False


RecordT = TypeVar("RecordT")


class ProgressUpdate(BaseModel, Generic[RecordT]):
    """Stored fact plus the progress it produced"""
    record: RecordT
    achievements_unlocked: list[AchievementId] = Field(default_factory=list)
    xp_award: Optional[XpAward] = None
