"""
Achievement System

Achievements are a closed set: every AchievementId has exactly one rule,
a threshold on one ActivitySummary counter. Evaluation is idempotent; an
award is a conditional insert on (user_id, achievement_id), so redundant
or concurrent evaluations never award twice.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional
import logging

from progress_engine.db import queries
from progress_engine.exceptions import ValidationError
from progress_engine.gamification.streak_system import get_streak
from progress_engine.models.achievement import (
    AchievementAward,
    AchievementId,
    ActivitySummary,
    SummaryMetric,
)
from progress_engine.models.activity import ActivityType
from progress_engine.observability.metrics import gamification_achievements_unlocked_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementRule:
    """Unlock condition and display data for one achievement"""
    metric: SummaryMetric
    threshold: int
    name: str
    description: str
    icon: str

    def is_met(self, summary: ActivitySummary) -> bool:
        return summary.value_of(self.metric) >= self.threshold


ACHIEVEMENT_RULES: Dict[AchievementId, AchievementRule] = {
    AchievementId.FIRST_MOOD: AchievementRule(
        SummaryMetric.TOTAL_MOOD_CHECKINS, 1,
        "First Check-in", "Logged your first mood", "smile"
    ),
    AchievementId.FIRST_JOURNAL: AchievementRule(
        SummaryMetric.TOTAL_JOURNAL_ENTRIES, 1,
        "Dear Diary", "Wrote your first journal entry", "book"
    ),
    AchievementId.FIRST_HABIT: AchievementRule(
        SummaryMetric.TOTAL_HABITS_COMPLETED, 1,
        "Habit Starter", "Completed your first habit", "check"
    ),
    AchievementId.STREAK_3: AchievementRule(
        SummaryMetric.CURRENT_HABIT_STREAK, 3,
        "On a Roll", "Completed habits 3 days in a row", "flame"
    ),
    AchievementId.STREAK_7: AchievementRule(
        SummaryMetric.CURRENT_HABIT_STREAK, 7,
        "Week Warrior", "Completed habits 7 days in a row", "fire"
    ),
    AchievementId.MOOD_10: AchievementRule(
        SummaryMetric.TOTAL_MOOD_CHECKINS, 10,
        "Self-Aware", "Logged your mood 10 times", "heart"
    ),
    AchievementId.JOURNAL_5: AchievementRule(
        SummaryMetric.TOTAL_JOURNAL_ENTRIES, 5,
        "Reflective Mind", "Wrote 5 journal entries", "pen"
    ),
    AchievementId.HABITS_20: AchievementRule(
        SummaryMetric.TOTAL_HABITS_COMPLETED, 20,
        "Habit Master", "Completed 20 habits", "trophy"
    ),
}


def get_rule(achievement_id: AchievementId) -> AchievementRule:
    return ACHIEVEMENT_RULES[achievement_id]


def earned_by(summary: ActivitySummary) -> List[AchievementId]:
    """
    Every achievement whose threshold the summary meets

    Pure; does not consider what the user already holds.
    """
    return [achievement_id for achievement_id, rule in ACHIEVEMENT_RULES.items() if rule.is_met(summary)]


async def build_summary(user_id: str, today: Optional[date] = None) -> ActivitySummary:
    """
    Collect the counters achievement rules are evaluated against

    Args:
        user_id: User ID
        today: Override for today's date (used for the habit streak)
    """
    total_mood_checkins = await queries.count_activity_events(user_id, ActivityType.MOOD_LOG.value)
    total_journal_entries = await queries.count_activity_events(user_id, ActivityType.JOURNAL_ENTRY.value)
    total_habits_completed = await queries.count_completed_habits(user_id)
    habit_streak = await get_streak(user_id, ActivityType.HABIT_COMPLETION, today=today)

    return ActivitySummary(
        total_mood_checkins=total_mood_checkins,
        total_journal_entries=total_journal_entries,
        total_habits_completed=total_habits_completed,
        current_habit_streak=habit_streak.current,
    )


async def evaluate(user_id: str, summary: ActivitySummary) -> List[AchievementId]:
    """
    Award every achievement the summary meets that the user does not hold yet

    Args:
        user_id: User ID
        summary: Fresh activity counters

    Returns:
        Achievements newly awarded by this call (empty when nothing changed)
    """
    newly_awarded = []

    for achievement_id in earned_by(summary):
        if await queries.insert_user_achievement(user_id, achievement_id.value):
            newly_awarded.append(achievement_id)
            gamification_achievements_unlocked_total.labels(achievement_type=achievement_id.value).inc()
            logger.info(f"User {user_id} unlocked achievement: {get_rule(achievement_id).name}")

    return newly_awarded


async def check_and_award_achievements(user_id: str, today: Optional[date] = None) -> List[AchievementId]:
    """Build a fresh summary for the user and evaluate it"""
    summary = await build_summary(user_id, today=today)
    return await evaluate(user_id, summary)


async def award_achievement(user_id: str, achievement_id: str) -> bool:
    """
    Award an achievement directly, bypassing its rule

    Returns:
        True if newly awarded, False if the user already had it

    Raises:
        ValidationError: If achievement_id is not a known achievement
    """
    try:
        known_id = AchievementId(achievement_id)
    except ValueError:
        raise ValidationError(
            f"Unknown achievement '{achievement_id}'",
            field="achievement_id",
            value=achievement_id,
            user_id=user_id
        )

    awarded = await queries.insert_user_achievement(user_id, known_id.value)
    if awarded:
        gamification_achievements_unlocked_total.labels(achievement_type=known_id.value).inc()
        logger.info(f"User {user_id} was awarded achievement: {get_rule(known_id).name}")
    return awarded


async def get_user_achievements(user_id: str) -> List[AchievementAward]:
    """
    Get user's earned achievements, oldest first

    Rows for ids that are no longer in the rule set are skipped.
    """
    rows = await queries.get_user_achievements(user_id)
    awards = []
    for row in rows:
        try:
            awards.append(AchievementAward(**row))
        except ValueError:
            logger.warning(f"Skipping unknown achievement {row.get('achievement_id')} for user {user_id}")
    return awards
