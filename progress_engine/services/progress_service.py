"""
ProgressService - Engine boundary

Inbound events (mood check-ins, journal entries, habit toggles,
micro-sessions, daily metrics, challenge check-ins) are normalized to a
calendar day, stored as authoritative facts and then re-evaluated for
achievements and XP. Outbound queries are pure reads.

Errors are not swallowed here: callers receive the typed engine errors
from progress_engine.exceptions and map them to their own responses.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from progress_engine import config
from progress_engine.db import queries
from progress_engine.exceptions import ValidationError
from progress_engine.gamification import (
    achievement_system,
    challenges,
    daily_markers,
    scorecards,
    streak_system,
    xp_system,
)
from progress_engine.models.achievement import AchievementAward, AchievementId
from progress_engine.models.activity import (
    ActivityEvent,
    ActivityType,
    DailyMetrics,
    DailyMetricsInput,
    HabitCompletion,
    MicroSession,
)
from progress_engine.models.challenge import (
    ChallengeParticipant,
    CheckinResult,
    LeaderboardEntry,
)
from progress_engine.models.gamification import (
    GamificationProfile,
    ProgressUpdate,
    StreakState,
    XpTransaction,
)
from progress_engine.models.scorecard import WeeklyScorecard
from progress_engine.utils.datetime_helpers import normalize, parse_date, today, week_start_for

logger = logging.getLogger(__name__)

DAILY_CHECKIN_SOURCE = "daily_checkin"
CHALLENGE_CHECKIN_SOURCE = "challenge_checkin"


class ProgressService:
    """
    Service for progress tracking.

    Responsibilities:
    - Recording activity facts under the single calendar policy
    - Re-evaluating achievements after every fact
    - Awarding XP for daily check-ins and challenge check-ins
    - Serving streaks, profiles, achievements, scorecards and leaderboards
    """

    def __init__(self):
        """Initialize ProgressService; storage goes through progress_engine.db.queries and the shared pool."""
        logger.debug("ProgressService initialized")

    async def _evaluate_achievements(self, user_id: str) -> List[AchievementId]:
        return await achievement_system.check_and_award_achievements(user_id)

    # ==========================================
    # Inbound events
    # ==========================================

    async def _record_event(
        self,
        user_id: str,
        activity_type: ActivityType,
        occurred_at: datetime,
        payload: Dict[str, Any],
        event_key: Optional[str]
    ) -> ProgressUpdate[ActivityEvent]:
        row, created = await queries.insert_activity_event(
            user_id, activity_type.value, occurred_at, payload, event_key
        )
        event = ActivityEvent(**row)

        if created:
            logger.info(
                f"Recorded {activity_type.value} for user {user_id} on {normalize(occurred_at).isoformat()}"
            )

        unlocked = await self._evaluate_achievements(user_id)
        return ProgressUpdate[ActivityEvent](record=event, achievements_unlocked=unlocked)

    async def record_mood(
        self,
        user_id: str,
        occurred_at: datetime,
        mood: str,
        energy_level: Optional[int] = None,
        stress_level: Optional[int] = None,
        event_key: Optional[str] = None
    ) -> ProgressUpdate[ActivityEvent]:
        """
        Record a mood check-in.

        Args:
            user_id: User ID
            occurred_at: When the mood was logged
            mood: Mood label
            energy_level: Optional energy level (1-10)
            stress_level: Optional stress level (1-10)
            event_key: Client idempotency key; a retried write with the same key is not stored twice

        Returns:
            ProgressUpdate with the stored event and any achievements unlocked
        """
        if not mood:
            raise ValidationError("Mood is required", field="mood", value=mood, user_id=user_id)
        for field_name, level in (("energy_level", energy_level), ("stress_level", stress_level)):
            if level is not None and not 1 <= level <= 10:
                raise ValidationError("Must be between 1 and 10", field=field_name, value=level, user_id=user_id)

        payload = {"mood": mood, "energy_level": energy_level, "stress_level": stress_level}
        return await self._record_event(user_id, ActivityType.MOOD_LOG, occurred_at, payload, event_key)

    async def record_journal_entry(
        self,
        user_id: str,
        occurred_at: datetime,
        title: str,
        content: str,
        event_key: Optional[str] = None
    ) -> ProgressUpdate[ActivityEvent]:
        """
        Record a journal entry.

        Only the title and content are kept as the event payload; the entry
        counts toward the journal streak on its normalized date.
        """
        if not title or not content:
            raise ValidationError(
                "Journal entries need a title and content",
                field="title" if not title else "content",
                user_id=user_id
            )

        payload = {"title": title, "content": content}
        return await self._record_event(user_id, ActivityType.JOURNAL_ENTRY, occurred_at, payload, event_key)

    async def toggle_habit_completion(
        self,
        user_id: str,
        habit_id: str,
        completion_date: Union[date, str],
        completed: bool
    ) -> ProgressUpdate[HabitCompletion]:
        """
        Set whether a habit was completed on a day.

        Toggling is an upsert on (user_id, habit_id, date), so repeating it is harmless.
        """
        completion_date = parse_date(completion_date, "date")
        row = await queries.upsert_habit_completion(habit_id, user_id, completion_date, completed)
        logger.info(
            f"Habit {habit_id} for user {user_id} on {completion_date.isoformat()}: completed={completed}"
        )

        unlocked = await self._evaluate_achievements(user_id)
        return ProgressUpdate[HabitCompletion](record=HabitCompletion(**row), achievements_unlocked=unlocked)

    async def complete_micro_session(
        self,
        user_id: str,
        session_date: Union[date, str],
        duration_seconds: int,
        notes: Optional[str] = None
    ) -> ProgressUpdate[MicroSession]:
        """Mark the day's micro-session as completed."""
        session_date = parse_date(session_date, "date")
        if duration_seconds < 0:
            raise ValidationError(
                "Duration cannot be negative",
                field="duration_seconds",
                value=duration_seconds,
                user_id=user_id
            )

        row = await queries.upsert_micro_session(user_id, session_date, duration_seconds, True, notes)
        logger.info(f"Micro-session completed for user {user_id} on {session_date.isoformat()} ({duration_seconds}s)")

        unlocked = await self._evaluate_achievements(user_id)
        return ProgressUpdate[MicroSession](record=MicroSession(**row), achievements_unlocked=unlocked)

    async def submit_daily_metrics(
        self,
        user_id: str,
        metrics_date: Union[date, str],
        metrics: Union[DailyMetricsInput, Dict[str, Any]]
    ) -> ProgressUpdate[DailyMetrics]:
        """
        Store the day's metrics and award the daily check-in XP.

        The XP is keyed by the metrics row, so re-submitting the same day
        updates the values without awarding again.

        Raises:
            ValidationError: If a value is out of range or the date is malformed
        """
        metrics_date = parse_date(metrics_date, "date")
        if not isinstance(metrics, DailyMetricsInput):
            try:
                metrics = DailyMetricsInput(**metrics)
            except ValueError as e:
                raise ValidationError(
                    f"Invalid daily metrics: {e}",
                    field="metrics",
                    user_id=user_id
                ) from e

        row = await queries.upsert_daily_metrics(user_id, metrics_date, metrics.model_dump())
        stored = DailyMetrics(**row)

        xp_award = await xp_system.award_xp(
            user_id,
            config.DAILY_CHECKIN_XP,
            DAILY_CHECKIN_SOURCE,
            source_id=stored.id,
            description="Daily check-in"
        )

        unlocked = await self._evaluate_achievements(user_id)
        return ProgressUpdate[DailyMetrics](record=stored, achievements_unlocked=unlocked, xp_award=xp_award)

    async def submit_challenge_checkin(
        self,
        user_id: str,
        participant_id: str,
        checkin_date: Union[date, str],
        completed: bool,
        notes: Optional[str] = None
    ) -> ProgressUpdate[CheckinResult]:
        """
        Record a challenge check-in for one of the user's participations.

        A completed day also awards CHALLENGE_CHECKIN_XP, keyed by the
        check-in: a retry completes an award that failed earlier and cannot
        award twice.

        Raises:
            RecordNotFoundError: If the participant does not exist
            ValidationError: If the participant belongs to another user or has dropped out
            ConcurrencyConflictError: If the participant stayed locked
        """
        checkin_date = parse_date(checkin_date, "date")
        participant = await challenges.get_participant(participant_id)
        if participant.user_id != user_id:
            raise ValidationError(
                "Participant does not belong to this user",
                field="participant_id",
                value=participant_id,
                user_id=user_id
            )

        result = await challenges.checkin(participant_id, checkin_date, completed, notes)

        xp_award = None
        if result.checkin.completed:
            xp_award = await xp_system.award_xp(
                user_id,
                config.CHALLENGE_CHECKIN_XP,
                CHALLENGE_CHECKIN_SOURCE,
                source_id=result.checkin.id,
                description="Challenge check-in"
            )

        unlocked = await self._evaluate_achievements(user_id)
        return ProgressUpdate[CheckinResult](record=result, achievements_unlocked=unlocked, xp_award=xp_award)

    # ==========================================
    # Challenge participation
    # ==========================================

    async def join_challenge(self, user_id: str, challenge_id: str) -> ChallengeParticipant:
        return await challenges.join_challenge(challenge_id, user_id)

    async def leave_challenge(self, user_id: str, challenge_id: str) -> None:
        await challenges.leave_challenge(challenge_id, user_id)

    async def get_user_challenges(self, user_id: str) -> List[dict]:
        return await challenges.get_user_challenges(user_id)

    # ==========================================
    # Outbound queries
    # ==========================================

    async def get_streak(self, user_id: str, activity_type: Union[ActivityType, str]) -> StreakState:
        """Get the user's streak for one activity type."""
        try:
            activity_type = ActivityType(activity_type)
        except ValueError:
            raise ValidationError(
                f"Unknown activity type '{activity_type}'",
                field="activity_type",
                value=activity_type,
                user_id=user_id
            )
        return await streak_system.get_streak(user_id, activity_type)

    async def get_all_streaks(self, user_id: str) -> Dict[ActivityType, StreakState]:
        return await streak_system.get_all_streaks(user_id)

    async def get_gamification_profile(self, user_id: str) -> GamificationProfile:
        return await xp_system.get_gamification_profile(user_id)

    async def get_xp_history(self, user_id: str, limit: int = 50) -> List[XpTransaction]:
        return await xp_system.get_xp_history(user_id, limit)

    async def get_achievements(self, user_id: str) -> List[AchievementAward]:
        return await achievement_system.get_user_achievements(user_id)

    async def award_achievement(self, user_id: str, achievement_id: str) -> bool:
        """Award an achievement by id, bypassing its rule (admin and coach tooling)."""
        return await achievement_system.award_achievement(user_id, achievement_id)

    async def aggregate_weekly_scorecard(
        self,
        user_id: str,
        week_start: Optional[Union[date, str]] = None
    ) -> WeeklyScorecard:
        """
        Recompute and store a weekly scorecard.

        Args:
            user_id: User ID
            week_start: Monday of the week (defaults to the current week)
        """
        week_start = parse_date(week_start, "week_start") if week_start is not None else week_start_for(today())
        return await scorecards.aggregate(user_id, week_start)

    async def get_weekly_scorecard(self, user_id: str, week_start: Union[date, str]) -> Optional[WeeklyScorecard]:
        return await scorecards.get_weekly_scorecard(user_id, parse_date(week_start, "week_start"))

    async def get_user_scorecards(self, user_id: str, limit: int = 12) -> List[WeeklyScorecard]:
        return await scorecards.get_user_scorecards(user_id, limit)

    async def get_challenge_leaderboard(self, challenge_id: str) -> List[LeaderboardEntry]:
        return await challenges.get_leaderboard(challenge_id)

    # ==========================================
    # Daily markers
    # ==========================================

    async def mark_reminder_sent(self, user_id: str, reminder_id: str) -> bool:
        """
        Claim today's send slot for a reminder.

        Returns:
            True if the caller should send it; False if it already went out today
        """
        return await daily_markers.mark_once(daily_markers.SENT_REMINDERS, f"{user_id}:{reminder_id}")

    async def get_cached_journal_prompts(self, user_id: str) -> Optional[List[str]]:
        payload = await daily_markers.get(daily_markers.JOURNAL_PROMPTS, user_id)
        return payload["prompts"] if payload else None

    async def cache_journal_prompts(self, user_id: str, prompts: List[str]) -> None:
        await daily_markers.put(daily_markers.JOURNAL_PROMPTS, user_id, {"prompts": prompts})
