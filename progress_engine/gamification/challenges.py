"""
Challenge Participation and Leaderboards

Participant counters are updated in place, one check-in at a time, while
the participant row is locked. Each calendar day adds to the counters at
most once:
- newly completed day: total_completions + 1, current_streak + 1,
  best_streak raised if exceeded
- re-submitted completed day: nothing changes
- day submitted as not completed: nothing changes

Leaderboards are ranked on read.
"""

from datetime import date
from typing import List, Optional
import logging

from progress_engine import config
from progress_engine.db import queries
from progress_engine.exceptions import RecordNotFoundError, ValidationError
from progress_engine.models.challenge import (
    Challenge,
    ChallengeParticipant,
    CheckinResult,
    ChallengeCheckin,
    LeaderboardEntry,
    ParticipantStatus,
)
from progress_engine.observability.metrics import challenge_checkins_total
from progress_engine.resilience.retry import with_retry

logger = logging.getLogger(__name__)


def next_counters(participant: dict, newly_completed: bool, checkin_date: date) -> Optional[dict]:
    """
    Counter values after a check-in, or None when they do not change

    Every newly completed day extends the streak, in whatever order the
    days arrive. last_completed_date tracks the latest completed day.

    Raises:
        ValidationError: If the participant has dropped out
    """
    if participant['status'] == ParticipantStatus.DROPPED.value:
        raise ValidationError(
            "Participant has left this challenge",
            field="participant_id",
            value=participant['id'],
            user_id=participant['user_id']
        )

    if not newly_completed:
        return None

    current_streak = participant['current_streak'] + 1
    last_completed = participant['last_completed_date']
    if last_completed is None or checkin_date > last_completed:
        last_completed = checkin_date

    return {
        'current_streak': current_streak,
        'best_streak': max(participant['best_streak'], current_streak),
        'total_completions': participant['total_completions'] + 1,
        'last_completed_date': last_completed,
    }


async def _get_active_challenge(challenge_id: str) -> Challenge:
    row = await queries.get_challenge(challenge_id)
    if row is None:
        raise RecordNotFoundError(
            f"Challenge {challenge_id} not found",
            record_type="Challenge",
            record_id=challenge_id
        )
    challenge = Challenge(**row)
    if not challenge.is_active:
        raise ValidationError("Challenge is not active", field="challenge_id", value=challenge_id)
    return challenge


async def join_challenge(challenge_id: str, user_id: str) -> ChallengeParticipant:
    """
    Join a challenge

    Joining again returns the existing participant (re-activated if it had
    dropped out) with its counters intact.

    Raises:
        RecordNotFoundError: If the challenge does not exist
        ValidationError: If the challenge is not active
    """
    await _get_active_challenge(challenge_id)
    row = await queries.upsert_participant(challenge_id, user_id)
    logger.info(f"User {user_id} joined challenge {challenge_id}")
    return ChallengeParticipant(**row)


async def leave_challenge(challenge_id: str, user_id: str) -> None:
    """
    Leave a challenge; check-in history and counters are kept

    Raises:
        RecordNotFoundError: If the user never joined the challenge
    """
    row = await queries.update_participant_status(challenge_id, user_id, ParticipantStatus.DROPPED.value)
    if row is None:
        raise RecordNotFoundError(
            f"User {user_id} is not participating in challenge {challenge_id}",
            record_type="ChallengeParticipant",
            record_id=challenge_id,
            user_id=user_id
        )
    logger.info(f"User {user_id} left challenge {challenge_id}")


async def get_participant(participant_id: str) -> ChallengeParticipant:
    """
    Raises:
        RecordNotFoundError: If the participant does not exist
    """
    row = await queries.get_participant(participant_id)
    if row is None:
        raise RecordNotFoundError(
            f"Participant {participant_id} not found",
            record_type="ChallengeParticipant",
            record_id=participant_id
        )
    return ChallengeParticipant(**row)


@with_retry()
async def _apply_checkin(participant_id: str, checkin_date: date, completed: bool, notes: Optional[str]) -> Optional[dict]:
    return await queries.apply_challenge_checkin(
        participant_id,
        checkin_date,
        completed,
        notes,
        next_counters=next_counters,
        lock_timeout_ms=config.LOCK_TIMEOUT_MS
    )


async def checkin(
    participant_id: str,
    checkin_date: date,
    completed: bool,
    notes: Optional[str] = None
) -> CheckinResult:
    """
    Record a participant's check-in for one day

    Runs in one transaction holding the participant's row lock; a lock
    conflict is retried, then surfaces as ConcurrencyConflictError.

    Args:
        participant_id: Participant ID
        checkin_date: Normalized calendar day
        completed: Whether the day's challenge task was completed
        notes: Optional notes

    Returns:
        CheckinResult with the stored check-in, the updated participant and
        whether this call completed the day for the first time

    Raises:
        RecordNotFoundError: If the participant does not exist
        ValidationError: If the participant has dropped out
        ConcurrencyConflictError: If the participant stayed locked
    """
    result = await _apply_checkin(participant_id, checkin_date, completed, notes)
    if result is None:
        raise RecordNotFoundError(
            f"Participant {participant_id} not found",
            record_type="ChallengeParticipant",
            record_id=participant_id
        )

    participant = ChallengeParticipant(**result['participant'])
    newly_completed = result['newly_completed']

    challenge_checkins_total.labels(outcome="counted" if newly_completed else "unchanged").inc()
    logger.info(
        f"Check-in for participant {participant_id} on {checkin_date.isoformat()} "
        f"(completed={completed}, counted={newly_completed}): "
        f"streak={participant.current_streak}, total={participant.total_completions}"
    )

    return CheckinResult(
        checkin=ChallengeCheckin(**result['checkin']),
        participant=participant,
        newly_completed=newly_completed,
    )


async def get_leaderboard(challenge_id: str) -> List[LeaderboardEntry]:
    """
    Rank a challenge's participants

    Ordered by total completions, then earliest join, then participant id;
    ranks are 1..n with no shared ranks.
    """
    rows = await queries.get_challenge_participants_ranked(challenge_id)
    return [
        LeaderboardEntry(rank=position, participant=ChallengeParticipant(**row))
        for position, row in enumerate(rows, start=1)
    ]


async def get_user_challenges(user_id: str) -> List[dict]:
    """
    Get every challenge the user has joined

    Returns:
        List of {'challenge': Challenge, 'participant': ChallengeParticipant}
    """
    rows = await queries.get_user_participations(user_id)
    return [
        {
            'challenge': Challenge(**row['challenge']),
            'participant': ChallengeParticipant(**row['participant']),
        }
        for row in rows
    ]
