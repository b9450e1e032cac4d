"""In-memory stand-in for progress_engine.db.queries

Mirrors the query functions' signatures and storage semantics (unique keys,
upserts, conditional inserts, row locks) so engine behavior can be tested
without PostgreSQL. Every awaited call yields to the event loop once, which
lets asyncio.gather interleave concurrent callers the way a pool would.
"""
import asyncio
import itertools
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from progress_engine.exceptions import ConcurrencyConflictError


class FakeQueries:
    """Per-test database state behind the query-module API"""

    def __init__(self):
        self._ids = itertools.count(1)
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

        self.activity_events: list[dict] = []
        self.habit_completions: dict[tuple[str, str, date], dict] = {}
        self.micro_sessions: dict[tuple[str, date], dict] = {}
        self.daily_metrics: dict[tuple[str, date], dict] = {}
        self.profiles: dict[str, dict] = {}
        self.transactions: list[dict] = []
        self.achievements: dict[tuple[str, str], dict] = {}
        self.challenges: dict[str, dict] = {}
        self.participants: dict[str, dict] = {}
        self.checkins: dict[tuple[str, date], dict] = {}
        self.scorecards: dict[tuple[str, date], dict] = {}
        self.markers: dict[tuple[str, date, str], dict] = {}

        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Number of upcoming check-ins that fail to get the participant lock
        self.lock_failures = 0
        self.checkin_attempts = 0

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    # ==========================================
    # Seeding helpers
    # ==========================================

    def add_challenge(self, challenge_id: str = "challenge-1", is_active: bool = True, **fields) -> dict:
        row = {
            'id': challenge_id,
            'title': fields.get('title', "30 Day Reset"),
            'duration_days': fields.get('duration_days', 30),
            'start_date': fields.get('start_date', date(2025, 1, 1)),
            'end_date': fields.get('end_date', date(2025, 1, 30)),
            'is_active': is_active,
        }
        self.challenges[challenge_id] = row
        return row

    def add_participant(
        self,
        challenge_id: str,
        user_id: str,
        participant_id: Optional[str] = None,
        joined_at: Optional[datetime] = None,
        **counters
    ) -> dict:
        row = {
            'id': participant_id or self._next_id("participant"),
            'challenge_id': challenge_id,
            'user_id': user_id,
            'current_streak': counters.get('current_streak', 0),
            'best_streak': counters.get('best_streak', 0),
            'total_completions': counters.get('total_completions', 0),
            'last_completed_date': counters.get('last_completed_date'),
            'status': counters.get('status', "active"),
            'joined_at': joined_at or self._tick(),
        }
        self.participants[row['id']] = row
        return row

    # ==========================================
    # Activity
    # ==========================================

    async def insert_activity_event(
        self,
        user_id: str,
        activity_type: str,
        occurred_at: datetime,
        payload: dict[str, Any],
        event_key: Optional[str] = None
    ) -> tuple[dict, bool]:
        await asyncio.sleep(0)
        if event_key is not None:
            for event in self.activity_events:
                if event['user_id'] == user_id and event['event_key'] == event_key:
                    return dict(event), False
        row = {
            'id': self._next_id("event"),
            'user_id': user_id,
            'activity_type': activity_type,
            'occurred_at': occurred_at,
            'payload': dict(payload),
            'event_key': event_key,
        }
        self.activity_events.append(row)
        return dict(row), True

    async def get_activity_timestamps(
        self,
        user_id: str,
        activity_type: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> list[datetime]:
        await asyncio.sleep(0)
        return [
            event['occurred_at']
            for event in self.activity_events
            if event['user_id'] == user_id
            and event['activity_type'] == activity_type
            and (since is None or event['occurred_at'] >= since)
            and (until is None or event['occurred_at'] < until)
        ]

    async def count_activity_events(self, user_id: str, activity_type: str) -> int:
        return len(await self.get_activity_timestamps(user_id, activity_type))

    async def upsert_habit_completion(self, habit_id: str, user_id: str, completion_date: date, completed: bool) -> dict:
        await asyncio.sleep(0)
        row = {'habit_id': habit_id, 'user_id': user_id, 'date': completion_date, 'completed': completed}
        self.habit_completions[(user_id, habit_id, completion_date)] = row
        return dict(row)

    async def get_completed_habit_dates(self, user_id: str) -> list[date]:
        await asyncio.sleep(0)
        return sorted(
            {row['date'] for row in self.habit_completions.values() if row['user_id'] == user_id and row['completed']},
            reverse=True
        )

    async def count_completed_habits(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> int:
        await asyncio.sleep(0)
        return sum(
            1 for row in self.habit_completions.values()
            if row['user_id'] == user_id
            and row['completed']
            and (start_date is None or row['date'] >= start_date)
            and (end_date is None or row['date'] <= end_date)
        )

    async def upsert_micro_session(
        self,
        user_id: str,
        session_date: date,
        duration_seconds: int,
        completed: bool,
        notes: Optional[str] = None
    ) -> dict:
        await asyncio.sleep(0)
        existing = self.micro_sessions.get((user_id, session_date))
        row = {
            'user_id': user_id,
            'date': session_date,
            'duration_seconds': duration_seconds,
            'target_duration_seconds': 300,
            'completed': completed,
            'session_type': "daily-checkin",
            'notes': notes if notes is not None else (existing or {}).get('notes'),
        }
        self.micro_sessions[(user_id, session_date)] = row
        return dict(row)

    async def get_completed_micro_session_dates(self, user_id: str) -> list[date]:
        await asyncio.sleep(0)
        return [d for (uid, d), row in self.micro_sessions.items() if uid == user_id and row['completed']]

    async def upsert_daily_metrics(self, user_id: str, metrics_date: date, values: dict[str, Any]) -> dict:
        await asyncio.sleep(0)
        existing = self.daily_metrics.get((user_id, metrics_date))
        if existing is None:
            existing = {'id': self._next_id("metrics"), 'user_id': user_id, 'date': metrics_date}
        for column in ('mood_score', 'energy_score', 'stress_score', 'sleep_hours', 'sleep_quality', 'notes'):
            if values.get(column) is not None:
                existing[column] = values[column]
            else:
                existing.setdefault(column, None)
        self.daily_metrics[(user_id, metrics_date)] = existing
        return dict(existing)

    async def get_daily_metrics_between(self, user_id: str, start_date: date, end_date: date) -> list[dict]:
        await asyncio.sleep(0)
        rows = [
            dict(row) for (uid, d), row in self.daily_metrics.items()
            if uid == user_id and start_date <= d <= end_date
        ]
        return sorted(rows, key=lambda row: row['date'])

    # ==========================================
    # XP and achievements
    # ==========================================

    async def get_user_gamification(self, user_id: str) -> Optional[dict]:
        await asyncio.sleep(0)
        profile = self.profiles.get(user_id)
        return dict(profile) if profile else None

    async def award_xp_transaction(
        self,
        user_id: str,
        amount: int,
        source: str,
        source_id: Optional[str],
        description: Optional[str],
        level_for: Callable[[int], tuple[int, int]]
    ) -> dict:
        async with self._locks[f"profile:{user_id}"]:
            await asyncio.sleep(0)
            if source_id is not None:
                for transaction in self.transactions:
                    if (transaction['user_id'], transaction['source'], transaction['source_id']) == (user_id, source, source_id):
                        profile = self.profiles.get(user_id)
                        return {
                            'transaction': dict(transaction),
                            'profile': dict(profile) if profile else None,
                            'applied': False,
                            'previous_level': profile['current_level'] if profile else 1,
                        }

            transaction = {
                'id': self._next_id("xp"),
                'user_id': user_id,
                'amount': amount,
                'source': source,
                'source_id': source_id,
                'description': description,
                'created_at': self._tick(),
            }
            profile = self.profiles.get(user_id) or {
                'user_id': user_id, 'total_xp': 0, 'current_level': 1, 'xp_to_next_level': 100,
            }
            previous_level = profile['current_level']
            # Yield between read and write; the lock keeps this atomic like the row lock does
            await asyncio.sleep(0)
            total_xp = profile['total_xp'] + amount
            level, xp_to_next = level_for(total_xp)

            self.transactions.append(transaction)
            self.profiles[user_id] = {
                'user_id': user_id,
                'total_xp': total_xp,
                'current_level': level,
                'xp_to_next_level': xp_to_next,
                'updated_at': transaction['created_at'],
            }
            return {
                'transaction': dict(transaction),
                'profile': dict(self.profiles[user_id]),
                'applied': True,
                'previous_level': previous_level,
            }

    async def has_xp_transaction(self, user_id: str, source: str, source_id: str) -> bool:
        await asyncio.sleep(0)
        return any(
            (t['user_id'], t['source'], t['source_id']) == (user_id, source, source_id)
            for t in self.transactions
        )

    async def get_xp_transactions(self, user_id: str, limit: int = 50) -> list[dict]:
        await asyncio.sleep(0)
        rows = [dict(t) for t in self.transactions if t['user_id'] == user_id]
        return sorted(rows, key=lambda t: t['created_at'], reverse=True)[:limit]

    async def rebuild_user_gamification(self, user_id: str, level_for: Callable[[int], tuple[int, int]]) -> Optional[dict]:
        await asyncio.sleep(0)
        amounts = [t['amount'] for t in self.transactions if t['user_id'] == user_id]
        if not amounts:
            return None
        total_xp = sum(amounts)
        level, xp_to_next = level_for(total_xp)
        self.profiles[user_id] = {
            'user_id': user_id,
            'total_xp': total_xp,
            'current_level': level,
            'xp_to_next_level': xp_to_next,
            'updated_at': self._tick(),
        }
        return dict(self.profiles[user_id])

    async def insert_user_achievement(self, user_id: str, achievement_id: str) -> bool:
        await asyncio.sleep(0)
        if (user_id, achievement_id) in self.achievements:
            return False
        self.achievements[(user_id, achievement_id)] = {
            'user_id': user_id,
            'achievement_id': achievement_id,
            'earned_at': self._tick(),
        }
        return True

    async def get_user_achievements(self, user_id: str) -> list[dict]:
        await asyncio.sleep(0)
        rows = [dict(row) for (uid, _), row in self.achievements.items() if uid == user_id]
        return sorted(rows, key=lambda row: row['earned_at'])

    # ==========================================
    # Challenges
    # ==========================================

    async def get_challenge(self, challenge_id: str) -> Optional[dict]:
        await asyncio.sleep(0)
        row = self.challenges.get(challenge_id)
        return dict(row) if row else None

    async def get_participant(self, participant_id: str) -> Optional[dict]:
        await asyncio.sleep(0)
        row = self.participants.get(participant_id)
        return dict(row) if row else None

    async def upsert_participant(self, challenge_id: str, user_id: str) -> dict:
        await asyncio.sleep(0)
        for row in self.participants.values():
            if row['challenge_id'] == challenge_id and row['user_id'] == user_id:
                row['status'] = "active"
                return dict(row)
        return dict(self.add_participant(challenge_id, user_id))

    async def update_participant_status(self, challenge_id: str, user_id: str, status: str) -> Optional[dict]:
        await asyncio.sleep(0)
        for row in self.participants.values():
            if row['challenge_id'] == challenge_id and row['user_id'] == user_id:
                row['status'] = status
                return dict(row)
        return None

    async def apply_challenge_checkin(
        self,
        participant_id: str,
        checkin_date: date,
        completed: bool,
        notes: Optional[str],
        next_counters: Callable[[dict, bool, date], Optional[dict]],
        lock_timeout_ms: int
    ) -> Optional[dict]:
        self.checkin_attempts += 1
        if self.lock_failures > 0:
            self.lock_failures -= 1
            raise ConcurrencyConflictError(
                "Lock conflict during challenge_checkin: canceling statement due to lock timeout",
                entity="challenge_participants",
                key=participant_id
            )

        async with self._locks[f"participant:{participant_id}"]:
            await asyncio.sleep(0)
            participant = self.participants.get(participant_id)
            if participant is None:
                return None

            prior = self.checkins.get((participant_id, checkin_date))
            newly_completed = completed and not (prior and prior['counted'])

            counters = next_counters(dict(participant), newly_completed, checkin_date)
            await asyncio.sleep(0)

            checkin = {
                'id': prior['id'] if prior else self._next_id("checkin"),
                'participant_id': participant_id,
                'date': checkin_date,
                'completed': completed,
                'counted': bool(prior and prior['counted']) or newly_completed,
                'notes': notes if notes is not None else (prior or {}).get('notes'),
            }
            self.checkins[(participant_id, checkin_date)] = checkin
            if counters is not None:
                participant.update(counters)

            return {
                'checkin': dict(checkin),
                'participant': dict(participant),
                'newly_completed': newly_completed,
            }

    async def get_challenge_participants_ranked(self, challenge_id: str) -> list[dict]:
        await asyncio.sleep(0)
        rows = [dict(row) for row in self.participants.values() if row['challenge_id'] == challenge_id]
        return sorted(rows, key=lambda row: (-row['total_completions'], row['joined_at'], row['id']))

    async def get_user_participations(self, user_id: str) -> list[dict]:
        await asyncio.sleep(0)
        rows = [row for row in self.participants.values() if row['user_id'] == user_id]
        return [
            {'challenge': dict(self.challenges[row['challenge_id']]), 'participant': dict(row)}
            for row in sorted(rows, key=lambda row: row['joined_at'], reverse=True)
        ]

    async def get_completed_checkin_dates(self, user_id: str) -> list[date]:
        await asyncio.sleep(0)
        participant_ids = {pid for pid, row in self.participants.items() if row['user_id'] == user_id}
        return sorted(
            {d for (pid, d), row in self.checkins.items() if pid in participant_ids and row['completed']},
            reverse=True
        )

    # ==========================================
    # Scorecards
    # ==========================================

    async def upsert_weekly_scorecard(self, scorecard: dict) -> dict:
        await asyncio.sleep(0)
        row = dict(scorecard)
        self.scorecards[(row['user_id'], row['week_start'])] = row
        return dict(row)

    async def get_weekly_scorecard(self, user_id: str, week_start: date) -> Optional[dict]:
        await asyncio.sleep(0)
        row = self.scorecards.get((user_id, week_start))
        return dict(row) if row else None

    async def get_user_scorecards(self, user_id: str, limit: int = 12) -> list[dict]:
        await asyncio.sleep(0)
        rows = [dict(row) for (uid, _), row in self.scorecards.items() if uid == user_id]
        return sorted(rows, key=lambda row: row['week_start'], reverse=True)[:limit]

    # ==========================================
    # Markers
    # ==========================================

    async def claim_marker(
        self,
        scope: str,
        day: date,
        key: str,
        expires_at: datetime,
        payload: Optional[dict[str, Any]] = None
    ) -> bool:
        await asyncio.sleep(0)
        existing = self.markers.get((scope, day, key))
        if existing and existing['expires_at'] > datetime.now(timezone.utc):
            return False
        self.markers[(scope, day, key)] = {'payload': payload, 'expires_at': expires_at}
        return True

    async def put_marker(self, scope: str, day: date, key: str, payload: dict[str, Any], expires_at: datetime) -> None:
        await asyncio.sleep(0)
        self.markers[(scope, day, key)] = {'payload': dict(payload), 'expires_at': expires_at}

    async def get_marker(self, scope: str, day: date, key: str) -> Optional[dict]:
        await asyncio.sleep(0)
        row = self.markers.get((scope, day, key))
        if row is None or row['expires_at'] <= datetime.now(timezone.utc):
            return None
        return dict(row)

    async def delete_expired_markers(self, now: datetime) -> int:
        await asyncio.sleep(0)
        expired = [k for k, row in self.markers.items() if row['expires_at'] <= now]
        for k in expired:
            del self.markers[k]
        return len(expired)
