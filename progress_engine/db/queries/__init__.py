"""
Database queries - re-export every query function from one module.

Engine code imports the package (`from progress_engine.db import queries`)
and calls `queries.<function>`, so a single object can be swapped in tests.

Module organization:
- activity.py: Activity events, habit completions, micro-sessions, daily metrics
- gamification.py: XP ledger, profiles, achievements
- challenges.py: Challenges, participants, check-ins, leaderboard
- scorecards.py: Weekly scorecards
- markers.py: Daily markers (sent reminders, cached prompts)
"""

# Activity operations
from progress_engine.db.queries.activity import (
    insert_activity_event,
    get_activity_timestamps,
    count_activity_events,
    upsert_habit_completion,
    get_completed_habit_dates,
    count_completed_habits,
    upsert_micro_session,
    get_completed_micro_session_dates,
    upsert_daily_metrics,
    get_daily_metrics_between,
)

# Gamification operations
from progress_engine.db.queries.gamification import (
    get_user_gamification,
    award_xp_transaction,
    has_xp_transaction,
    get_xp_transactions,
    rebuild_user_gamification,
    insert_user_achievement,
    get_user_achievements,
)

# Challenge operations
from progress_engine.db.queries.challenges import (
    get_challenge,
    get_participant,
    upsert_participant,
    update_participant_status,
    apply_challenge_checkin,
    get_challenge_participants_ranked,
    get_user_participations,
    get_completed_checkin_dates,
)

# Scorecard operations
from progress_engine.db.queries.scorecards import (
    upsert_weekly_scorecard,
    get_weekly_scorecard,
    get_user_scorecards,
)

# Marker operations
from progress_engine.db.queries.markers import (
    claim_marker,
    put_marker,
    get_marker,
    delete_expired_markers,
)

__all__ = [
    # Activity
    'insert_activity_event',
    'get_activity_timestamps',
    'count_activity_events',
    'upsert_habit_completion',
    'get_completed_habit_dates',
    'count_completed_habits',
    'upsert_micro_session',
    'get_completed_micro_session_dates',
    'upsert_daily_metrics',
    'get_daily_metrics_between',
    # Gamification
    'get_user_gamification',
    'award_xp_transaction',
    'has_xp_transaction',
    'get_xp_transactions',
    'rebuild_user_gamification',
    'insert_user_achievement',
    'get_user_achievements',
    # Challenges
    'get_challenge',
    'get_participant',
    'upsert_participant',
    'update_participant_status',
    'apply_challenge_checkin',
    'get_challenge_participants_ranked',
    'get_user_participations',
    'get_completed_checkin_dates',
    # Scorecards
    'upsert_weekly_scorecard',
    'get_weekly_scorecard',
    'get_user_scorecards',
    # Markers
    'claim_marker',
    'put_marker',
    'get_marker',
    'delete_expired_markers',
]
