"""
Gamification engine for progress tracking

This module derives progress signals from activity facts:
- XP ledger and leveling curve
- Consecutive-day streaks per activity type
- Achievements
- Weekly scorecards
- Challenge leaderboards
"""

from progress_engine.gamification.xp_system import (
    award_xp,
    has_awarded,
    get_gamification_profile,
    get_xp_history,
    calculate_level_from_xp,
)
from progress_engine.gamification.streak_system import calculate_streak, get_streak, get_all_streaks
from progress_engine.gamification.achievement_system import (
    earned_by,
    evaluate,
    build_summary,
    check_and_award_achievements,
    award_achievement,
    get_user_achievements,
)
from progress_engine.gamification.scorecards import aggregate, get_weekly_scorecard, get_user_scorecards
from progress_engine.gamification.challenges import (
    join_challenge,
    leave_challenge,
    checkin,
    get_leaderboard,
    get_user_challenges,
)

__all__ = [
    "award_xp",
    "has_awarded",
    "get_gamification_profile",
    "get_xp_history",
    "calculate_level_from_xp",
    "calculate_streak",
    "get_streak",
    "get_all_streaks",
    "earned_by",
    "evaluate",
    "build_summary",
    "check_and_award_achievements",
    "award_achievement",
    "get_user_achievements",
    "aggregate",
    "get_weekly_scorecard",
    "get_user_scorecards",
    "join_challenge",
    "leave_challenge",
    "checkin",
    "get_leaderboard",
    "get_user_challenges",
]
