"""Progress & gamification engine: streaks, XP, achievements, scorecards and challenge leaderboards"""

__version__ = "0.1.0"
