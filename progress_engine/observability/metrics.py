"""
Prometheus metrics definitions for the progress engine.

Metrics are organized by category:
- Gamification metrics: XP, achievements, challenge check-ins
- Storage metrics: Lock retries, wrapped errors
- Application info

The host process decides whether and where to expose them for scraping.
"""

import logging
from prometheus_client import Counter, Histogram, Info

logger = logging.getLogger(__name__)

# =============================================================================
# Gamification Metrics
# =============================================================================

gamification_xp_awarded_total = Counter(
    "gamification_xp_awarded_total",
    "Total XP awarded",
    ["source"],
)

gamification_xp_duplicate_awards_total = Counter(
    "gamification_xp_duplicate_awards_total",
    "XP awards skipped because the source was already awarded",
    ["source"],
)

gamification_level_ups_total = Counter(
    "gamification_level_ups_total",
    "Total level-ups",
)

gamification_achievements_unlocked_total = Counter(
    "gamification_achievements_unlocked_total",
    "Total achievements unlocked",
    ["achievement_type"],
)

challenge_checkins_total = Counter(
    "challenge_checkins_total",
    "Total challenge check-ins",
    ["outcome"],  # outcome: counted/unchanged
)

scorecard_aggregation_duration_seconds = Histogram(
    "scorecard_aggregation_duration_seconds",
    "Weekly scorecard aggregation time in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0],
)

# =============================================================================
# Storage Metrics
# =============================================================================

storage_retries_total = Counter(
    "storage_retries_total",
    "Total retries of storage operations after a lock conflict",
    ["operation"],
)

errors_total = Counter(
    "errors_total",
    "Total errors by type and component",
    ["error_type", "component"],
)

# =============================================================================
# Application Info
# =============================================================================

app_info = Info(
    "progress_engine",
    "Progress engine information",
)


def init_metrics():
    """
    Initialize metrics with application information.

    This should be called once at application startup to set
    static metadata about the application.
    """
    from progress_engine import __version__
    from progress_engine.config import ENGINE_TIMEZONE, LOCK_RETRY_ATTEMPTS

    app_info.info(
        {
            "version": __version__,
            "timezone": ENGINE_TIMEZONE,
            "lock_retry_attempts": str(LOCK_RETRY_ATTEMPTS),
        }
    )

    logger.info("Prometheus metrics initialized")
