"""
Service Layer Package

ProgressService is the engine boundary: collaborators (HTTP routes, bots,
schedulers) call it and never touch the gamification modules or queries
directly.
"""

from progress_engine.services.progress_service import ProgressService

__all__ = [
    "ProgressService",
]
