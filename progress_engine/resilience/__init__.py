"""Resilience patterns for storage calls

Lock conflicts on contended rows are retried with a short backoff before
they surface as ConcurrencyConflictError.
"""

from progress_engine.resilience.retry import retry_with_backoff, with_retry, is_retryable_error

__all__ = [
    "retry_with_backoff",
    "with_retry",
    "is_retryable_error",
]
