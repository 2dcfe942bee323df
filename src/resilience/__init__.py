"""Resilience patterns for document store writes

This module provides the optimistic-concurrency retry loop used by every
read-modify-write of a gamification profile.
"""

from src.resilience.retry import retry_on_conflict, with_conflict_retry

__all__ = [
    "retry_on_conflict",
    "with_conflict_retry",
]
