"""Retry decisions for failed gRPC calls: jittered backoff plus code/message classification."""

from .backoff import Backoff, BackoffConfig, new_backoff_state
from .errors import ErrorCode, RetryConfigError
from .policy import (
    DO_NOT_RETRY,
    SESSION_NOT_FOUND_MARKER,
    TRANSIENT_INTERNAL_MARKERS,
    BackoffRetryer,
    CallSettings,
    DoNotRetry,
    RetryAfter,
    RetryDecision,
    RetryEvent,
    RetryObserver,
    RetryPolicy,
    RetryReason,
    Retryer,
    classify,
    is_session_not_found,
    is_transient_internal_error,
)

__version__ = "0.1.0"
__all__ = [
    "Backoff",
    "BackoffConfig",
    "BackoffRetryer",
    "CallSettings",
    "classify",
    "DO_NOT_RETRY",
    "DoNotRetry",
    "ErrorCode",
    "is_session_not_found",
    "is_transient_internal_error",
    "new_backoff_state",
    "RetryAfter",
    "RetryConfigError",
    "RetryDecision",
    "Retryer",
    "RetryEvent",
    "RetryObserver",
    "RetryPolicy",
    "RetryReason",
    "SESSION_NOT_FOUND_MARKER",
    "TRANSIENT_INTERNAL_MARKERS",
]
