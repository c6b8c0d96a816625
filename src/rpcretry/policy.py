"""Retry classification for failed RPCs."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Protocol

import grpc

from rpcretry.backoff import Backoff, BackoffConfig, new_backoff_state, ns_to_timedelta
from rpcretry.errors import ErrorCode, RetryConfigError

# INTERNAL errors carrying one of these are transport hiccups, not server faults.
TRANSIENT_INTERNAL_MARKERS: tuple[str, ...] = (
    "stream terminated by RST_STREAM",
    "HTTP/2 error code: INTERNAL_ERROR",
    "Connection closed with unknown cause",
    "Received unexpected EOS on DATA frame from server",
)
SESSION_NOT_FOUND_MARKER = "Session not found:"


def is_transient_internal_error(
    message: str,
    markers: Iterable[str] = TRANSIENT_INTERNAL_MARKERS,
) -> bool:
    return any(marker in message for marker in markers)


def is_session_not_found(message: str, marker: str = SESSION_NOT_FOUND_MARKER) -> bool:
    return marker in message


class RetryReason(str, Enum):
    RETRYABLE_CODE = "retryable_code"
    SESSION_NOT_FOUND = "session_not_found"


@dataclass(frozen=True)
class RetryEvent:
    code: grpc.StatusCode
    message: str
    reason: RetryReason
    duration_ns: int


RetryObserver = Callable[[RetryEvent], None]


class RetryDecision:
    should_retry: bool = False


@dataclass(frozen=True)
class DoNotRetry(RetryDecision):
    should_retry: bool = field(default=False, init=False)


@dataclass(frozen=True)
class RetryAfter(RetryDecision):
    duration_ns: int
    should_retry: bool = field(default=True, init=False)

    @property
    def seconds(self) -> float:
        return self.duration_ns / 1_000_000_000

    @property
    def delay(self) -> timedelta:
        return ns_to_timedelta(self.duration_ns)


DO_NOT_RETRY = DoNotRetry()


@dataclass(frozen=True)
class RetryPolicy:
    """Read-only retry configuration, safe to share between threads."""

    retryable_codes: frozenset[grpc.StatusCode] = frozenset()
    check_session_not_found: bool = False
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    transient_internal_markers: tuple[str, ...] = TRANSIENT_INTERNAL_MARKERS
    session_not_found_marker: str = SESSION_NOT_FOUND_MARKER

    def __post_init__(self) -> None:
        codes = frozenset(self.retryable_codes)
        for code in codes:
            if not isinstance(code, grpc.StatusCode):
                raise RetryConfigError(
                    f"Invalid retryable code: {code!r}",
                    code=ErrorCode.INVALID_POLICY,
                    hint="Use grpc.StatusCode members.",
                )
        if isinstance(self.transient_internal_markers, str):
            raise RetryConfigError(
                "Transient internal markers must be a sequence of strings.",
                code=ErrorCode.INVALID_POLICY,
                hint="Wrap a single marker in a tuple.",
            )
        markers = tuple(self.transient_internal_markers)
        for marker in markers:
            if not isinstance(marker, str) or not marker:
                raise RetryConfigError(
                    f"Invalid transient internal marker: {marker!r}",
                    code=ErrorCode.INVALID_POLICY,
                    hint="Use non-empty substrings.",
                )
        if not self.session_not_found_marker:
            raise RetryConfigError(
                "Session-not-found marker must not be empty.",
                code=ErrorCode.INVALID_POLICY,
            )
        object.__setattr__(self, "retryable_codes", codes)
        object.__setattr__(self, "transient_internal_markers", markers)

    def new_backoff_state(self, *, rng: random.Random | None = None) -> Backoff:
        return new_backoff_state(self.backoff, rng=rng)


def classify(
    code: grpc.StatusCode,
    message: str,
    policy: RetryPolicy,
    state: Backoff,
    *,
    observer: RetryObserver | None = None,
) -> RetryDecision:
    """Decide whether a failed call should be retried.

    An INTERNAL error without a known transient marker is never retried, even
    when INTERNAL is listed in ``policy.retryable_codes``. Otherwise a listed
    code, or a session-not-found message when that check is enabled, yields a
    single backoff draw.
    """
    if code is grpc.StatusCode.INTERNAL and not is_transient_internal_error(
        message, policy.transient_internal_markers
    ):
        return DO_NOT_RETRY

    if code in policy.retryable_codes:
        reason = RetryReason.RETRYABLE_CODE
    elif policy.check_session_not_found and is_session_not_found(
        message, policy.session_not_found_marker
    ):
        reason = RetryReason.SESSION_NOT_FOUND
    else:
        return DO_NOT_RETRY

    duration = state.next_duration()
    if observer is not None:
        observer(RetryEvent(code=code, message=message, reason=reason, duration_ns=duration))
    return RetryAfter(duration)


class Retryer(Protocol):
    def retry(self, code: grpc.StatusCode, message: str) -> RetryDecision: ...


class BackoffRetryer:
    """Retryer for one logical call and its retries."""

    def __init__(
        self,
        policy: RetryPolicy,
        backoff: Backoff | None = None,
        *,
        observer: RetryObserver | None = None,
    ) -> None:
        self.policy = policy
        self.backoff = backoff or policy.new_backoff_state()
        self.observer = observer

    def retry(self, code: grpc.StatusCode, message: str) -> RetryDecision:
        return classify(code, message, self.policy, self.backoff, observer=self.observer)

    def retry_error(self, error: Any) -> RetryDecision:
        """Classify an error exposing grpc's ``code()`` and ``details()``."""
        code = _call_or_none(error, "code") or grpc.StatusCode.UNKNOWN
        details = _call_or_none(error, "details") or ""
        return self.retry(code, str(details))


def _call_or_none(error: Any, name: str) -> Any:
    accessor = getattr(error, name, None)
    if not callable(accessor):
        return None
    return accessor()


@dataclass(frozen=True)
class CallSettings:
    policy: RetryPolicy = field(default_factory=RetryPolicy)

    def new_retryer(
        self,
        *,
        rng: random.Random | None = None,
        observer: RetryObserver | None = None,
    ) -> BackoffRetryer:
        return BackoffRetryer(self.policy, self.policy.new_backoff_state(rng=rng), observer=observer)
