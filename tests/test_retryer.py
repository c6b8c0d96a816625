from __future__ import annotations

import random

import grpc

from rpcretry.policy import (
    DO_NOT_RETRY,
    BackoffRetryer,
    CallSettings,
    RetryAfter,
    Retryer,
    RetryEvent,
    RetryPolicy,
)


class _FakeRpcError(grpc.RpcError):
    def __init__(self, code: grpc.StatusCode | None, details: str | None) -> None:
        super().__init__()
        self._code = code
        self._details = details

    def code(self) -> grpc.StatusCode | None:
        return self._code

    def details(self) -> str | None:
        return self._details


def test_retryer_shares_backoff_across_attempts() -> None:
    retryer = BackoffRetryer(RetryPolicy(retryable_codes={grpc.StatusCode.UNAVAILABLE}))

    retryer.retry(grpc.StatusCode.UNAVAILABLE, "down")
    retryer.retry(grpc.StatusCode.UNAVAILABLE, "down")

    assert retryer.backoff.envelope_ns == 422_500


def test_retryer_satisfies_protocol() -> None:
    retryer: Retryer = BackoffRetryer(RetryPolicy())

    assert retryer.retry(grpc.StatusCode.ABORTED, "conflict") == DO_NOT_RETRY


def test_retry_error_reads_code_and_details() -> None:
    policy = RetryPolicy(check_session_not_found=True)
    retryer = BackoffRetryer(policy, policy.new_backoff_state(rng=random.Random(3)))

    decision = retryer.retry_error(_FakeRpcError(grpc.StatusCode.NOT_FOUND, "Session not found: s"))

    assert isinstance(decision, RetryAfter)


def test_retry_error_without_code_is_unknown() -> None:
    retryer = BackoffRetryer(RetryPolicy(retryable_codes={grpc.StatusCode.UNKNOWN}))

    assert isinstance(retryer.retry_error(_FakeRpcError(None, None)), RetryAfter)
    assert isinstance(retryer.retry_error(RuntimeError("not an rpc error")), RetryAfter)


def test_retry_error_without_code_is_not_retried_by_default() -> None:
    retryer = BackoffRetryer(RetryPolicy(retryable_codes={grpc.StatusCode.UNAVAILABLE}))

    assert retryer.retry_error(ValueError("boom")) == DO_NOT_RETRY


def test_call_settings_hand_out_independent_retryers() -> None:
    settings = CallSettings(RetryPolicy(retryable_codes={grpc.StatusCode.UNAVAILABLE}))
    events: list[RetryEvent] = []

    first = settings.new_retryer(rng=random.Random(1), observer=events.append)
    second = settings.new_retryer(rng=random.Random(1))
    for _ in range(30):
        first.retry(grpc.StatusCode.UNAVAILABLE, "down")

    assert first.policy is second.policy
    assert first.backoff is not second.backoff
    assert first.backoff.envelope_ns == 32_000_000
    assert second.backoff.envelope_ns == 0
    assert len(events) == 30


def test_default_call_settings_never_retry() -> None:
    retryer = CallSettings().new_retryer()

    assert retryer.retry(grpc.StatusCode.UNAVAILABLE, "down") == DO_NOT_RETRY
