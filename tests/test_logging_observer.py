from __future__ import annotations

import logging as py_logging

import grpc
import pytest

import rpcretry.logging as rr_logging
from rpcretry.policy import RetryEvent, RetryPolicy, RetryReason, classify


def test_logging_observer_formats_code_retries(caplog: pytest.LogCaptureFixture) -> None:
    target = py_logging.getLogger("tests.observer")
    caplog.set_level(py_logging.DEBUG, logger="tests.observer")
    observe = rr_logging.logging_observer(target)

    observe(
        RetryEvent(
            code=grpc.StatusCode.UNAVAILABLE,
            message="connection refused",
            reason=RetryReason.RETRYABLE_CODE,
            duration_ns=42,
        )
    )

    assert caplog.messages == ["retry UNAVAILABLE connection refused delay_ns=42"]


def test_logging_observer_via_classify(caplog: pytest.LogCaptureFixture) -> None:
    target = py_logging.getLogger("tests.observer.session")
    caplog.set_level(py_logging.INFO, logger="tests.observer.session")
    policy = RetryPolicy(check_session_not_found=True)
    observer = rr_logging.logging_observer(target, level=py_logging.INFO)

    classify(
        grpc.StatusCode.NOT_FOUND,
        "Session not found: s",
        policy,
        policy.new_backoff_state(),
        observer=observer,
    )

    assert len(caplog.records) == 1
    assert caplog.messages[0].startswith("retry by session not found")


def test_logging_observer_defaults_to_module_logger(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(py_logging.DEBUG, logger="rpcretry.logging")
    observe = rr_logging.logging_observer()

    observe(
        RetryEvent(
            code=grpc.StatusCode.ABORTED,
            message="txn aborted",
            reason=RetryReason.RETRYABLE_CODE,
            duration_ns=7,
        )
    )

    assert [record.name for record in caplog.records] == ["rpcretry.logging"]
    assert caplog.records[0].levelno == py_logging.DEBUG
