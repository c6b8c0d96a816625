"""Logging retry observer."""

from __future__ import annotations

import logging as py_logging

from rpcretry.policy import RetryEvent, RetryObserver, RetryReason

logger = py_logging.getLogger(__name__)


def logging_observer(
    target: py_logging.Logger | None = None,
    *,
    level: int = py_logging.DEBUG,
) -> RetryObserver:
    """Build an observer that logs every retry decision on ``target``."""
    log = target or logger

    def observe(event: RetryEvent) -> None:
        if event.reason is RetryReason.SESSION_NOT_FOUND:
            log.log(level, "retry by session not found delay_ns=%s", event.duration_ns)
        else:
            log.log(
                level,
                "retry %s %s delay_ns=%s",
                event.code.name,
                event.message,
                event.duration_ns,
            )

    return observe
