"""Jittered exponential backoff.

The wait time between retries is a random value between 1ns and the current
"envelope". The envelope starts at ``initial_ns`` and grows by ``multiplier``
after every draw, capped at ``max_ns``.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import timedelta

from rpcretry.errors import ErrorCode, RetryConfigError

DEFAULT_INITIAL_NS = 250_000
DEFAULT_MAX_NS = 32_000_000
DEFAULT_MULTIPLIER = 1.30


@dataclass(frozen=True)
class BackoffConfig:
    initial_ns: int = DEFAULT_INITIAL_NS
    max_ns: int = DEFAULT_MAX_NS
    multiplier: float = DEFAULT_MULTIPLIER

    def __post_init__(self) -> None:
        if isinstance(self.initial_ns, bool) or not isinstance(self.initial_ns, int):
            raise RetryConfigError(
                f"Invalid initial backoff: {self.initial_ns!r}",
                code=ErrorCode.INVALID_BACKOFF,
                hint="Use an integer number of nanoseconds.",
            )
        if self.initial_ns < 1:
            raise RetryConfigError(
                f"Invalid initial backoff: {self.initial_ns}ns",
                code=ErrorCode.INVALID_BACKOFF,
                hint="Use at least 1ns.",
            )
        if isinstance(self.max_ns, bool) or not isinstance(self.max_ns, int):
            raise RetryConfigError(
                f"Invalid max backoff: {self.max_ns!r}",
                code=ErrorCode.INVALID_BACKOFF,
                hint="Use an integer number of nanoseconds.",
            )
        if self.max_ns < self.initial_ns:
            raise RetryConfigError(
                f"Max backoff {self.max_ns}ns is below initial backoff {self.initial_ns}ns.",
                code=ErrorCode.INVALID_BACKOFF,
                hint="Raise max or lower initial.",
            )
        if isinstance(self.multiplier, bool) or not isinstance(self.multiplier, (int, float)):
            raise RetryConfigError(
                f"Invalid backoff multiplier: {self.multiplier!r}",
                code=ErrorCode.INVALID_BACKOFF,
                hint="Use a number greater than 1.0.",
            )
        if not math.isfinite(self.multiplier) or self.multiplier <= 1.0:
            raise RetryConfigError(
                f"Invalid backoff multiplier: {self.multiplier}",
                code=ErrorCode.INVALID_BACKOFF,
                hint="Use a finite multiplier greater than 1.0.",
            )


class Backoff:
    """Per-sequence backoff state.

    Not thread-safe: one retry sequence owns one instance.
    """

    def __init__(
        self,
        config: BackoffConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or BackoffConfig()
        self.rng = rng or random.Random()
        self._envelope_ns = 0

    @property
    def envelope_ns(self) -> int:
        return self._envelope_ns

    def next_duration(self) -> int:
        """Return the next wait in nanoseconds and advance the envelope."""
        # 0 means no draw has happened yet.
        envelope = self._envelope_ns or self.config.initial_ns
        duration = self.rng.randint(1, envelope)
        grown = envelope * self.config.multiplier
        # int() of an infinite product overflows.
        self._envelope_ns = self.config.max_ns if grown >= self.config.max_ns else int(grown)
        return duration

    def next_delay(self) -> timedelta:
        return ns_to_timedelta(self.next_duration())

    def reset(self) -> None:
        self._envelope_ns = 0

    def __repr__(self) -> str:
        return f"Backoff(config={self.config!r}, envelope_ns={self._envelope_ns})"


def ns_to_timedelta(duration_ns: int) -> timedelta:
    """Convert nanoseconds to a timedelta, rounding up to whole microseconds."""
    return timedelta(microseconds=-(-duration_ns // 1_000))


def new_backoff_state(
    config: BackoffConfig | None = None,
    *,
    rng: random.Random | None = None,
) -> Backoff:
    return Backoff(config, rng=rng)
