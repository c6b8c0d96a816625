"""Error model for retry configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(str, Enum):
    INVALID_BACKOFF = "invalid_backoff"
    INVALID_POLICY = "invalid_policy"
    CONFIG_ERROR = "config_error"


@dataclass
class RetryConfigError(ValueError):
    message: str
    code: ErrorCode = ErrorCode.CONFIG_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message
