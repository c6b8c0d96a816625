"""TOML-backed retry settings."""

from __future__ import annotations

import logging as py_logging
import os
import sys
from pathlib import Path

import grpc
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing_extensions import Annotated, TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from rpcretry.backoff import DEFAULT_INITIAL_NS, DEFAULT_MAX_NS, DEFAULT_MULTIPLIER, BackoffConfig
from rpcretry.errors import ErrorCode, RetryConfigError
from rpcretry.policy import SESSION_NOT_FOUND_MARKER, TRANSIENT_INTERNAL_MARKERS, RetryPolicy

logger = py_logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/rpcretry/config.toml").expanduser()
DEFAULT_SECTION = "retry"
RETRYABLE_CODES_ENV = "RPCRETRY_RETRYABLE_CODES"
CHECK_SESSION_NOT_FOUND_ENV = "RPCRETRY_CHECK_SESSION_NOT_FOUND"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class RawRetrySettings(TypedDict, total=False):
    initial_backoff_ns: int
    max_backoff_ns: int
    multiplier: float
    retryable_codes: list[str]
    check_session_not_found: bool
    transient_internal_markers: list[str]
    session_not_found_marker: str


class RetrySettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    initial_backoff_ns: int = Field(default=DEFAULT_INITIAL_NS, ge=1)
    max_backoff_ns: int = Field(default=DEFAULT_MAX_NS, ge=1)
    multiplier: float = Field(default=DEFAULT_MULTIPLIER, gt=1.0, allow_inf_nan=False)
    retryable_codes: list[str] = Field(default_factory=list)
    check_session_not_found: bool = False
    transient_internal_markers: list[Annotated[str, Field(min_length=1)]] = Field(
        default_factory=lambda: list(TRANSIENT_INTERNAL_MARKERS)
    )
    session_not_found_marker: str = Field(default=SESSION_NOT_FOUND_MARKER, min_length=1)

    @field_validator("retryable_codes")
    @classmethod
    def _validate_codes(cls, value: list[str]) -> list[str]:
        normalized: list[str] = []
        for item in value:
            name = item.strip().upper()
            if name not in grpc.StatusCode.__members__:
                raise ValueError(f"Unknown status code: {item}")
            if name not in normalized:
                normalized.append(name)
        return normalized

    def to_backoff_config(self) -> BackoffConfig:
        return BackoffConfig(
            initial_ns=self.initial_backoff_ns,
            max_ns=self.max_backoff_ns,
            multiplier=self.multiplier,
        )

    def to_policy(self) -> RetryPolicy:
        policy = RetryPolicy(
            retryable_codes=frozenset(grpc.StatusCode[name] for name in self.retryable_codes),
            check_session_not_found=self.check_session_not_found,
            backoff=self.to_backoff_config(),
            transient_internal_markers=tuple(self.transient_internal_markers),
            session_not_found_marker=self.session_not_found_marker,
        )
        logger.debug(
            "Built retry policy codes=%s check_session_not_found=%s backoff=%s",
            sorted(self.retryable_codes),
            self.check_session_not_found,
            policy.backoff,
        )
        return policy


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _string_list(value: object) -> list[str] | None:
    if isinstance(value, str):
        return [item for item in value.split(",") if item.strip()]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    return None


def _sanitize(raw: dict[str, object]) -> RawRetrySettings:
    cleaned = RawRetrySettings()

    initial = raw.get("initial_backoff_ns")
    if isinstance(initial, int) and not isinstance(initial, bool):
        cleaned["initial_backoff_ns"] = initial

    maximum = raw.get("max_backoff_ns")
    if isinstance(maximum, int) and not isinstance(maximum, bool):
        cleaned["max_backoff_ns"] = maximum

    multiplier = raw.get("multiplier")
    if isinstance(multiplier, (int, float)) and not isinstance(multiplier, bool):
        cleaned["multiplier"] = float(multiplier)

    codes = _string_list(raw.get("retryable_codes"))
    if codes is not None:
        cleaned["retryable_codes"] = codes

    check_session = raw.get("check_session_not_found")
    if isinstance(check_session, bool):
        cleaned["check_session_not_found"] = check_session

    markers = raw.get("transient_internal_markers")
    if isinstance(markers, list) and all(isinstance(item, str) for item in markers):
        cleaned["transient_internal_markers"] = list(markers)

    session_marker = raw.get("session_not_found_marker")
    if isinstance(session_marker, str):
        cleaned["session_not_found_marker"] = session_marker

    return cleaned


def _apply_env(cleaned: RawRetrySettings) -> None:
    env_codes = os.getenv(RETRYABLE_CODES_ENV, "").strip()
    if env_codes:
        cleaned["retryable_codes"] = _string_list(env_codes) or []

    env_check = os.getenv(CHECK_SESSION_NOT_FOUND_ENV, "").strip().lower()
    if env_check in _TRUTHY:
        cleaned["check_session_not_found"] = True
    elif env_check in _FALSY:
        cleaned["check_session_not_found"] = False


def _build(cleaned: RawRetrySettings) -> RetrySettings:
    try:
        settings = RetrySettings(**cleaned)
    except ValidationError as exc:
        raise RetryConfigError(
            f"Invalid retry settings: {exc.errors()[0]['msg']}",
            code=ErrorCode.CONFIG_ERROR,
            hint="Check the retry section of the config file.",
        ) from exc
    # Cross-field backoff checks live on BackoffConfig.
    settings.to_backoff_config()
    return settings


def settings_from_mapping(raw: dict[str, object]) -> RetrySettings:
    cleaned = _sanitize(raw)
    _apply_env(cleaned)
    return _build(cleaned)


def load_settings(path: str | Path | None = None, *, section: str = DEFAULT_SECTION) -> RetrySettings:
    resolved = get_config_path(path)
    raw: dict[str, object] = {}
    if resolved.exists():
        try:
            with resolved.open("rb") as handle:
                document = tomllib.load(handle)
        except (tomllib.TOMLDecodeError, OSError):
            logger.warning("Ignoring unreadable retry config path=%s", resolved)
            document = {}
        table = document.get(section, {})
        if isinstance(table, dict):
            raw = table
    return settings_from_mapping(raw)
