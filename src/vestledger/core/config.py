"""
Vesting ledger configuration.

All settings come from environment variables so a deployment can pin the
principal and starting allocation without code changes:

    VESTLEDGER_PRINCIPAL        identity of the company (required)
    VESTLEDGER_INITIAL_POOL     starting option allocation (required)
    VESTLEDGER_LEDGER_ADDRESS   identity the ledger holds tokens under
    VESTLEDGER_ALLOW_REGRANT    "1" to let a grant overwrite an existing one
    VESTLEDGER_EXERCISE_MODE    "single" (default) or "partial"
    VESTLEDGER_CLOCK            "system" (default) or "block"
    VESTLEDGER_LOG_LEVEL        logging level name, default INFO
    VESTLEDGER_LOG_FILE         optional JSON log file path
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_ADDRESS = "vestledger"


class ExerciseMode(Enum):
    SINGLE = "single"
    PARTIAL = "partial"


class ClockType(Enum):
    SYSTEM = "system"
    BLOCK = "block"


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_int(env: Mapping[str, str], name: str, default: int | None = None) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        if default is None:
            raise ConfigurationError(f"{name} environment variable is required")
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} cannot be negative")
    return value


def _parse_flag(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name, "0").strip()
    if raw not in ("0", "1"):
        raise ConfigurationError(f"{name} must be 0 or 1, got {raw!r}")
    return raw == "1"


def _parse_enum(env: Mapping[str, str], name: str, enum_cls: type, default: Enum) -> Enum:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    try:
        return enum_cls(raw)
    except ValueError as exc:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"{name} must be one of: {choices}") from exc


@dataclass(frozen=True)
class LedgerConfig:
    principal: str
    initial_pool: int
    ledger_address: str = DEFAULT_LEDGER_ADDRESS
    allow_regrant: bool = False
    exercise_mode: ExerciseMode = ExerciseMode.SINGLE
    clock: ClockType = ClockType.SYSTEM
    log_level: str = "INFO"
    log_file: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.principal, str) or not self.principal.strip():
            raise ConfigurationError("principal must be a non-empty string")
        if isinstance(self.initial_pool, bool) or not isinstance(self.initial_pool, int) or self.initial_pool < 0:
            raise ConfigurationError("initial_pool must be a non-negative integer")
        if not isinstance(self.log_level, str) or self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of: {', '.join(_LOG_LEVELS)}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "LedgerConfig":
        """Build a config from ``env`` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env

        principal = env.get("VESTLEDGER_PRINCIPAL", "").strip()
        if not principal:
            raise ConfigurationError("VESTLEDGER_PRINCIPAL environment variable is required")

        config = cls(
            principal=principal,
            initial_pool=_parse_int(env, "VESTLEDGER_INITIAL_POOL"),
            ledger_address=env.get("VESTLEDGER_LEDGER_ADDRESS", "").strip() or DEFAULT_LEDGER_ADDRESS,
            allow_regrant=_parse_flag(env, "VESTLEDGER_ALLOW_REGRANT"),
            exercise_mode=_parse_enum(env, "VESTLEDGER_EXERCISE_MODE", ExerciseMode, ExerciseMode.SINGLE),
            clock=_parse_enum(env, "VESTLEDGER_CLOCK", ClockType, ClockType.SYSTEM),
            log_level=env.get("VESTLEDGER_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_file=env.get("VESTLEDGER_LOG_FILE", "").strip() or None,
        )

        if config.allow_regrant:
            logger.warning(
                "Re-granting enabled: a new grant overwrites the previous record",
                extra={"event": "config.allow_regrant"},
            )
        return config
