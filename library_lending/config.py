"""
config.py

Runtime settings for the lending engine and its CSV backend.

Defaults live on `LendingConfig`; `LendingConfig.from_env()` overlays values from
the process environment (and a `.env` file, when present).
"""

from __future__ import annotations
import dataclasses
import os
import pathlib
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

# Configuration
DEFAULT_DATA_DIR = "data"
DEFAULT_FEE_PER_DAY = Decimal("0.50")
DEFAULT_MAX_FEE = Decimal("25.00")
DEFAULT_MAX_RENEWALS = 3
DEFAULT_LOG_LEVEL = "INFO"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclasses.dataclass(frozen=True)
class LendingConfig:
    data_dir: pathlib.Path = pathlib.Path(DEFAULT_DATA_DIR)
    fee_per_day: Decimal = DEFAULT_FEE_PER_DAY
    max_fee: Decimal = DEFAULT_MAX_FEE
    max_renewals: int = DEFAULT_MAX_RENEWALS
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LendingConfig":
        """
        Build a config from LIBRARY_* environment variables.

        Args:
            environ: mapping to read instead of `os.environ`. When omitted, a
                `.env` file in the working directory is loaded first.

        Raises:
            ConfigError: a variable is present but cannot be parsed.
        """
        if environ is None:
            load_dotenv(find_dotenv(usecwd=True))
            environ = os.environ
        data_dir = environ.get("LIBRARY_DATA_DIR") or DEFAULT_DATA_DIR
        fee_per_day = _decimal(environ, "LIBRARY_FEE_PER_DAY", DEFAULT_FEE_PER_DAY)
        max_fee = _decimal(environ, "LIBRARY_MAX_FEE", DEFAULT_MAX_FEE)
        max_renewals = _integer(environ, "LIBRARY_MAX_RENEWALS", DEFAULT_MAX_RENEWALS)
        log_level = (environ.get("LIBRARY_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
        if log_level not in _LOG_LEVELS:
            raise ConfigError(f"LIBRARY_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, got {log_level!r}")
        return cls(
            data_dir=pathlib.Path(data_dir),
            fee_per_day=fee_per_day,
            max_fee=max_fee,
            max_renewals=max_renewals,
            log_level=log_level,
        )


def _decimal(environ: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{name} must be a decimal amount, got {raw!r}") from None
    if not value.is_finite():
        raise ConfigError(f"{name} must be a finite amount, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} cannot be negative, got {raw!r}")
    return value


def _integer(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} cannot be negative, got {raw!r}")
    return value
