"""YieldForge — application configuration.

Loads .env variables into a typed config object.
Validates value ranges on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from yieldforge.errors import ConfigurationError


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    default_strategy: str
    initial_capital: float
    investment_amount: float
    risk_free_rate: float
    max_risk_tolerance: float
    min_apy: float
    max_slippage: float
    rebalance_threshold: float
    log_level: str
    health_port: int


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}"
        ) from None


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}"
        ) from None


def validate_config(config: Config) -> None:
    """Check value ranges.

    Raises ``ConfigurationError`` naming the offending setting.
    """
    if not 0 <= config.max_risk_tolerance <= 1:
        raise ConfigurationError(
            "max_risk_tolerance must be between 0 and 1, "
            f"got {config.max_risk_tolerance}"
        )
    if config.min_apy < 0:
        raise ConfigurationError(
            f"min_apy must be non-negative, got {config.min_apy}"
        )
    if not 0 <= config.max_slippage <= 0.1:
        raise ConfigurationError(
            f"max_slippage must be between 0 and 0.1, got {config.max_slippage}"
        )
    if config.initial_capital <= 0:
        raise ConfigurationError(
            f"initial_capital must be positive, got {config.initial_capital}"
        )
    if config.investment_amount <= 0:
        raise ConfigurationError(
            f"investment_amount must be positive, got {config.investment_amount}"
        )


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable is optional.  Raises ``ConfigurationError`` when a value
    cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    config = Config(
        default_strategy=os.environ.get("YF_DEFAULT_STRATEGY", "moderate"),
        initial_capital=_env_float("YF_INITIAL_CAPITAL", "10000"),
        investment_amount=_env_float("YF_INVESTMENT_AMOUNT", "5000"),
        risk_free_rate=_env_float("YF_RISK_FREE_RATE", "0.02"),
        max_risk_tolerance=_env_float("YF_MAX_RISK_TOLERANCE", "0.7"),
        min_apy=_env_float("YF_MIN_APY", "0.02"),
        max_slippage=_env_float("YF_MAX_SLIPPAGE", "0.005"),
        rebalance_threshold=_env_float("YF_REBALANCE_THRESHOLD", "0.1"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=_env_int("HEALTH_PORT", "8080"),
    )
    validate_config(config)
    return config
