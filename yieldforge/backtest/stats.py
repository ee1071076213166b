"""Performance statistics — pure functions over a value timeline.

Every statistic is recomputed from the full timeline on each call.  Step
returns are annualised assuming one step per day (365 steps per year).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from yieldforge.errors import InsufficientDataError, InvalidArgumentError


PERIODS_PER_YEAR = 365
RISK_FREE_RATE = 0.02
DEFAULT_BETA = 1.0
MIN_BETA_OBSERVATIONS = 10


@dataclass(frozen=True)
class PerformanceStatistics:
    """Summary statistics derived from one value timeline."""

    observations: int
    total_return: float
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    win_rate: float
    value_at_risk: float
    beta: float
    risk_rating: str  # "Low", "Medium" or "High"

    def to_dict(self) -> dict:
        return {
            "observations": self.observations,
            "total_return": self.total_return,
            "volatility": self.volatility,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "value_at_risk": self.value_at_risk,
            "beta": self.beta,
            "risk_rating": self.risk_rating,
        }


def _require(values: Sequence[float], minimum: int, statistic: str) -> None:
    if len(values) < minimum:
        raise InsufficientDataError(
            f"{statistic} needs at least {minimum} value(s), got {len(values)}"
        )


def step_returns(values: Sequence[float]) -> np.ndarray:
    """Step returns ``r_i = (v_i − v_{i−1}) / v_{i−1}`` for ``i ≥ 1``.

    Raises:
        InsufficientDataError: Fewer than two values.
        InvalidArgumentError: A non-positive base value.
    """
    _require(values, 2, "step_returns")
    v = np.asarray(values, dtype=float)
    base = v[:-1]
    if np.any(base <= 0):
        raise InvalidArgumentError("timeline values must be positive to compute returns")
    return (v[1:] - base) / base


def has_positive_bases(values: Sequence[float]) -> bool:
    """True when every value but the last is positive, so returns exist."""
    return all(float(v) > 0 for v in values[:-1])


def total_return(values: Sequence[float]) -> float:
    """``(v_n − v_0) / v_0``."""
    _require(values, 1, "total_return")
    first = float(values[0])
    if first <= 0:
        raise InvalidArgumentError(f"initial value must be positive, got {first}")
    return (float(values[-1]) - first) / first


def volatility(values: Sequence[float]) -> float:
    """Population stdev of step returns × √365."""
    returns = step_returns(values)
    return float(np.std(returns)) * math.sqrt(PERIODS_PER_YEAR)


def sharpe_ratio(
    values: Sequence[float],
    risk_free_rate: float = RISK_FREE_RATE,
) -> float:
    """Annualised Sharpe ratio.

    ``(mean(r) × 365 − risk_free_rate) / volatility``; 0.0 when volatility
    is zero.
    """
    returns = step_returns(values)
    vol = float(np.std(returns)) * math.sqrt(PERIODS_PER_YEAR)
    if vol == 0:
        return 0.0
    return (float(np.mean(returns)) * PERIODS_PER_YEAR - risk_free_rate) / vol


def max_drawdown(values: Sequence[float]) -> float:
    """Largest fractional decline from a running peak.

    Returned as a positive fraction (0.5 means a 50 % drawdown).
    """
    _require(values, 1, "max_drawdown")
    v = np.asarray(values, dtype=float)
    peaks = np.maximum.accumulate(v)
    drawdowns = np.divide(
        peaks - v, peaks, out=np.zeros_like(v), where=peaks > 0,
    )
    return float(drawdowns.max())


def win_rate(values: Sequence[float]) -> float:
    """Fraction of step returns that are strictly positive."""
    returns = step_returns(values)
    return int(np.count_nonzero(returns > 0)) / len(returns)


def value_at_risk(values: Sequence[float], confidence: float = 0.05) -> float:
    """Historical VaR: ``|sorted(r)[floor(n × confidence)]|``.

    Returns 0.0 when the timeline yields no returns, including a
    timeline with a non-positive base value.
    """
    if not 0 < confidence < 1:
        raise InvalidArgumentError(
            f"confidence must be in (0, 1), got {confidence}"
        )
    if len(values) < 2 or not has_positive_bases(values):
        return 0.0
    returns = np.sort(step_returns(values))
    index = math.floor(len(returns) * confidence)
    return abs(float(returns[index]))


def beta(
    values: Sequence[float],
    benchmark: Optional[Sequence[float]],
) -> float:
    """Covariance with the benchmark's returns over the benchmark's variance.

    Falls back to 1.0 when fewer than 10 values exist, when the series
    lengths differ, when either series has a non-positive base value, or
    when the benchmark has zero variance.
    """
    if benchmark is None:
        return DEFAULT_BETA
    if len(values) < MIN_BETA_OBSERVATIONS or len(values) != len(benchmark):
        return DEFAULT_BETA
    if not (has_positive_bases(values) and has_positive_bases(benchmark)):
        return DEFAULT_BETA

    portfolio = step_returns(values)
    market = step_returns(benchmark)
    market_variance = float(np.var(market))
    if market_variance == 0:
        return DEFAULT_BETA
    covariance = float(np.mean((portfolio - portfolio.mean()) * (market - market.mean())))
    return covariance / market_variance


def risk_rating(annual_volatility: float) -> str:
    """``< 0.1`` → Low, ``< 0.3`` → Medium, otherwise High."""
    if annual_volatility < 0.1:
        return "Low"
    if annual_volatility < 0.3:
        return "Medium"
    return "High"


def calculate_stats(
    values: Sequence[float],
    benchmark: Optional[Sequence[float]] = None,
    risk_free_rate: float = RISK_FREE_RATE,
) -> PerformanceStatistics:
    """Compute every statistic for the timeline *values*.

    Raises ``InsufficientDataError`` for fewer than two values.
    """
    _require(values, 2, "calculate_stats")
    vol = volatility(values)
    return PerformanceStatistics(
        observations=len(values),
        total_return=total_return(values),
        volatility=vol,
        sharpe_ratio=sharpe_ratio(values, risk_free_rate),
        max_drawdown=max_drawdown(values),
        win_rate=win_rate(values),
        value_at_risk=value_at_risk(values),
        beta=beta(values, benchmark),
        risk_rating=risk_rating(vol),
    )


# ── Reporting helpers ────────────────────────────────────────────────────


def annualized_return(total: float, days: float) -> float:
    """Scale *total* return linearly to one year (at least one day)."""
    return total * (PERIODS_PER_YEAR / max(1.0, days))


def generate_recommendations(stats: PerformanceStatistics) -> list[str]:
    """Plain-language hints for a statistics bundle."""
    recommendations: list[str] = []

    if stats.sharpe_ratio < 0.5:
        recommendations.append(
            "Consider reducing risk or finding higher-yielding opportunities"
        )
    if stats.max_drawdown > 0.2:
        recommendations.append(
            "Portfolio experienced significant drawdowns - consider diversification"
        )
    if stats.win_rate < 0.4:
        recommendations.append(
            "Low win rate detected - review strategy effectiveness"
        )
    if stats.volatility > 0.4:
        recommendations.append(
            "High volatility - consider position sizing and risk management"
        )

    if not recommendations:
        recommendations.append(
            "Portfolio performance is within acceptable parameters"
        )
    return recommendations
