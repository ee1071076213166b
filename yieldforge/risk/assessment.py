"""Per-protocol risk report — pure math, no I/O.

Breaks an opportunity's risk into smart-contract, liquidity, and price
volatility components and maps the mean onto a qualitative level.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from yieldforge.errors import InvalidArgumentError
from yieldforge.strategy.models import OpportunityRecord


@dataclass(frozen=True)
class RiskReport:
    """Component risks and the overall verdict for one protocol."""

    protocol: str
    smart_contract: float
    liquidity: float
    volatility: float
    overall_risk: float
    risk_level: str  # "Low", "Medium" or "High"
    recommendation: str

    def to_dict(self) -> dict:
        return {
            "protocol": self.protocol,
            "risks": {
                "smart_contract": self.smart_contract,
                "liquidity": self.liquidity,
                "volatility": self.volatility,
            },
            "overall_risk": self.overall_risk,
            "risk_level": self.risk_level,
            "recommendation": self.recommendation,
        }


def smart_contract_risk(opportunity: OpportunityRecord) -> float:
    """0.5 prior, reduced for audits, maturity (> 1 year) and TVL > 1B."""
    risk = 0.5
    if opportunity.audited:
        risk -= 0.2
    if opportunity.age_in_days is not None and opportunity.age_in_days > 365:
        risk -= 0.1
    if (
        opportunity.total_value_locked is not None
        and opportunity.total_value_locked > 1_000_000_000
    ):
        risk -= 0.1
    return max(0.0, min(1.0, risk))


def liquidity_risk(opportunity: OpportunityRecord) -> float:
    """Tiered on TVL: < 1M → 0.8, < 10M → 0.5, < 100M → 0.3, else 0.1."""
    tvl = opportunity.total_value_locked
    if tvl is None or tvl < 1_000_000:
        return 0.8
    if tvl < 10_000_000:
        return 0.5
    if tvl < 100_000_000:
        return 0.3
    return 0.1


def volatility_risk(price_history: Optional[Sequence[float]]) -> float:
    """Population stdev of step returns × 10, capped at 1.

    Returns the neutral 0.5 when fewer than two prices are available.
    """
    if not price_history or len(price_history) < 2:
        return 0.5
    prices = np.asarray(price_history, dtype=float)
    if np.any(prices[:-1] <= 0):
        raise InvalidArgumentError("price_history must contain positive prices")
    returns = np.diff(prices) / prices[:-1]
    return min(1.0, float(np.std(returns)) * 10)


def risk_level(score: float) -> str:
    if score < 0.3:
        return "Low"
    if score < 0.6:
        return "Medium"
    return "High"


def recommendation_for(score: float) -> str:
    if score < 0.3:
        return "Safe for conservative investors"
    if score < 0.6:
        return "Suitable for moderate risk tolerance"
    return "Only for high-risk investors"


def generate_risk_report(
    opportunity: OpportunityRecord,
    price_history: Optional[Sequence[float]] = None,
) -> RiskReport:
    """Build the full risk report for *opportunity*."""
    contract = smart_contract_risk(opportunity)
    liquidity = liquidity_risk(opportunity)
    volatility = volatility_risk(price_history)
    overall = (contract + liquidity + volatility) / 3
    return RiskReport(
        protocol=opportunity.name,
        smart_contract=contract,
        liquidity=liquidity,
        volatility=volatility,
        overall_risk=overall,
        risk_level=risk_level(overall),
        recommendation=recommendation_for(overall),
    )


def impermanent_loss(
    token0_price: float,
    token1_price: float,
    initial_ratio: float,
) -> float:
    """Impermanent loss of a 50/50 pool as a positive fraction.

    Formula::

        r  = (token0_price / token1_price) / initial_ratio
        IL = |2·√r / (1 + r) − 1|

    Raises:
        InvalidArgumentError: If any input is non-positive.
    """
    if token0_price <= 0 or token1_price <= 0:
        raise InvalidArgumentError(
            f"token prices must be positive, got {token0_price}, {token1_price}"
        )
    if initial_ratio <= 0:
        raise InvalidArgumentError(
            f"initial_ratio must be positive, got {initial_ratio}"
        )
    price_ratio = (token0_price / token1_price) / initial_ratio
    return abs(2 * math.sqrt(price_ratio) / (1 + price_ratio) - 1)
