"""Composite risk scoring — pure math, no I/O.

Scores an opportunity on [0, 1] from a base prior plus additive penalties
for missing audits, young protocols, and thin liquidity.  The allocation
engine and the simulation engine use different priors.
"""

from yieldforge.strategy.models import OpportunityRecord


ALLOCATION_BASE_RISK = 0.5
SIMULATION_BASE_RISK = 0.3

UNAUDITED_PENALTY = 0.2
YOUNG_PROTOCOL_PENALTY = 0.3
LOW_TVL_PENALTY = 0.2

YOUNG_PROTOCOL_DAYS = 90
LOW_TVL_THRESHOLD = 10_000_000.0


def score_risk(
    opportunity: OpportunityRecord,
    base: float = ALLOCATION_BASE_RISK,
) -> float:
    """Composite risk score of *opportunity*, clamped to [0, 1].

    Unknown fields count as the risky case: an unknown audit status is
    unaudited, an unknown age is young, an unknown TVL is illiquid.
    """
    risk = base
    if not opportunity.audited:
        risk += UNAUDITED_PENALTY
    if opportunity.age_in_days is None or opportunity.age_in_days < YOUNG_PROTOCOL_DAYS:
        risk += YOUNG_PROTOCOL_PENALTY
    if (
        opportunity.total_value_locked is None
        or opportunity.total_value_locked < LOW_TVL_THRESHOLD
    ):
        risk += LOW_TVL_PENALTY
    return max(0.0, min(1.0, risk))


def risk_adjusted_score(
    opportunity: OpportunityRecord,
    base: float = ALLOCATION_BASE_RISK,
) -> float:
    """``annual_yield × (1 − risk)`` — the ranking key for opportunities."""
    return opportunity.annual_yield * (1.0 - score_risk(opportunity, base))
