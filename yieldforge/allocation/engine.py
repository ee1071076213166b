"""Allocation engine — splits capital across eligible opportunities.

Greedy heuristic: rank eligible opportunities by risk-adjusted yield and
fill at most ``MAX_PROTOCOLS`` of them, each capped at the strategy's
single-allocation share.  No optimality is claimed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from yieldforge.errors import InvalidArgumentError
from yieldforge.risk.scorer import ALLOCATION_BASE_RISK, score_risk
from yieldforge.strategy.models import OpportunityRecord, StrategyProfile
from yieldforge.strategy.registry import StrategyRegistry

logger = logging.getLogger("yieldforge.allocation")

MAX_PROTOCOLS = 5


@dataclass(frozen=True)
class AllocationEntry:
    """Capital assigned to one protocol."""

    protocol_name: str
    amount: float
    percentage_of_total: float  # 0–100
    expected_yield: float
    risk_score: float

    def to_dict(self) -> dict:
        return {
            "protocol_name": self.protocol_name,
            "amount": self.amount,
            "percentage_of_total": self.percentage_of_total,
            "expected_yield": self.expected_yield,
            "risk_score": self.risk_score,
        }


@dataclass(frozen=True)
class AllocationResult:
    """Output of ``AllocationEngine.optimize``.

    ``expected_portfolio_yield`` and ``average_risk`` are weighted by the
    capital actually allocated, not by ``total_amount``.
    """

    strategy_name: str
    entries: tuple[AllocationEntry, ...]
    total_amount: float
    expected_portfolio_yield: float
    average_risk: float

    @property
    def protocol_count(self) -> int:
        return len(self.entries)

    @property
    def allocated_amount(self) -> float:
        return sum(e.amount for e in self.entries)

    @property
    def unallocated_amount(self) -> float:
        return self.total_amount - self.allocated_amount

    def to_dict(self) -> dict:
        return {
            "strategy_name": self.strategy_name,
            "entries": [e.to_dict() for e in self.entries],
            "total_amount": self.total_amount,
            "allocated_amount": self.allocated_amount,
            "unallocated_amount": self.unallocated_amount,
            "expected_portfolio_yield": self.expected_portfolio_yield,
            "average_risk": self.average_risk,
            "protocol_count": self.protocol_count,
        }


def rank_opportunities(
    strategy: StrategyProfile,
    opportunities: Sequence[OpportunityRecord],
    base_risk: float,
) -> list[tuple[OpportunityRecord, float]]:
    """Eligible opportunities with their risk score, best first.

    Ordered by ``annual_yield × (1 − risk)`` descending.  ``sorted`` is
    stable, so ties keep their input order.
    """
    scored = [
        (opp, score_risk(opp, base_risk))
        for opp in opportunities
        if strategy.allows(opp)
    ]
    return sorted(
        scored,
        key=lambda pair: pair[0].annual_yield * (1.0 - pair[1]),
        reverse=True,
    )


class AllocationEngine:
    """Turns opportunities + a strategy profile into a static allocation.

    Args:
        registry: Strategy profiles available to ``optimize``.
    """

    def __init__(self, registry: StrategyRegistry) -> None:
        self._registry = registry

    # ── Public API ───────────────────────────────────────────────────────

    def optimize(
        self,
        strategy_name: str,
        opportunities: Sequence[OpportunityRecord],
        total_amount: float,
    ) -> AllocationResult:
        """Allocate *total_amount* under the named strategy.

        Raises:
            ConfigurationError: If *strategy_name* is not registered.
            InvalidArgumentError: If *total_amount* is not positive.
        """
        strategy = self._registry.get(strategy_name)
        if total_amount <= 0:
            raise InvalidArgumentError(
                f"total_amount must be positive, got {total_amount}"
            )

        ranked = rank_opportunities(strategy, opportunities, ALLOCATION_BASE_RISK)
        if not ranked:
            logger.info(
                "No eligible opportunity for '%s' among %d candidate(s).",
                strategy.name, len(opportunities),
            )
            return AllocationResult(
                strategy_name=strategy.name,
                entries=(),
                total_amount=total_amount,
                expected_portfolio_yield=0.0,
                average_risk=0.0,
            )

        result = self._fill(strategy, ranked, total_amount)
        logger.info(
            "Allocated %.2f of %.2f across %d protocol(s) for '%s' "
            "(yield %.4f, risk %.3f).",
            result.allocated_amount, total_amount, result.protocol_count,
            strategy.name, result.expected_portfolio_yield, result.average_risk,
        )
        return result

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _fill(
        strategy: StrategyProfile,
        ranked: list[tuple[OpportunityRecord, float]],
        total_amount: float,
    ) -> AllocationResult:
        cap = total_amount * strategy.max_single_allocation_share
        remaining = total_amount
        entries: list[AllocationEntry] = []
        weighted_yield = 0.0
        weighted_risk = 0.0

        for opp, risk in ranked[:MAX_PROTOCOLS]:
            if remaining <= 0:
                break
            amount = min(remaining, cap)
            entries.append(
                AllocationEntry(
                    protocol_name=opp.name,
                    amount=amount,
                    percentage_of_total=amount / total_amount * 100.0,
                    expected_yield=opp.annual_yield,
                    risk_score=risk,
                )
            )
            weighted_yield += amount * opp.annual_yield
            weighted_risk += amount * risk
            remaining -= amount

        allocated = sum(e.amount for e in entries)
        return AllocationResult(
            strategy_name=strategy.name,
            entries=tuple(entries),
            total_amount=total_amount,
            expected_portfolio_yield=weighted_yield / allocated,
            average_risk=weighted_risk / allocated,
        )


# ── Rebalancing advice ───────────────────────────────────────────────────


@dataclass(frozen=True)
class RebalanceSuggestion:
    """Advisory action on a held position."""

    action: str  # "reduce" or "increase"
    protocol: str
    reason: str
    recommendation: str

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "protocol": self.protocol,
            "reason": self.reason,
            "recommendation": self.recommendation,
        }


def suggest_rebalancing(
    held: Sequence[OpportunityRecord],
    market: Sequence[OpportunityRecord],
) -> list[RebalanceSuggestion]:
    """Compare held positions' entry yields against current market yields.

    *held* carries each position's record as of entry.  A yield drop of
    more than 10 % suggests reducing; a current yield above 1.5× the entry
    yield suggests increasing.  Positions missing from *market* or entered
    at zero yield are skipped.
    """
    current = {}
    for record in market:
        current.setdefault(record.name, record)

    suggestions: list[RebalanceSuggestion] = []
    for position in held:
        latest = current.get(position.name)
        if latest is None or position.annual_yield == 0:
            continue

        change = (latest.annual_yield - position.annual_yield) / position.annual_yield
        if change < -0.1:
            suggestions.append(
                RebalanceSuggestion(
                    action="reduce",
                    protocol=position.name,
                    reason="Performance declined significantly",
                    recommendation="Consider reducing position by 25%",
                )
            )
        if latest.annual_yield > position.annual_yield * 1.5:
            suggestions.append(
                RebalanceSuggestion(
                    action="increase",
                    protocol=position.name,
                    reason="Yield opportunity improved",
                    recommendation="Consider increasing position",
                )
            )
    return suggestions


def needs_rebalancing(
    current_weights: Mapping[str, float],
    target_weights: Mapping[str, float],
    threshold: float = 0.1,
) -> bool:
    """``True`` when any target weight drifts more than *threshold*.

    Protocols absent from *current_weights* count as weight 0.
    """
    for protocol, target in target_weights.items():
        if abs(current_weights.get(protocol, 0.0) - target) > threshold:
            return True
    return False
