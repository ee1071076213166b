"""Backtest engine — replays market snapshots through a strategy profile.

Steps through snapshots chronologically, applying a momentum-buy /
risk-sell decision policy and simulating trades against virtual capital.
No real orders are placed and no wall-clock time enters the results, so
identical inputs give identical trade logs and timelines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

from yieldforge.allocation.engine import rank_opportunities
from yieldforge.backtest.stats import (
    PerformanceStatistics,
    calculate_stats,
    has_positive_bases,
    max_drawdown,
)
from yieldforge.errors import InvalidArgumentError
from yieldforge.risk.scorer import SIMULATION_BASE_RISK, score_risk
from yieldforge.strategy.models import MarketSnapshot, StrategyProfile, parse_timestamp
from yieldforge.strategy.registry import StrategyRegistry

logger = logging.getLogger("yieldforge.backtest")

BUY_MOMENTUM_THRESHOLD = 0.05
MAX_BUY_QUANTITY = 1000.0
BUY_CASH_FRACTION = 0.1
SELL_FRACTION = 0.5


# ── Records ──────────────────────────────────────────────────────────────


@dataclass
class Holding:
    """Quantity held in one protocol."""

    protocol: str
    quantity: float


@dataclass(frozen=True)
class TradeRecord:
    """One executed simulated trade."""

    timestamp: datetime
    side: str  # "buy" or "sell"
    protocol: str
    quantity: float
    price: float
    value: float  # cost for buys, proceeds for sells

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "side": self.side,
            "protocol": self.protocol,
            "quantity": self.quantity,
            "price": self.price,
            "value": self.value,
        }


@dataclass(frozen=True)
class ValuePoint:
    """Portfolio valuation after one snapshot step."""

    timestamp: datetime
    cash_capital: float
    holdings_value: float
    total_value: float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "cash_capital": self.cash_capital,
            "holdings_value": self.holdings_value,
            "total_value": self.total_value,
        }


@dataclass(frozen=True)
class Decision:
    """Outcome of the decision phase for one snapshot."""

    action: str  # "buy", "sell" or "hold"
    protocol: Optional[str] = None
    quantity: float = 0.0


HOLD = Decision(action="hold")


@dataclass
class SimulationState:
    """Mutable state owned by a single ``run`` call.

    ``holdings`` is kept in first-acquired order; the sell rule depends
    on it.
    """

    cash_capital: float
    holdings: list[Holding] = field(default_factory=list)
    timeline: list[ValuePoint] = field(default_factory=list)
    trades: list[TradeRecord] = field(default_factory=list)

    def holding(self, protocol: str) -> Optional[Holding]:
        for h in self.holdings:
            if h.protocol == protocol:
                return h
        return None

    def quantities(self) -> dict[str, float]:
        return {h.protocol: h.quantity for h in self.holdings}

    def holdings_value(self, snapshot: MarketSnapshot) -> float:
        """Σ quantity × price; unpriced holdings count as 0."""
        total = 0.0
        for h in self.holdings:
            price = snapshot.price_of(h.protocol)
            if price is not None:
                total += h.quantity * price
        return total


@dataclass(frozen=True)
class SimulationResult:
    """Everything a finished backtest produced."""

    strategy_name: str
    initial_capital: float
    final_capital: float
    total_return: float
    max_drawdown: float
    sharpe_ratio: float
    trades: tuple[TradeRecord, ...]
    timeline: tuple[ValuePoint, ...]
    statistics: Optional[PerformanceStatistics] = None
    final_holdings: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_name": self.strategy_name,
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "total_return": self.total_return,
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
            "trades": [t.to_dict() for t in self.trades],
            "timeline": [p.to_dict() for p in self.timeline],
            "statistics": self.statistics.to_dict() if self.statistics else None,
            "final_holdings": dict(self.final_holdings),
        }


# ── Snapshot helpers ─────────────────────────────────────────────────────


def ensure_chronological(snapshots: Sequence[MarketSnapshot]) -> None:
    """Raise ``InvalidArgumentError`` if any timestamp goes backwards."""
    for prev, cur in zip(snapshots, snapshots[1:]):
        if cur.timestamp < prev.timestamp:
            raise InvalidArgumentError(
                f"Snapshots out of order: {cur.timestamp.isoformat()} "
                f"follows {prev.timestamp.isoformat()}"
            )


def filter_snapshots(
    snapshots: Sequence[MarketSnapshot],
    start: datetime | str | None = None,
    end: datetime | str | None = None,
) -> list[MarketSnapshot]:
    """Snapshots within the inclusive ``[start, end]`` window."""
    lo = parse_timestamp(start) if start is not None else None
    hi = parse_timestamp(end) if end is not None else None
    return [
        s for s in snapshots
        if (lo is None or s.timestamp >= lo) and (hi is None or s.timestamp <= hi)
    ]


# ── Engine ───────────────────────────────────────────────────────────────


class SimulationEngine:
    """Simulates a strategy profile over historical market snapshots.

    Args:
        registry: Strategy profiles available to ``run``.
        risk_free_rate: Annual rate used for the Sharpe ratio.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        risk_free_rate: float = 0.02,
    ) -> None:
        self._registry = registry
        self._risk_free_rate = risk_free_rate

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        strategy_name: str,
        snapshots: Sequence[MarketSnapshot],
        initial_capital: float = 10_000.0,
        start: datetime | str | None = None,
        end: datetime | str | None = None,
        benchmark: Optional[Sequence[float]] = None,
    ) -> SimulationResult:
        """Execute a full backtest.

        Args:
            strategy_name: Registered strategy profile name.
            snapshots: Chronologically ordered market snapshots.
            initial_capital: Starting virtual cash.
            start: Optional inclusive lower timestamp bound.
            end: Optional inclusive upper timestamp bound.
            benchmark: Optional benchmark values aligned with the
                simulated timeline, used for beta.

        Raises:
            ConfigurationError: Unknown strategy.
            InvalidArgumentError: Non-positive capital, out-of-order or
                empty snapshots.
        """
        strategy = self._registry.get(strategy_name)
        if initial_capital <= 0:
            raise InvalidArgumentError(
                f"initial_capital must be positive, got {initial_capital}"
            )
        ensure_chronological(snapshots)
        if start is not None or end is not None:
            snapshots = filter_snapshots(snapshots, start, end)
        if not snapshots:
            raise InvalidArgumentError("No snapshots to simulate")

        logger.info(
            "Running backtest for '%s' over %d snapshot(s), capital %.2f.",
            strategy.name, len(snapshots), initial_capital,
        )

        state = SimulationState(cash_capital=initial_capital)
        for snapshot in snapshots:
            decision = self.decide(strategy, snapshot, state)
            if decision.action == "buy":
                self._execute_buy(state, decision, snapshot)
            elif decision.action == "sell":
                self._execute_sell(state, decision, snapshot)
            self._record_value(state, snapshot)

        result = self._build_result(strategy, initial_capital, state, benchmark)
        logger.info(
            "Backtest '%s' complete: %d trade(s), final %.2f, return %.2f%%.",
            strategy.name, len(result.trades), result.final_capital,
            result.total_return * 100,
        )
        return result

    @staticmethod
    def decide(
        strategy: StrategyProfile,
        snapshot: MarketSnapshot,
        state: SimulationState,
    ) -> Decision:
        """Decision phase: momentum buy, else risk sell, else hold."""
        if snapshot.momentum is not None and snapshot.momentum > BUY_MOMENTUM_THRESHOLD:
            ranked = rank_opportunities(
                strategy, snapshot.protocols, SIMULATION_BASE_RISK,
            )
            if ranked and ranked[0][0].annual_yield >= strategy.min_annual_yield:
                return Decision(
                    action="buy",
                    protocol=ranked[0][0].name,
                    quantity=min(MAX_BUY_QUANTITY, state.cash_capital * BUY_CASH_FRACTION),
                )

        # First qualifying holding in acquisition order wins.
        for holding in state.holdings:
            record = snapshot.find(holding.protocol)
            if record is None:
                continue
            if score_risk(record, SIMULATION_BASE_RISK) > strategy.risk_tolerance:
                return Decision(
                    action="sell",
                    protocol=holding.protocol,
                    quantity=holding.quantity * SELL_FRACTION,
                )

        return HOLD

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _execute_buy(
        state: SimulationState,
        decision: Decision,
        snapshot: MarketSnapshot,
    ) -> None:
        price = snapshot.price_of(decision.protocol)
        if price is None:
            logger.debug(
                "Skipping buy of %s at %s: no price.",
                decision.protocol, snapshot.timestamp.isoformat(),
            )
            return
        cost = decision.quantity * price
        if cost > state.cash_capital:
            logger.debug(
                "Skipping buy of %s at %s: cost %.2f exceeds cash %.2f.",
                decision.protocol, snapshot.timestamp.isoformat(),
                cost, state.cash_capital,
            )
            return

        state.cash_capital -= cost
        holding = state.holding(decision.protocol)
        if holding is None:
            state.holdings.append(Holding(decision.protocol, decision.quantity))
        else:
            holding.quantity += decision.quantity
        state.trades.append(
            TradeRecord(
                timestamp=snapshot.timestamp,
                side="buy",
                protocol=decision.protocol,
                quantity=decision.quantity,
                price=price,
                value=cost,
            )
        )
        logger.debug(
            "BUY %.4f %s @ %.4f (cost %.2f).",
            decision.quantity, decision.protocol, price, cost,
        )

    @staticmethod
    def _execute_sell(
        state: SimulationState,
        decision: Decision,
        snapshot: MarketSnapshot,
    ) -> None:
        holding = state.holding(decision.protocol)
        price = snapshot.price_of(decision.protocol)
        if holding is None or price is None:
            logger.debug(
                "Skipping sell of %s at %s: no price.",
                decision.protocol, snapshot.timestamp.isoformat(),
            )
            return

        quantity = min(decision.quantity, holding.quantity)
        proceeds = quantity * price
        holding.quantity -= quantity
        state.cash_capital += proceeds
        state.trades.append(
            TradeRecord(
                timestamp=snapshot.timestamp,
                side="sell",
                protocol=decision.protocol,
                quantity=quantity,
                price=price,
                value=proceeds,
            )
        )
        logger.debug(
            "SELL %.4f %s @ %.4f (proceeds %.2f).",
            quantity, decision.protocol, price, proceeds,
        )

    @staticmethod
    def _record_value(state: SimulationState, snapshot: MarketSnapshot) -> None:
        holdings_value = state.holdings_value(snapshot)
        state.timeline.append(
            ValuePoint(
                timestamp=snapshot.timestamp,
                cash_capital=state.cash_capital,
                holdings_value=holdings_value,
                total_value=state.cash_capital + holdings_value,
            )
        )

    def _build_result(
        self,
        strategy: StrategyProfile,
        initial_capital: float,
        state: SimulationState,
        benchmark: Optional[Sequence[float]],
    ) -> SimulationResult:
        values = [p.total_value for p in state.timeline]
        final = values[-1]

        # No returns without two points and positive bases: Sharpe falls back to 0.
        statistics: Optional[PerformanceStatistics] = None
        sharpe = 0.0
        if len(values) >= 2 and not has_positive_bases(values):
            logger.debug(
                "Skipping statistics for '%s': timeline reaches zero value.",
                strategy.name,
            )
        elif len(values) >= 2:
            statistics = calculate_stats(values, benchmark, self._risk_free_rate)
            sharpe = statistics.sharpe_ratio

        return SimulationResult(
            strategy_name=strategy.name,
            initial_capital=initial_capital,
            final_capital=final,
            total_return=(final - initial_capital) / initial_capital,
            max_drawdown=max_drawdown(values),
            sharpe_ratio=sharpe,
            trades=tuple(state.trades),
            timeline=tuple(state.timeline),
            statistics=statistics,
            final_holdings=state.quantities(),
        )
