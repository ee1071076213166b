"""Tests for the backtest engine and backtest reporting.

Covers the decision policy (momentum buy, risk sell, hold), simulated
execution, valuation, determinism, input validation, and report export.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from yieldforge.backtest.engine import (
    Holding,
    SimulationEngine,
    SimulationState,
    filter_snapshots,
)
from yieldforge.backtest.report import (
    CSV_HEADERS,
    compare_strategies,
    export_results,
    generate_report,
)
from yieldforge.errors import ConfigurationError, InvalidArgumentError
from yieldforge.strategy.models import MarketSnapshot, OpportunityRecord
from yieldforge.strategy.registry import default_registry


# ── Helpers ──────────────────────────────────────────────────────────────

_T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _day(i):
    return _T0 + timedelta(days=i)


def _opp(name, family="aave", apy=0.05, tvl=5e9, audited=True, age=1500):
    return OpportunityRecord(
        name=name, protocol_family=family, annual_yield=apy,
        total_value_locked=tvl, audited=audited, age_in_days=age,
    )


def _snap(i, prices, protocols, momentum=None):
    return MarketSnapshot(
        timestamp=_day(i), prices=prices,
        protocols=tuple(protocols), momentum=momentum,
    )


def _engine():
    return SimulationEngine(default_registry())


def _accumulation_fixture():
    """Conservative run: buy, hold on a price rise, buy again."""
    pool = _opp("aave-usdc")
    return [
        _snap(0, {"aave-usdc": 1.0}, [pool], momentum=0.1),
        _snap(1, {"aave-usdc": 1.1}, [pool], momentum=0.0),
        _snap(2, {"aave-usdc": 1.2}, [pool], momentum=0.1),
    ]


# ── Decision policy & execution ──────────────────────────────────────────


class TestSimulationPolicy:

    def test_momentum_buys_and_holds(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        trades = result.trades
        assert [t.side for t in trades] == ["buy", "buy"]

        # Step 0: min(1000, 10000 × 0.1) = 1000 units @ 1.0
        assert trades[0].quantity == 1000.0
        assert trades[0].value == 1000.0
        # Step 2: cash 9000 → min(1000, 900) = 900 units @ 1.2
        assert trades[1].quantity == pytest.approx(900.0)
        assert trades[1].value == pytest.approx(1080.0)

        totals = [p.total_value for p in result.timeline]
        assert totals == pytest.approx([10_000.0, 10_100.0, 10_200.0])
        assert result.final_capital == pytest.approx(10_200.0)
        assert result.total_return == pytest.approx(0.02)
        assert result.max_drawdown == 0.0
        assert result.final_holdings == {"aave-usdc": pytest.approx(1900.0)}

    def test_timeline_identity(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        for point in result.timeline:
            assert point.total_value == point.cash_capital + point.holdings_value

    def test_low_momentum_holds(self):
        pool = _opp("aave-usdc")
        snaps = [_snap(i, {"aave-usdc": 1.0}, [pool], momentum=0.05) for i in range(3)]
        result = _engine().run("conservative", snaps, 10_000.0)
        assert result.trades == ()
        assert result.final_capital == 10_000.0
        assert result.sharpe_ratio == 0.0

    def test_ineligible_family_never_bought(self):
        pool = _opp("yearn-vault", family="yearn", apy=0.3)
        snaps = [_snap(0, {"yearn-vault": 1.0}, [pool], momentum=0.5)]
        result = _engine().run("conservative", snaps, 10_000.0)
        assert result.trades == ()

    def test_buys_best_risk_adjusted(self):
        safe = _opp("aave-usdc", apy=0.05)
        risky = _opp("comp-new", family="compound", apy=0.09, audited=False, age=10)
        snaps = [_snap(0, {"aave-usdc": 1.0, "comp-new": 1.0}, [risky, safe], momentum=0.2)]
        result = _engine().run("conservative", snaps, 10_000.0)
        # safe: 0.05 × 0.7 = 0.035, risky: 0.09 × (1 − 0.8) = 0.018
        assert result.trades[0].protocol == "aave-usdc"

    def test_risk_sell_half(self):
        vault = _opp("yearn-vault", family="yearn", apy=0.12, tvl=5e8, age=400)
        degraded = _opp("yearn-vault", family="yearn", apy=0.12, tvl=5e8,
                        audited=False, age=30)
        snaps = [
            _snap(0, {"yearn-vault": 1.0}, [vault], momentum=0.1),
            _snap(1, {"yearn-vault": 1.0}, [degraded]),
        ]
        result = _engine().run("moderate", snaps, 10_000.0)
        assert [t.side for t in result.trades] == ["buy", "sell"]
        sell = result.trades[1]
        assert sell.quantity == 500.0
        assert sell.value == 500.0
        assert result.timeline[1].cash_capital == 9_500.0
        assert result.final_holdings == {"yearn-vault": 500.0}

    def test_sell_first_acquired_first(self):
        a = _opp("curve-a", family="curve", apy=0.10, tvl=5e8)
        b = _opp("curve-b", family="curve", apy=0.10, tvl=5e8)
        a_bad = _opp("curve-a", family="curve", apy=0.10, tvl=5e8, audited=False, age=1)
        b_bad = _opp("curve-b", family="curve", apy=0.10, tvl=5e8, audited=False, age=1)
        prices = {"curve-a": 1.0, "curve-b": 1.0}
        snaps = [
            _snap(0, prices, [a], momentum=0.1),
            _snap(1, prices, [b], momentum=0.1),
            # b listed first, but a was acquired first
            _snap(2, prices, [b_bad, a_bad]),
        ]
        result = _engine().run("moderate", snaps, 10_000.0)
        assert [(t.side, t.protocol) for t in result.trades] == [
            ("buy", "curve-a"), ("buy", "curve-b"), ("sell", "curve-a"),
        ]

    def test_buy_blocks_sell_in_same_step(self):
        old_ok = _opp("yearn-old", family="yearn", apy=0.12, tvl=5e8)
        old_bad = _opp("yearn-old", family="yearn", apy=0.12, tvl=5e8,
                       audited=False, age=1)
        vault = _opp("yearn-vault", family="yearn", apy=0.12, tvl=5e8)
        prices = {"yearn-vault": 1.0, "yearn-old": 1.0}
        snaps = [
            _snap(0, prices, [old_ok], momentum=0.1),
            # yearn-old is now too risky, but the momentum buy takes the step
            _snap(1, prices, [old_bad, vault], momentum=0.1),
            _snap(2, prices, [old_bad, vault]),
        ]
        result = _engine().run("moderate", snaps, 10_000.0)
        assert [(t.side, t.protocol) for t in result.trades] == [
            ("buy", "yearn-old"), ("buy", "yearn-vault"), ("sell", "yearn-old"),
        ]

    def test_insufficient_cash_skips_silently(self):
        pool = _opp("aave-usdc")
        snaps = [_snap(0, {"aave-usdc": 50.0}, [pool], momentum=0.1)]
        # quantity = min(1000, 10) = 10, cost 500 > 100
        result = _engine().run("conservative", snaps, 100.0)
        assert result.trades == ()
        assert result.final_capital == 100.0

    def test_missing_price_skips_trade(self):
        pool = _opp("aave-usdc")
        snaps = [_snap(0, {}, [pool], momentum=0.1)]
        result = _engine().run("conservative", snaps, 10_000.0)
        assert result.trades == ()

    def test_unpriced_holding_values_zero(self):
        pool = _opp("aave-usdc")
        snaps = [
            _snap(0, {"aave-usdc": 1.0}, [pool], momentum=0.1),
            _snap(1, {}, [pool]),
        ]
        result = _engine().run("conservative", snaps, 10_000.0)
        assert result.timeline[1].holdings_value == 0.0
        assert result.timeline[1].total_value == 9_000.0
        assert result.max_drawdown == pytest.approx(0.1)


class TestSimulationState:

    def test_holdings_keep_acquisition_order(self):
        state = SimulationState(cash_capital=100.0)
        state.holdings.append(Holding("b", 1.0))
        state.holdings.append(Holding("a", 2.0))
        assert list(state.quantities()) == ["b", "a"]
        assert state.holding("a").quantity == 2.0
        assert state.holding("zzz") is None


# ── Determinism & validation ─────────────────────────────────────────────


class TestSimulationContract:

    def test_deterministic(self):
        snaps = _accumulation_fixture()
        first = _engine().run("conservative", snaps, 10_000.0)
        second = _engine().run("conservative", snaps, 10_000.0)
        assert first.trades == second.trades
        assert first.timeline == second.timeline
        assert json.dumps(first.to_dict()) == json.dumps(second.to_dict())

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError):
            _engine().run("ultraggressive", _accumulation_fixture(), 10_000.0)

    def test_non_positive_capital(self):
        with pytest.raises(InvalidArgumentError, match="initial_capital"):
            _engine().run("conservative", _accumulation_fixture(), 0.0)

    def test_out_of_order(self):
        snaps = list(reversed(_accumulation_fixture()))
        with pytest.raises(InvalidArgumentError, match="out of order"):
            _engine().run("conservative", snaps, 10_000.0)

    def test_empty_snapshots(self):
        with pytest.raises(InvalidArgumentError, match="No snapshots"):
            _engine().run("conservative", [], 10_000.0)

    def test_single_snapshot_sharpe_is_zero(self):
        result = _engine().run("conservative", _accumulation_fixture()[:1], 10_000.0)
        assert result.sharpe_ratio == 0.0
        assert result.statistics is None
        assert result.max_drawdown == 0.0

    def test_zero_value_step_skips_statistics(self):
        pool = _opp("aave-usdc")
        snaps = [
            # 10 units @ 10 spends all 100 of cash
            _snap(0, {"aave-usdc": 10.0}, [pool], momentum=0.1),
            _snap(1, {}, [pool]),
            _snap(2, {"aave-usdc": 11.0}, [pool]),
        ]
        result = _engine().run("conservative", snaps, 100.0)
        assert [p.total_value for p in result.timeline] == [100.0, 0.0, 110.0]
        assert result.statistics is None
        assert result.sharpe_ratio == 0.0
        assert result.max_drawdown == 1.0
        assert result.total_return == pytest.approx(0.1)
        assert generate_report(result)["timeline"] == 3

    def test_statistics_attached(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        assert result.statistics is not None
        assert result.statistics.observations == 3
        assert result.sharpe_ratio == result.statistics.sharpe_ratio


class TestDateFilter:

    def test_inclusive_window(self):
        snaps = _accumulation_fixture()
        kept = filter_snapshots(snaps, _day(1), _day(2))
        assert [s.timestamp for s in kept] == [_day(1), _day(2)]

    def test_iso_bounds(self):
        kept = filter_snapshots(_accumulation_fixture(), end="2025-01-01T00:00:00Z")
        assert len(kept) == 1

    def test_run_with_window(self):
        result = _engine().run(
            "conservative", _accumulation_fixture(), 10_000.0,
            start=_day(1), end=_day(2),
        )
        assert len(result.timeline) == 2
        # Day-1 momentum is flat, day-2 buys
        assert len(result.trades) == 1

    def test_window_with_no_data(self):
        with pytest.raises(InvalidArgumentError, match="No snapshots"):
            _engine().run(
                "conservative", _accumulation_fixture(), 10_000.0,
                start=_day(10),
            )


# ── Reporting ────────────────────────────────────────────────────────────


class TestBacktestReport:

    def test_generate_report(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        report = generate_report(result)
        assert report["strategy"] == "conservative"
        assert report["performance"]["total_return"] == "2.00%"
        assert report["performance"]["max_drawdown"] == "0.00%"
        assert report["trading"]["total_trades"] == 2
        assert report["trading"]["buys"] == 2
        assert report["trading"]["sells"] == 0
        assert report["trading"]["avg_trade_size"] == "1040.00"
        assert report["trading"]["win_rate"] == "100.0%"
        assert report["timeline"] == 3
        assert report["recommendations"]

    def test_report_single_point(self):
        result = _engine().run("conservative", _accumulation_fixture()[:1], 10_000.0)
        report = generate_report(result)
        assert report["risk"] is None
        assert report["recommendations"] == []

    def test_compare_strategies_sorted(self):
        engine = _engine()
        snaps = _accumulation_fixture()
        conservative = engine.run("conservative", snaps, 10_000.0)
        aggressive = engine.run("aggressive", snaps, 10_000.0)
        rows = compare_strategies([aggressive, conservative])
        assert [r["strategy"] for r in rows] == ["conservative", "aggressive"]
        assert rows[1]["trades"] == 0

    def test_export_json(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        data = json.loads(export_results([result], "json"))
        assert data["conservative"]["trading"]["total_trades"] == 2

    def test_export_csv(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        lines = export_results([result], "csv").strip().split("\n")
        assert lines[0] == ",".join(CSV_HEADERS)
        assert lines[1] == "conservative,2.00%,0.00%,{},2".format(
            generate_report(result)["performance"]["sharpe_ratio"]
        )

    def test_export_unknown_format(self):
        result = _engine().run("conservative", _accumulation_fixture(), 10_000.0)
        with pytest.raises(InvalidArgumentError, match="xml"):
            export_results([result], "xml")
