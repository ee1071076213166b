"""Backtest reporting — summaries, strategy comparison, and export."""

import csv
import io
import json
from typing import Sequence

from yieldforge.backtest.engine import SimulationResult
from yieldforge.backtest.stats import annualized_return, generate_recommendations
from yieldforge.errors import InvalidArgumentError


CSV_HEADERS = ["Strategy", "Total Return", "Max Drawdown", "Sharpe Ratio", "Total Trades"]


def _pct(value: float) -> str:
    return f"{value * 100:.2f}%"


def days_covered(result: SimulationResult) -> float:
    """Calendar days between the first and last timeline point (min 1)."""
    if len(result.timeline) < 2:
        return 1.0
    span = result.timeline[-1].timestamp - result.timeline[0].timestamp
    return max(1.0, span.total_seconds() / 86_400)


def generate_report(result: SimulationResult) -> dict:
    """Human-oriented summary of one backtest.

    Returns:
        Dict with ``strategy``, ``performance``, ``trading``,
        ``risk``, ``recommendations`` and ``timeline`` (point count).
    """
    trades = result.trades
    buys = [t for t in trades if t.side == "buy"]
    avg_trade = sum(t.value for t in trades) / len(trades) if trades else 0.0

    report = {
        "strategy": result.strategy_name,
        "performance": {
            "initial_capital": result.initial_capital,
            "final_capital": result.final_capital,
            "total_return": _pct(result.total_return),
            "annualized_return": _pct(
                annualized_return(result.total_return, days_covered(result))
            ),
            "max_drawdown": _pct(result.max_drawdown),
            "sharpe_ratio": f"{result.sharpe_ratio:.3f}",
        },
        "trading": {
            "total_trades": len(trades),
            "buys": len(buys),
            "sells": len(trades) - len(buys),
            "avg_trade_size": f"{avg_trade:.2f}",
        },
        "risk": None,
        "recommendations": [],
        "timeline": len(result.timeline),
    }

    stats = result.statistics
    if stats is not None:
        report["trading"]["win_rate"] = f"{stats.win_rate * 100:.1f}%"
        report["risk"] = {
            "volatility": _pct(stats.volatility),
            "risk_rating": stats.risk_rating,
            "value_at_risk": stats.value_at_risk,
            "beta": stats.beta,
        }
        report["recommendations"] = generate_recommendations(stats)
    return report


def compare_strategies(results: Sequence[SimulationResult]) -> list[dict]:
    """One row per result, best total return first."""
    rows = [
        {
            "strategy": r.strategy_name,
            "total_return": r.total_return,
            "max_drawdown": r.max_drawdown,
            "sharpe_ratio": r.sharpe_ratio,
            "trades": len(r.trades),
            "final_value": r.final_capital,
        }
        for r in results
    ]
    return sorted(rows, key=lambda row: row["total_return"], reverse=True)


def export_results(results: Sequence[SimulationResult], fmt: str = "json") -> str:
    """Serialise reports for *results* as ``"json"`` or ``"csv"``.

    Raises ``InvalidArgumentError`` for any other format.
    """
    reports = {r.strategy_name: generate_report(r) for r in results}

    if fmt == "json":
        return json.dumps(reports, indent=2)

    if fmt == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for name, report in reports.items():
            writer.writerow([
                name,
                report["performance"]["total_return"],
                report["performance"]["max_drawdown"],
                report["performance"]["sharpe_ratio"],
                report["trading"]["total_trades"],
            ])
        return buffer.getvalue()

    raise InvalidArgumentError(f"Unsupported export format '{fmt}'")
