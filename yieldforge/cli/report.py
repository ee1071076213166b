"""CLI report — prints allocation and backtest summaries to the console."""

from yieldforge.allocation.engine import AllocationResult

_RULE = "──────────────────────────────────────────────────"


def format_allocation(result: AllocationResult) -> str:
    """Format and print an allocation result.

    Returns:
        The formatted string (also printed to stdout).
    """
    lines = [
        f"──────────── {result.strategy_name} allocation ────────────",
        f"  Total amount:    ${result.total_amount:,.2f}",
        f"  Allocated:       ${result.allocated_amount:,.2f}",
        f"  Expected yield:  {result.expected_portfolio_yield * 100:.2f}%",
        f"  Average risk:    {result.average_risk * 100:.1f}%",
        f"  Protocols:       {result.protocol_count}",
    ]
    for entry in result.entries:
        lines.append(
            f"    {entry.protocol_name:<20} ${entry.amount:>12,.2f}"
            f"  {entry.percentage_of_total:5.1f}%"
            f"  APY {entry.expected_yield * 100:.2f}%"
            f"  risk {entry.risk_score:.2f}"
        )
    lines.append(_RULE)
    output = "\n".join(lines)
    print(output)
    return output


def format_backtest(report: dict) -> str:
    """Format and print a report from ``generate_report``.

    Returns:
        The formatted string (also printed to stdout).
    """
    perf = report.get("performance", {})
    trading = report.get("trading", {})
    risk = report.get("risk") or {}

    lines = [
        f"──────────── {report.get('strategy', 'N/A')} backtest ────────────",
        f"  Initial capital: ${perf.get('initial_capital', 0):,.2f}",
        f"  Final capital:   ${perf.get('final_capital', 0):,.2f}",
        f"  Total return:    {perf.get('total_return', 'N/A')}",
        f"  Max drawdown:    {perf.get('max_drawdown', 'N/A')}",
        f"  Sharpe ratio:    {perf.get('sharpe_ratio', 'N/A')}",
        f"  Trades:          {trading.get('total_trades', 0)}",
        f"  Win rate:        {trading.get('win_rate', 'N/A')}",
        f"  Risk rating:     {risk.get('risk_rating', 'N/A')}",
    ]
    for rec in report.get("recommendations", []):
        lines.append(f"  * {rec}")
    lines.append(_RULE)
    output = "\n".join(lines)
    print(output)
    return output
