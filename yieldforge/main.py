"""YieldForge — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
allocate, backtest, and serve modes.
"""

import json
import logging
import pathlib
import sys

from fastapi import FastAPI

from yieldforge.api.routers import router

app = FastAPI(title="YieldForge Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("yieldforge")


@app.get("/health")
async def health():
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _load_items(path: str, key: str) -> list:
    """Read a JSON file holding either a list or ``{key: [...]}``."""
    data = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of {key}")
    return data


def _run_cli(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from yieldforge.config import load_config

    parser = argparse.ArgumentParser(description="YieldForge yield allocator")
    parser.add_argument(
        "--mode",
        choices=["allocate", "backtest", "serve"],
        default="allocate",
        help="Run mode (default: allocate)",
    )
    parser.add_argument("--input", help="JSON file of opportunities or snapshots")
    parser.add_argument("--strategy", help="Strategy profile name")
    parser.add_argument("--amount", type=float, help="Amount or initial capital")
    parser.add_argument("--start", help="Backtest start (ISO-8601)")
    parser.add_argument("--end", help="Backtest end (ISO-8601)")
    parser.add_argument(
        "--format",
        choices=["text", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )
    args = parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    from yieldforge.api.routers import configure_routers
    from yieldforge.strategy.registry import default_registry

    registry = default_registry()
    strategy = args.strategy or config.default_strategy

    if args.mode == "serve":
        import uvicorn

        configure_routers(registry, config.risk_free_rate, config.default_strategy)
        logger.info("Serving API on port %d.", config.health_port)
        uvicorn.run(app, host="0.0.0.0", port=config.health_port, log_level="info")
        return 0

    if not args.input:
        parser.error("--input is required for allocate and backtest modes")

    if args.mode == "allocate":
        return _run_allocate(registry, strategy, args, config)
    return _run_backtest(registry, strategy, args, config)


def _run_allocate(registry, strategy, args, config) -> int:
    from yieldforge.allocation.engine import AllocationEngine
    from yieldforge.cli.report import format_allocation
    from yieldforge.strategy.models import OpportunityRecord

    opportunities = [
        OpportunityRecord.from_dict(o)
        for o in _load_items(args.input, "opportunities")
    ]
    amount = args.amount if args.amount is not None else config.investment_amount
    result = AllocationEngine(registry).optimize(strategy, opportunities, amount)

    if args.format == "text":
        format_allocation(result)
    else:
        print(json.dumps(result.to_dict(), indent=2))
    return 0


def _run_backtest(registry, strategy, args, config) -> int:
    from yieldforge.backtest.engine import SimulationEngine
    from yieldforge.backtest.report import export_results, generate_report
    from yieldforge.cli.report import format_backtest
    from yieldforge.strategy.models import MarketSnapshot

    snapshots = [
        MarketSnapshot.from_dict(s) for s in _load_items(args.input, "snapshots")
    ]
    capital = args.amount if args.amount is not None else config.initial_capital
    engine = SimulationEngine(registry, config.risk_free_rate)
    result = engine.run(strategy, snapshots, capital, start=args.start, end=args.end)

    if args.format == "text":
        format_backtest(generate_report(result))
    else:
        print(export_results([result], args.format))
    return 0


if __name__ == "__main__":
    sys.exit(_run_cli())
