"""Internal API routers — /strategies, /allocate, /backtest, /risk endpoints.

No business logic. Parses request bodies into core records and delegates to
the allocation and simulation engines.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from yieldforge.allocation.engine import AllocationEngine
from yieldforge.backtest.engine import SimulationEngine
from yieldforge.backtest.report import generate_report
from yieldforge.errors import ConfigurationError
from yieldforge.risk.assessment import generate_risk_report
from yieldforge.strategy.models import MarketSnapshot, OpportunityRecord
from yieldforge.strategy.registry import StrategyRegistry, default_registry

logger = logging.getLogger("yieldforge.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_registry: Optional[StrategyRegistry] = None  # Set via configure_routers()
_risk_free_rate: float = 0.02
_default_strategy: str = "moderate"


def configure_routers(
    registry: Optional[StrategyRegistry] = None,
    risk_free_rate: float = 0.02,
    default_strategy: str = "moderate",
) -> None:
    """Inject dependencies from the application startup.

    Args:
        registry: Strategy registry to serve; built-ins when ``None``.
        risk_free_rate: Annual rate used for Sharpe ratios.
        default_strategy: Strategy used when a request names none.
    """
    global _registry, _risk_free_rate, _default_strategy  # noqa: PLW0603
    _registry = registry if registry is not None else default_registry()
    _risk_free_rate = risk_free_rate
    _default_strategy = default_strategy


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


def _configured_registry() -> StrategyRegistry:
    if _registry is None:
        raise HTTPException(status_code=503, detail="Strategy registry not configured")
    return _registry


def _require(body: dict, key: str):
    if key not in body:
        raise HTTPException(status_code=422, detail=f"Missing field '{key}'")
    return body[key]


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/strategies")
async def get_strategies():
    """List every registered strategy profile."""
    return {"strategies": [p.to_dict() for p in _configured_registry()]}


@router.post("/allocate")
async def post_allocate(body: dict):
    """Allocate ``amount`` across ``opportunities`` under ``strategy``."""
    strategy = body.get("strategy", _default_strategy)
    amount = _require(body, "amount")
    try:
        opportunities = [
            OpportunityRecord.from_dict(o) for o in body.get("opportunities", [])
        ]
        result = AllocationEngine(_configured_registry()).optimize(
            strategy, opportunities, float(amount),
        )
    except (ConfigurationError, ValueError, TypeError) as exc:
        logger.warning("Allocation request rejected: %s", exc)
        raise _http_error(exc) from exc
    return result.to_dict()


@router.post("/backtest")
async def post_backtest(body: dict):
    """Replay ``snapshots`` under ``strategy`` and return result + report."""
    strategy = body.get("strategy", _default_strategy)
    snapshots_raw = _require(body, "snapshots")
    try:
        snapshots = [MarketSnapshot.from_dict(s) for s in snapshots_raw]
        result = SimulationEngine(_configured_registry(), _risk_free_rate).run(
            strategy,
            snapshots,
            initial_capital=float(body.get("initial_capital", 10_000.0)),
            start=body.get("start"),
            end=body.get("end"),
            benchmark=body.get("benchmark"),
        )
    except (ConfigurationError, ValueError, TypeError) as exc:
        logger.warning("Backtest request rejected: %s", exc)
        raise _http_error(exc) from exc
    return {"result": result.to_dict(), "report": generate_report(result)}


@router.post("/risk/report")
async def post_risk_report(body: dict):
    """Qualitative risk report for one opportunity."""
    raw = _require(body, "opportunity")
    try:
        opportunity = OpportunityRecord.from_dict(raw)
        report = generate_risk_report(opportunity, body.get("price_history"))
    except (ValueError, TypeError) as exc:
        raise _http_error(exc) from exc
    return report.to_dict()
