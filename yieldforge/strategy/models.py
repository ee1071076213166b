"""Strategy data models — typed records consumed by the engines.

Opportunity records and market snapshots arrive from the data collector as
plain mappings; ``from_dict`` turns them into immutable dataclasses and
rejects keys it does not know.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from yieldforge.errors import ConfigurationError, InvalidArgumentError


REBALANCE_FREQUENCIES = ("hourly", "daily", "weekly")


# ── Opportunity ──────────────────────────────────────────────────────────

_OPPORTUNITY_KEYS: dict[str, str] = {
    "name": "name",
    "protocol_family": "protocol_family",
    "protocolFamily": "protocol_family",
    "protocol": "protocol_family",
    "annual_yield": "annual_yield",
    "annualYield": "annual_yield",
    "apy": "annual_yield",
    "total_value_locked": "total_value_locked",
    "totalValueLocked": "total_value_locked",
    "tvl": "total_value_locked",
    "audited": "audited",
    "age_in_days": "age_in_days",
    "ageInDays": "age_in_days",
    "age": "age_in_days",
    "token": "token",
}


@dataclass(frozen=True)
class OpportunityRecord:
    """One yield-bearing position available at a point in time.

    ``audited``, ``age_in_days`` and ``total_value_locked`` may be unknown
    (``None``); the risk scorer treats unknown as the risky case.
    """

    name: str
    protocol_family: str
    annual_yield: float
    total_value_locked: Optional[float] = None
    audited: Optional[bool] = None
    age_in_days: Optional[int] = None
    token: str = ""

    def __post_init__(self) -> None:
        if self.annual_yield < 0:
            raise InvalidArgumentError(
                f"annual_yield must be non-negative, got {self.annual_yield}"
            )
        if self.total_value_locked is not None and self.total_value_locked < 0:
            raise InvalidArgumentError(
                "total_value_locked must be non-negative, "
                f"got {self.total_value_locked}"
            )
        if self.age_in_days is not None and self.age_in_days < 0:
            raise InvalidArgumentError(
                f"age_in_days must be non-negative, got {self.age_in_days}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OpportunityRecord:
        """Build a record from a collector payload.

        Accepts both snake_case and the collector's short keys
        (``apy``, ``tvl``, ``protocol``).  Unknown keys raise
        ``InvalidArgumentError``.
        """
        unknown = [k for k in data if k not in _OPPORTUNITY_KEYS]
        if unknown:
            raise InvalidArgumentError(
                f"Unknown opportunity field(s): {', '.join(sorted(unknown))}"
            )
        kwargs = {_OPPORTUNITY_KEYS[k]: v for k, v in data.items()}
        for required in ("name", "protocol_family", "annual_yield"):
            if required not in kwargs:
                raise InvalidArgumentError(
                    f"Opportunity is missing required field '{required}'"
                )
        kwargs["annual_yield"] = float(kwargs["annual_yield"])
        if kwargs.get("total_value_locked") is not None:
            kwargs["total_value_locked"] = float(kwargs["total_value_locked"])
        if kwargs.get("age_in_days") is not None:
            kwargs["age_in_days"] = int(kwargs["age_in_days"])
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "protocol_family": self.protocol_family,
            "annual_yield": self.annual_yield,
            "total_value_locked": self.total_value_locked,
            "audited": self.audited,
            "age_in_days": self.age_in_days,
            "token": self.token,
        }


# ── Strategy profile ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class StrategyProfile:
    """A named risk / allocation policy."""

    name: str
    risk_tolerance: float
    min_annual_yield: float
    max_single_allocation_share: float
    allowed_protocol_families: frozenset[str]
    rebalance_frequency: str = "daily"  # informational only
    display_name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.risk_tolerance <= 1:
            raise ConfigurationError(
                f"risk_tolerance must be in [0, 1], got {self.risk_tolerance}"
            )
        if self.min_annual_yield < 0:
            raise ConfigurationError(
                f"min_annual_yield must be non-negative, got {self.min_annual_yield}"
            )
        if not 0 < self.max_single_allocation_share <= 1:
            raise ConfigurationError(
                "max_single_allocation_share must be in (0, 1], "
                f"got {self.max_single_allocation_share}"
            )
        if self.rebalance_frequency not in REBALANCE_FREQUENCIES:
            raise ConfigurationError(
                f"rebalance_frequency must be one of {REBALANCE_FREQUENCIES}, "
                f"got {self.rebalance_frequency!r}"
            )
        # Family matching is case-insensitive.
        object.__setattr__(
            self,
            "allowed_protocol_families",
            frozenset(f.lower() for f in self.allowed_protocol_families),
        )

    def allows(self, opportunity: OpportunityRecord) -> bool:
        """``True`` if *opportunity* passes the yield floor and allow-list."""
        return (
            opportunity.annual_yield >= self.min_annual_yield
            and opportunity.protocol_family.lower() in self.allowed_protocol_families
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StrategyProfile:
        """Build a profile from a mapping, rejecting unknown keys."""
        known = set(cls.__dataclass_fields__)
        unknown = [k for k in data if k not in known]
        if unknown:
            raise ConfigurationError(
                f"Unknown strategy field(s): {', '.join(sorted(unknown))}"
            )
        kwargs = dict(data)
        if "allowed_protocol_families" in kwargs:
            kwargs["allowed_protocol_families"] = frozenset(
                kwargs["allowed_protocol_families"]
            )
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid strategy profile: {exc}") from None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "risk_tolerance": self.risk_tolerance,
            "min_annual_yield": self.min_annual_yield,
            "max_single_allocation_share": self.max_single_allocation_share,
            "allowed_protocol_families": sorted(self.allowed_protocol_families),
            "rebalance_frequency": self.rebalance_frequency,
        }


# ── Market snapshot ──────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string, epoch milliseconds, or datetime.

    Naive datetimes are taken to be UTC.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidArgumentError(
                f"Unparseable timestamp {value!r}"
            ) from None
    else:
        raise InvalidArgumentError(f"Unsupported timestamp type: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class MarketSnapshot:
    """One time-step's market state fed to the simulation engine."""

    timestamp: datetime
    prices: Mapping[str, float] = field(default_factory=dict)
    protocols: tuple[OpportunityRecord, ...] = ()
    momentum: Optional[float] = None

    def price_of(self, protocol: str) -> Optional[float]:
        """Current price for *protocol*, or ``None`` if it is not quoted."""
        return self.prices.get(protocol)

    def find(self, protocol: str) -> Optional[OpportunityRecord]:
        """First opportunity record named *protocol*, or ``None``."""
        for record in self.protocols:
            if record.name == protocol:
                return record
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MarketSnapshot:
        """Build a snapshot from ``{timestamp, prices, protocols, signals?}``."""
        if "timestamp" not in data:
            raise InvalidArgumentError("Snapshot is missing 'timestamp'")
        signals = data.get("signals") or {}
        if not isinstance(signals, Mapping):
            raise InvalidArgumentError(
                f"Snapshot 'signals' must be a mapping, got {type(signals).__name__}"
            )
        momentum = signals.get("momentum")
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            prices={k: float(v) for k, v in (data.get("prices") or {}).items()},
            protocols=tuple(
                OpportunityRecord.from_dict(p) for p in data.get("protocols") or []
            ),
            momentum=float(momentum) if momentum is not None else None,
        )
