"""Strategy registry — maps strategy names to profiles.

The registry is an explicit value handed to the allocation and simulation
engines; there is no module-level mutable catalog.
"""

from typing import Iterable, Iterator

from yieldforge.errors import ConfigurationError
from yieldforge.strategy.models import StrategyProfile


BUILTIN_PROFILES: tuple[StrategyProfile, ...] = (
    StrategyProfile(
        name="conservative",
        display_name="Conservative Yield",
        description="Low risk, stable returns",
        risk_tolerance=0.3,
        min_annual_yield=0.02,
        max_single_allocation_share=0.25,
        allowed_protocol_families=frozenset({"compound", "aave"}),
        rebalance_frequency="weekly",
    ),
    StrategyProfile(
        name="moderate",
        display_name="Moderate Growth",
        description="Balanced risk-reward",
        risk_tolerance=0.6,
        min_annual_yield=0.05,
        max_single_allocation_share=0.4,
        allowed_protocol_families=frozenset({"compound", "aave", "curve", "yearn"}),
        rebalance_frequency="daily",
    ),
    StrategyProfile(
        name="aggressive",
        display_name="High Yield Hunter",
        description="Maximum returns, higher risk",
        risk_tolerance=0.9,
        min_annual_yield=0.1,
        max_single_allocation_share=0.6,
        allowed_protocol_families=frozenset({"yearn", "curve", "uniswap-v2"}),
        rebalance_frequency="hourly",
    ),
)

REQUIRED_PROFILE_NAMES = tuple(p.name for p in BUILTIN_PROFILES)


class StrategyRegistry:
    """Read-only lookup of strategy profiles by name.

    Args:
        profiles: Profiles to register.  Must include every built-in name.

    Raises:
        ConfigurationError: On duplicate names or a missing built-in.
    """

    def __init__(self, profiles: Iterable[StrategyProfile]) -> None:
        self._profiles: dict[str, StrategyProfile] = {}
        for profile in profiles:
            if profile.name in self._profiles:
                raise ConfigurationError(
                    f"Duplicate strategy profile '{profile.name}'"
                )
            self._profiles[profile.name] = profile

        missing = [n for n in REQUIRED_PROFILE_NAMES if n not in self._profiles]
        if missing:
            raise ConfigurationError(
                f"Missing built-in strategy profile(s): {', '.join(missing)}"
            )

    def get(self, name: str) -> StrategyProfile:
        """Look up a profile by name.

        Raises ``ConfigurationError`` if the name is not registered.
        """
        if name not in self._profiles:
            raise ConfigurationError(
                f"Unknown strategy '{name}'. "
                f"Available: {', '.join(self._profiles.keys())}"
            )
        return self._profiles[name]

    def names(self) -> list[str]:
        return list(self._profiles)

    def profiles(self) -> list[StrategyProfile]:
        return list(self._profiles.values())

    def __contains__(self, name: object) -> bool:
        return name in self._profiles

    def __iter__(self) -> Iterator[StrategyProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


def default_registry(
    extra: Iterable[StrategyProfile] = (),
) -> StrategyRegistry:
    """Build a registry holding the built-in profiles plus *extra*."""
    return StrategyRegistry([*BUILTIN_PROFILES, *extra])
