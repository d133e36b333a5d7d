#!/usr/bin/env python3
"""Catalog of named risk profiles used by the scanner and execution engine."""
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping

from errors import UnknownStrategy


class RiskLevel(IntEnum):
    """Risk levels, ordered from most to least conservative."""
    ULTRA_SAFE = 1
    CONSERVATIVE = 2
    BALANCED = 3
    AGGRESSIVE = 4
    ULTRA_AGGRESSIVE = 5


@dataclass(frozen=True)
class StrategyProfile:
    key: str
    name: str
    risk_level: RiskLevel
    stop_loss_pct: float
    take_profit_pct: float
    max_hold_time_ms: int
    max_drawdown_pct: float
    dynamic_sizing: bool
    multi_pair_arbitrage: bool
    # Probability that the back-run lands, fixed per profile.
    success_probability: float
    # Fraction of the capital cap deployed when sizing dynamically.
    position_scale: float
    risk_score: int


STRATEGIES: Mapping[str, StrategyProfile] = MappingProxyType({
    profile.key: profile
    for profile in (
        StrategyProfile(
            key='ULTRA_SAFE',
            name='Ultra Safe - 2-5% Daily ROI',
            risk_level=RiskLevel.ULTRA_SAFE,
            stop_loss_pct=0.2,
            take_profit_pct=0.8,
            max_hold_time_ms=30_000,
            max_drawdown_pct=1.0,
            dynamic_sizing=False,
            multi_pair_arbitrage=False,
            success_probability=0.85,
            position_scale=1.0,
            risk_score=20,
        ),
        StrategyProfile(
            key='CONSERVATIVE',
            name='Conservative - 5-10% Daily ROI',
            risk_level=RiskLevel.CONSERVATIVE,
            stop_loss_pct=0.5,
            take_profit_pct=1.2,
            max_hold_time_ms=60_000,
            max_drawdown_pct=2.0,
            dynamic_sizing=True,
            multi_pair_arbitrage=True,
            success_probability=0.80,
            position_scale=0.25,
            risk_score=35,
        ),
        StrategyProfile(
            key='BALANCED',
            name='Balanced - 10-20% Daily ROI',
            risk_level=RiskLevel.BALANCED,
            stop_loss_pct=1.0,
            take_profit_pct=2.0,
            max_hold_time_ms=120_000,
            max_drawdown_pct=3.0,
            dynamic_sizing=True,
            multi_pair_arbitrage=True,
            success_probability=0.75,
            position_scale=0.5,
            risk_score=50,
        ),
        StrategyProfile(
            key='AGGRESSIVE',
            name='Aggressive - 20-35% Daily ROI',
            risk_level=RiskLevel.AGGRESSIVE,
            stop_loss_pct=2.0,
            take_profit_pct=3.5,
            max_hold_time_ms=300_000,
            max_drawdown_pct=5.0,
            dynamic_sizing=True,
            multi_pair_arbitrage=True,
            success_probability=0.70,
            position_scale=0.75,
            risk_score=75,
        ),
        StrategyProfile(
            key='ULTRA_AGGRESSIVE',
            name='Ultra Aggressive - 35%+ Daily ROI',
            risk_level=RiskLevel.ULTRA_AGGRESSIVE,
            stop_loss_pct=3.0,
            take_profit_pct=7.0,
            max_hold_time_ms=600_000,
            max_drawdown_pct=10.0,
            dynamic_sizing=True,
            multi_pair_arbitrage=True,
            success_probability=0.65,
            position_scale=1.0,
            risk_score=95,
        ),
    )
})


def get_strategy(name: str) -> StrategyProfile:
    """Looks up a profile by key, case-insensitively."""
    try:
        return STRATEGIES[name.upper()]
    except KeyError:
        raise UnknownStrategy(f"Unknown strategy '{name}'. Choose one of: {', '.join(STRATEGIES)}") from None


def trade_notional(strategy: StrategyProfile, *, capital: float, max_position_size_pct: float, static_trade_size: float) -> float:
    """Returns the SOL notional for one trade under the strategy's sizing rule."""
    cap = capital * max_position_size_pct / 100
    if strategy.dynamic_sizing:
        return cap * strategy.position_scale
    return min(static_trade_size, cap)
