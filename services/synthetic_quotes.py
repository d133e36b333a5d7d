#!/usr/bin/env python3
"""Degraded-mode quote generator used when the live quote service fails.

Quotes are priced off the current feed and perturbed by a small market model:
congestion, competition and liquidity decide whether the simulated swap
captures a sandwich edge or just pays normal trading costs. Every quote it
returns is flagged ``synthetic``.
"""
import random
from typing import Mapping, Optional

from analysis.analyzer import from_atomic, to_atomic
from analysis.models import CongestionLevel, NetworkConditions, Quote, QuoteRequest

MAX_PROFITABLE_PROBABILITY = 0.45


class SyntheticQuoteGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def profitable_probability(self, conditions: NetworkConditions, notional_usd: float) -> float:
        probability = 0.15
        if conditions.congestion_level is CongestionLevel.HIGH:
            probability += 0.10
        elif conditions.congestion_level is CongestionLevel.LOW:
            probability += 0.05
        probability += conditions.liquidity_depth * 0.15
        probability -= conditions.competition_level * 0.20
        if 100 <= notional_usd <= 1000:
            probability += 0.05
        return max(0.0, min(probability, MAX_PROFITABLE_PROBABILITY))

    def price_impact(self, notional_usd: float, liquidity_depth: float) -> float:
        """Own-trade price impact as a fraction."""
        if notional_usd < 100:
            impact = 0.0001 + self.rng.random() * 0.0004
        elif notional_usd < 1000:
            impact = 0.0005 + self.rng.random() * 0.0010
        elif notional_usd < 10000:
            impact = 0.0015 + self.rng.random() * 0.0025
        else:
            impact = 0.004 + self.rng.random() * 0.006
        return impact / max(liquidity_depth, 0.1)

    @staticmethod
    def mev_advantage(conditions: NetworkConditions) -> float:
        advantage = 0.001
        if conditions.congestion_level is CongestionLevel.HIGH:
            advantage += 0.002
        if conditions.competition_level < 0.3:
            advantage += 0.0015
        return advantage

    @staticmethod
    def additional_costs(conditions: NetworkConditions) -> float:
        costs = 0.0005
        if conditions.congestion_level is CongestionLevel.HIGH:
            costs += 0.0015
        elif conditions.congestion_level is CongestionLevel.MEDIUM:
            costs += 0.0008
        return costs

    def generate(
        self,
        request: QuoteRequest,
        prices: Mapping[str, float],
        conditions: NetworkConditions,
    ) -> Quote:
        price_in = prices[request.input_token]
        price_out = prices[request.output_token]
        input_amount = from_atomic(request.amount, request.input_token)
        notional_usd = input_amount * price_in
        expected_out = input_amount * price_in / price_out

        impact = self.price_impact(notional_usd, conditions.liquidity_depth)
        if self.rng.random() < self.profitable_probability(conditions, notional_usd):
            # Victim's price move captured by the sandwich, thinned by competition.
            victim_move = (0.005 + self.rng.random() * 0.015) * (1.5 - conditions.competition_level)
            multiplier = 1 + victim_move + self.mev_advantage(conditions) - impact
            label = f"Synthetic MEV Route ({conditions.congestion_level.value})"
        else:
            slippage = request.max_slippage_bps / 10000 * self.rng.random()
            multiplier = 1 - impact - self.additional_costs(conditions) - slippage
            label = 'Synthetic Standard Route'

        out_amount = max(0, to_atomic(expected_out * multiplier, request.output_token))
        return Quote(
            in_amount=request.amount,
            out_amount=out_amount,
            price_impact_pct=impact * 100,
            route=(label,),
            synthetic=True,
        )
