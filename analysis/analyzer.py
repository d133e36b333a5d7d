#!/usr/bin/env python3
import time
import uuid
from typing import Iterable, List, Optional

from analysis.models import CongestionLevel, NetworkConditions, Opportunity, Quote
from config import AppConfig
from constants import (
    CONFIDENCE_BASE,
    CONFIDENCE_MAX,
    CONFIDENCE_MIN,
    SYNTHETIC_CONFIDENCE_PENALTY,
    TOKEN_DECIMALS,
)


def to_atomic(amount: float, token: str) -> int:
    return int(amount * 10 ** TOKEN_DECIMALS[token])


def from_atomic(amount: int, token: str) -> float:
    return amount / 10 ** TOKEN_DECIMALS[token]


class OpportunityAnalyzer:
    """Prices, scores and filters quotes into Opportunities."""

    def __init__(self, config: AppConfig):
        self.config = config

    def evaluate(
        self,
        *,
        input_token: str,
        output_token: str,
        quote: Quote,
        prices: dict,
        gas_estimate: float,
        conditions: Optional[NetworkConditions] = None,
        denomination: str = 'SOL',
    ) -> Optional[Opportunity]:
        """Builds an Opportunity from one quote, or returns None if it is not worth taking."""
        price_in = prices[input_token]
        price_out = prices[output_token]
        price_denom = prices[denomination]

        input_amount = from_atomic(quote.in_amount, input_token)
        output_amount = from_atomic(quote.out_amount, output_token)

        price_impact = self.price_impact_pct(
            input_amount, output_amount, price_in, price_out, reported=quote.price_impact_pct
        )
        profit = self.profit_potential(
            input_amount, output_amount, price_in, price_out, price_denom, gas_estimate
        )
        confidence = self.confidence(
            price_impact, len(quote.route), conditions=conditions, synthetic=quote.synthetic
        )

        if not self.is_acceptable(profit, gas_estimate):
            return None

        return Opportunity(
            id=uuid.uuid4().hex[:12],
            input_token=input_token,
            output_token=output_token,
            input_amount=input_amount,
            estimated_output=output_amount,
            price_impact_pct=price_impact,
            confidence=confidence,
            profit_potential=profit,
            gas_estimate=gas_estimate,
            quote_route=tuple(quote.route),
            synthetic=quote.synthetic,
            created_at=time.time(),
        )

    @staticmethod
    def price_impact_pct(
        input_amount: float,
        output_amount: float,
        price_in: float,
        price_out: float,
        reported: Optional[float] = None,
    ) -> float:
        """Shortfall of the quoted output against the market-implied output, in percent."""
        if input_amount <= 0 or price_in <= 0 or price_out <= 0:
            return max(0.0, reported or 0.0)
        expected_out = input_amount * price_in / price_out
        return max(0.0, (expected_out - output_amount) / expected_out * 100)

    def profit_potential(
        self,
        input_amount: float,
        output_amount: float,
        price_in: float,
        price_out: float,
        price_denom: float,
        gas_estimate: float,
    ) -> float:
        """Output value minus input value minus both swap fees minus gas, all in SOL."""
        input_value = input_amount * price_in / price_denom
        output_value = output_amount * price_out / price_denom
        fees = 2 * self.config.dex_fee_pct / 100 * input_value
        return output_value - input_value - fees - gas_estimate

    @staticmethod
    def confidence(
        price_impact_pct: float,
        route_hops: int,
        *,
        conditions: Optional[NetworkConditions] = None,
        synthetic: bool = False,
    ) -> float:
        score = CONFIDENCE_BASE

        if price_impact_pct > 3:
            score -= 30
        elif price_impact_pct > 1.5:
            score -= 20
        elif price_impact_pct > 0.8:
            score -= 10
        elif price_impact_pct < 0.3:
            score += 10

        if route_hops <= 1:
            score += 15
        elif route_hops > 3:
            score -= 20
        else:
            score -= 5

        if conditions is not None:
            if conditions.congestion_level is CongestionLevel.HIGH:
                score -= 5
            score -= 10 * conditions.competition_level
            score += 10 * (conditions.liquidity_depth - 0.5)

        if synthetic:
            score -= SYNTHETIC_CONFIDENCE_PENALTY

        return max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, score))

    def is_acceptable(self, profit_potential: float, gas_estimate: float) -> bool:
        return profit_potential > gas_estimate + self.config.min_profit_threshold

    def rank(self, opportunities: Iterable[Opportunity], top_k: Optional[int] = None) -> List[Opportunity]:
        """Sorts by profit * confidence, best first, and keeps the top K."""
        limit = self.config.top_k if top_k is None else top_k
        ranked = sorted(opportunities, key=lambda opp: opp.score, reverse=True)
        return ranked[:limit]
