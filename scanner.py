# scanner.py
import asyncio
import logging
import random
import time
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from analysis.analyzer import OpportunityAnalyzer, to_atomic
from analysis.models import NetworkConditions, Opportunity, Quote, QuoteRequest, TokenPrice
from analysis.network_conditions import assess_network_conditions
from config import AppConfig
from constants import DENOMINATION_TOKEN, TOKEN_MINTS
from errors import QuoteServiceUnreachable, QuoteUnavailable
from services.jupiter_client import JupiterQuoteClient
from services.solana_rpc_client import SolanaRpcClient
from services.synthetic_quotes import SyntheticQuoteGenerator
from strategies import StrategyProfile, trade_notional

logger = logging.getLogger(__name__)


class OpportunityScanner:
    """Turns the current price snapshot and swap quotes into ranked Opportunities.

    One ``scan`` call produces one finite batch. Failures are isolated per
    pair; a connection-level quote failure pauses the quote service for the
    rest of the batch and the remaining pairs fall back to synthetic quotes.
    """

    def __init__(
        self,
        config: AppConfig,
        price_feed,
        fee_source: SolanaRpcClient,
        quote_client: Optional[JupiterQuoteClient] = None,
        *,
        analyzer: Optional[OpportunityAnalyzer] = None,
        synthetic_quotes: Optional[SyntheticQuoteGenerator] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.price_feed = price_feed
        self.fee_source = fee_source
        self.quote_client = quote_client
        self.analyzer = analyzer or OpportunityAnalyzer(config)
        self.rng = rng or random.Random()
        self.synthetic_quotes = synthetic_quotes or SyntheticQuoteGenerator(self.rng)
        self._clock = clock
        self._quote_service_paused = False
        self.last_gas_estimate: Optional[float] = None
        self.last_conditions: Optional[NetworkConditions] = None
        self.last_synthetic_count = 0

    def candidate_pairs(self, strategy: Optional[StrategyProfile] = None) -> List[Tuple[str, str]]:
        """Adjacent pairs over the token universe, wrapping around at the end."""
        tokens = list(self.config.target_tokens)
        count = len(tokens)
        pairs = []
        for i in range(min(self.config.max_pairs, count)):
            pair = (tokens[i], tokens[(i + 1) % count])
            if pair[0] == pair[1]:
                continue
            # Single-pair strategies only trade directly against SOL.
            if strategy is not None and not strategy.multi_pair_arbitrage and DENOMINATION_TOKEN not in pair:
                continue
            pairs.append(pair)
        return pairs

    async def scan(self, strategy: StrategyProfile) -> List[Opportunity]:
        snapshot = self.price_feed.snapshot()
        prices = self._fresh_prices(snapshot)
        if DENOMINATION_TOKEN not in prices:
            logger.warning("No fresh %s price; skipping scan", DENOMINATION_TOKEN)
            return []

        gas_estimate = await self.fee_source.get_gas_estimate()
        self.last_gas_estimate = gas_estimate
        if gas_estimate > self.config.max_gas_price:
            logger.warning(
                "Gas estimate %.6f SOL exceeds max %.6f SOL; skipping scan", gas_estimate, self.config.max_gas_price
            )
            return []

        conditions = await self._assess_conditions(snapshot)
        self.last_conditions = conditions
        self._quote_service_paused = False
        self.last_synthetic_count = 0

        opportunities: List[Opportunity] = []
        for input_token, output_token in self.candidate_pairs(strategy):
            try:
                opportunity = await self._scan_pair(
                    input_token, output_token, prices, strategy, gas_estimate, conditions
                )
            except Exception as exc:
                logger.warning("Error scanning %s/%s: %s", input_token, output_token, exc)
                continue
            if opportunity is not None:
                opportunities.append(opportunity)

        ranked = self.analyzer.rank(opportunities)
        logger.info(
            "Scan found %d opportunities (%d kept, gas %.6f SOL, congestion %s)",
            len(opportunities), len(ranked), gas_estimate, conditions.congestion_level.value,
        )
        return ranked

    async def _scan_pair(
        self,
        input_token: str,
        output_token: str,
        prices: Dict[str, float],
        strategy: StrategyProfile,
        gas_estimate: float,
        conditions: NetworkConditions,
    ) -> Optional[Opportunity]:
        if input_token not in prices or output_token not in prices:
            logger.debug("Skipping %s/%s: missing or stale price", input_token, output_token)
            return None
        if input_token not in TOKEN_MINTS or output_token not in TOKEN_MINTS:
            logger.debug("Skipping %s/%s: unknown mint", input_token, output_token)
            return None

        notional_sol = trade_notional(
            strategy,
            capital=self.config.capital,
            max_position_size_pct=self.config.max_position_size_pct,
            static_trade_size=self.config.static_trade_size,
        )
        input_amount = notional_sol * prices[DENOMINATION_TOKEN] / prices[input_token]
        request = QuoteRequest(
            input_token=input_token,
            output_token=output_token,
            input_mint=TOKEN_MINTS[input_token],
            output_mint=TOKEN_MINTS[output_token],
            amount=to_atomic(input_amount, input_token),
            max_slippage_bps=int(round(self.config.slippage_tolerance_pct * 100)),
        )
        if request.amount <= 0:
            return None

        quote = await self._fetch_quote(request, prices, conditions)
        if quote is None:
            return None

        return self.analyzer.evaluate(
            input_token=input_token,
            output_token=output_token,
            quote=quote,
            prices=prices,
            gas_estimate=gas_estimate,
            conditions=conditions,
            denomination=DENOMINATION_TOKEN,
        )

    async def _fetch_quote(
        self,
        request: QuoteRequest,
        prices: Mapping[str, float],
        conditions: NetworkConditions,
    ) -> Optional[Quote]:
        if self.quote_client is not None and not self._quote_service_paused:
            try:
                return await asyncio.wait_for(
                    self.quote_client.get_quote(request), timeout=self.config.quote_timeout
                )
            except QuoteServiceUnreachable as exc:
                self._quote_service_paused = True
                logger.warning("Quote service unreachable, using synthetic quotes for this cycle: %s", exc)
            except asyncio.TimeoutError:
                logger.info("Quote for %s->%s timed out", request.input_token, request.output_token)
            except QuoteUnavailable as exc:
                logger.info("Quote unavailable for %s->%s: %s", request.input_token, request.output_token, exc)

        if not self.config.synthetic_quotes:
            return None
        self.last_synthetic_count += 1
        return self.synthetic_quotes.generate(request, prices, conditions)

    async def _assess_conditions(self, snapshot: Mapping[str, TokenPrice]) -> NetworkConditions:
        slot_times: List[float] = []
        get_slot_times = getattr(self.fee_source, 'get_slot_times_ms', None)
        if get_slot_times is not None:
            slot_times = await get_slot_times()
        denomination = snapshot.get(DENOMINATION_TOKEN)
        return assess_network_conditions(
            self.rng,
            slot_times_ms=slot_times,
            priority_fees=getattr(self.fee_source, 'last_priority_fees', ()),
            volume_24h_usd=denomination.volume_24h if denomination else None,
        )

    def _fresh_prices(self, snapshot: Mapping[str, TokenPrice]) -> Dict[str, float]:
        now = self._clock()
        fresh = {}
        for symbol, tick in snapshot.items():
            if tick.price <= 0:
                continue
            if now - tick.last_update > self.config.price_stale_after:
                continue
            fresh[symbol] = tick.price
        return fresh
