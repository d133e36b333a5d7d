#!/usr/bin/env python3
import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from analysis.models import Quote, QuoteRequest
from constants import JUPITER_QUOTE_API_URL
from errors import QuoteServiceUnreachable, QuoteUnavailable

logger = logging.getLogger(__name__)


class JupiterQuoteClient:
    """Fetches swap quotes from the Jupiter v6 quote API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str = JUPITER_QUOTE_API_URL,
        timeout: float = 5.0,
    ):
        self.session = session
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_quote(self, request: QuoteRequest) -> Quote:
        params = {
            'inputMint': request.input_mint,
            'outputMint': request.output_mint,
            'amount': str(request.amount),
            'slippageBps': str(request.max_slippage_bps),
            'onlyDirectRoutes': 'false',
        }
        try:
            async with self.session.get(self.base_url, params=params, timeout=self.timeout) as response:
                if response.status != 200:
                    raise QuoteUnavailable(
                        f"Quote API returned HTTP {response.status} for {request.input_token}->{request.output_token}"
                    )
                data = await response.json()
        except (aiohttp.ClientConnectionError, OSError) as exc:
            raise QuoteServiceUnreachable(f"Quote API unreachable: {exc}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise QuoteUnavailable(f"Quote request failed: {exc}") from exc

        return self._parse_quote(data, request)

    @staticmethod
    def _parse_quote(data, request: QuoteRequest) -> Quote:
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict) or not data.get('inAmount') or not data.get('outAmount'):
            raise QuoteUnavailable(f"Malformed quote for {request.input_token}->{request.output_token}")

        try:
            in_amount = int(data['inAmount'])
            out_amount = int(data['outAmount'])
            # Jupiter reports impact as a fraction.
            price_impact = float(data.get('priceImpactPct') or 0.0) * 100
        except (TypeError, ValueError) as exc:
            raise QuoteUnavailable(f"Unparseable quote amounts: {exc}") from exc

        if in_amount <= 0 or out_amount <= 0:
            raise QuoteUnavailable("Quote returned an empty swap")

        route = tuple(_route_label(step) for step in data.get('routePlan') or [])
        return Quote(
            in_amount=in_amount,
            out_amount=out_amount,
            price_impact_pct=price_impact,
            route=route or ('direct',),
            synthetic=False,
        )


def _route_label(step: Dict) -> str:
    swap_info: Optional[Dict] = step.get('swapInfo') if isinstance(step, dict) else None
    if not swap_info:
        return 'unknown'
    return swap_info.get('label') or swap_info.get('ammKey') or 'unknown'
