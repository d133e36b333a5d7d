#!/usr/bin/env python3
import asyncio
import contextlib
import json
import logging
import time
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

import aiohttp

from analysis.models import TokenPrice
from constants import (
    BINANCE_API_BASE_URL,
    BINANCE_SYMBOL_MAP,
    BINANCE_WS_BASE_URL,
    FEED_MAX_RECONNECTS,
    FEED_RECONNECT_DELAY,
    QUOTE_CURRENCY,
)
from errors import FeedConnectionError, NoDataError

logger = logging.getLogger(__name__)


class BinancePriceFeed:
    """Live token prices from Binance 24h tickers.

    ``connect`` installs a REST snapshot and then follows the websocket ticker
    stream. Each tick builds a new price map and swaps the reference, so
    readers always see a complete snapshot.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        symbol_map: Optional[Dict[str, str]] = None,
        rest_base_url: str = BINANCE_API_BASE_URL,
        ws_base_url: str = BINANCE_WS_BASE_URL,
        max_reconnects: int = FEED_MAX_RECONNECTS,
        reconnect_delay: float = FEED_RECONNECT_DELAY,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.session = session
        self.symbol_map = dict(symbol_map or BINANCE_SYMBOL_MAP)
        self.rest_base_url = rest_base_url
        self.ws_base_url = ws_base_url
        self.max_reconnects = max_reconnects
        self.reconnect_delay = reconnect_delay
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._clock = clock
        self._prices: Optional[Mapping[str, TokenPrice]] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closing = False

    @property
    def is_streaming(self) -> bool:
        return self._stream_task is not None and not self._stream_task.done()

    async def connect(self) -> None:
        """Fetches a snapshot and starts streaming; raises FeedConnectionError on failure."""
        self._closing = False
        snapshot = await self.fetch_snapshot()
        if not snapshot:
            raise FeedConnectionError("Binance returned no prices for the configured symbols")
        self._install(snapshot)
        logger.info("Price feed connected with %d symbols", len(snapshot))

        if not self.is_streaming:
            self._stream_task = asyncio.create_task(self._stream())

    async def fetch_snapshot(self) -> Dict[str, TokenPrice]:
        url = f"{self.rest_base_url}/ticker/24hr"
        params = {'symbols': json.dumps(sorted(self.symbol_map), separators=(',', ':'))}
        try:
            async with self.session.get(url, params=params, timeout=self.timeout) as response:
                response.raise_for_status()
                payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise FeedConnectionError(f"Binance ticker snapshot failed: {exc}") from exc

        now = self._clock()
        prices: Dict[str, TokenPrice] = {}
        for ticker in payload or []:
            token_price = self._parse_ticker(
                ticker.get('symbol'),
                ticker.get('lastPrice'),
                ticker.get('priceChangePercent'),
                ticker.get('quoteVolume'),
                now,
            )
            if token_price:
                prices[token_price.symbol] = token_price
        return prices

    def current_prices(self) -> Dict[str, float]:
        return {symbol: tick.price for symbol, tick in self.snapshot().items()}

    def snapshot(self) -> Mapping[str, TokenPrice]:
        prices = self._prices
        if prices is None:
            raise NoDataError("No price tick has been received yet")
        return prices

    async def disconnect(self) -> None:
        """Stops the stream. The last snapshot stays readable and ages out by timestamp."""
        self._closing = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._stream_task is not None:
            self._stream_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stream_task
            self._stream_task = None
        logger.info("Price feed disconnected")

    def handle_message(self, payload: dict) -> None:
        # Combined streams wrap the ticker in {"stream": ..., "data": {...}}.
        data = payload.get('data', payload)
        token_price = self._parse_ticker(data.get('s'), data.get('c'), data.get('P'), data.get('q'), self._clock())
        if token_price is None:
            return
        updated = dict(self._prices or {})
        updated[token_price.symbol] = token_price
        self._install(updated)

    def _install(self, prices: Dict[str, TokenPrice]) -> None:
        updated = dict(prices)
        newest = max(tick.last_update for tick in updated.values())
        updated[QUOTE_CURRENCY] = TokenPrice(
            symbol=QUOTE_CURRENCY,
            price=1.0,
            change_24h=0.0,
            volume_24h=0.0,
            last_update=newest,
        )
        self._prices = MappingProxyType(updated)

    def _parse_ticker(self, pair, price, change, volume, now: float) -> Optional[TokenPrice]:
        symbol = self.symbol_map.get(pair)
        if symbol is None:
            return None
        try:
            value = float(price)
        except (TypeError, ValueError):
            return None
        if value <= 0:
            return None
        return TokenPrice(
            symbol=symbol,
            price=value,
            change_24h=_to_float(change),
            volume_24h=_to_float(volume),
            last_update=now,
        )

    def _stream_url(self) -> str:
        streams = '/'.join(f"{pair.lower()}@ticker" for pair in sorted(self.symbol_map))
        return f"{self.ws_base_url}/stream?streams={streams}"

    async def _stream(self) -> None:
        attempts = 0
        while not self._closing:
            try:
                async with self.session.ws_connect(self._stream_url(), heartbeat=30) as ws:
                    self._ws = ws
                    attempts = 0
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            try:
                                self.handle_message(json.loads(msg.data))
                            except (ValueError, AttributeError) as exc:
                                logger.debug("Ignoring malformed ticker message: %s", exc)
                        elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                            break
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                logger.warning("Price stream error: %s", exc)
            finally:
                self._ws = None

            if self._closing:
                break
            attempts += 1
            if attempts > self.max_reconnects:
                logger.error("Price stream gave up after %d reconnect attempts", self.max_reconnects)
                break
            logger.info("Reconnecting price stream in %.1fs (attempt %d/%d)", self.reconnect_delay, attempts, self.max_reconnects)
            await asyncio.sleep(self.reconnect_delay)


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
