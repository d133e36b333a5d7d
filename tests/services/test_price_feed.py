import json

import aiohttp
import pytest

from errors import FeedConnectionError, NoDataError
from services.price_feed import BinancePriceFeed

SYMBOL_MAP = {'SOLUSDT': 'SOL', 'USDCUSDT': 'USDC', 'RAYUSDT': 'RAY'}


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        return None

    async def json(self):
        return self._payload


class FakeSession:
    def __init__(self, payload=None, error=None):
        self._payload = payload
        self._error = error
        self.calls = []
        self.ws_attempts = 0

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if self._error is not None:
            raise self._error
        return FakeResponse(self._payload)

    def ws_connect(self, url, **kwargs):
        self.ws_attempts += 1
        raise aiohttp.ClientConnectionError("stream disabled in tests")


class Clock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _feed(session, clock=None):
    return BinancePriceFeed(
        session,
        symbol_map=SYMBOL_MAP,
        rest_base_url='http://mock-binance',
        ws_base_url='ws://mock-binance',
        max_reconnects=0,
        reconnect_delay=0.0,
        clock=clock or Clock(),
    )


TICKERS = [
    {'symbol': 'SOLUSDT', 'lastPrice': '185.67', 'priceChangePercent': '2.5', 'quoteVolume': '900000000'},
    {'symbol': 'USDCUSDT', 'lastPrice': '1.0001', 'priceChangePercent': '0.01', 'quoteVolume': '1000'},
    {'symbol': 'RAYUSDT', 'lastPrice': '0', 'priceChangePercent': '0', 'quoteVolume': '0'},
    {'symbol': 'BTCUSDT', 'lastPrice': '60000', 'priceChangePercent': '1', 'quoteVolume': '1'},
]


def test_snapshot_before_any_tick_raises():
    feed = _feed(FakeSession())
    with pytest.raises(NoDataError):
        feed.snapshot()


@pytest.mark.asyncio
async def test_connect_installs_snapshot_with_usdt_numeraire():
    session = FakeSession(TICKERS)
    feed = _feed(session)

    await feed.connect()
    prices = feed.snapshot()
    await feed.disconnect()

    assert set(prices) == {'SOL', 'USDC', 'USDT'}
    assert prices['SOL'].price == 185.67
    assert prices['SOL'].change_24h == 2.5
    assert prices['SOL'].volume_24h == 900_000_000.0
    assert prices['USDT'].price == 1.0
    assert prices['USDT'].last_update == 1_000.0

    url, params = session.calls[0]
    assert url == 'http://mock-binance/ticker/24hr'
    assert json.loads(params['symbols']) == sorted(SYMBOL_MAP)


@pytest.mark.asyncio
async def test_connect_fails_without_prices():
    feed = _feed(FakeSession([]))
    with pytest.raises(FeedConnectionError):
        await feed.connect()
    assert not feed.is_streaming


@pytest.mark.asyncio
async def test_connect_fails_on_http_error():
    feed = _feed(FakeSession(error=aiohttp.ClientConnectionError("refused")))
    with pytest.raises(FeedConnectionError):
        await feed.connect()


@pytest.mark.asyncio
async def test_stream_messages_replace_the_snapshot():
    clock = Clock()
    feed = _feed(FakeSession(TICKERS), clock=clock)
    await feed.connect()
    before = feed.snapshot()

    clock.now = 1_005.0
    feed.handle_message({'stream': 'solusdt@ticker', 'data': {'s': 'SOLUSDT', 'c': '190.10', 'P': '3.1', 'q': '1'}})
    after = feed.snapshot()
    await feed.disconnect()

    assert before['SOL'].price == 185.67
    assert after['SOL'].price == 190.10
    assert after['SOL'].last_update == 1_005.0
    assert after['USDC'] is before['USDC']
    assert after['USDT'].last_update == 1_005.0
    assert feed.current_prices()['SOL'] == 190.10


def test_unknown_or_invalid_ticks_are_ignored():
    feed = _feed(FakeSession())
    feed.handle_message({'data': {'s': 'BTCUSDT', 'c': '60000'}})
    feed.handle_message({'data': {'s': 'SOLUSDT', 'c': 'n/a'}})
    with pytest.raises(NoDataError):
        feed.snapshot()


@pytest.mark.asyncio
async def test_disconnect_keeps_last_snapshot():
    feed = _feed(FakeSession(TICKERS))
    await feed.connect()
    await feed.disconnect()

    assert not feed.is_streaming
    assert feed.snapshot()['SOL'].price == 185.67
