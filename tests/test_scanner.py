import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from analysis.models import Quote, TokenPrice
from config import AppConfig
from errors import NoDataError, QuoteServiceUnreachable, QuoteUnavailable
from scanner import OpportunityScanner
from services.solana_rpc_client import SolanaRpcClient
from strategies import get_strategy

NOW = 1_700_000_000.0


class FakeFeed:
    def __init__(self, prices=None, ages=None):
        self._prices = prices
        self._ages = ages or {}

    def snapshot(self):
        if self._prices is None:
            raise NoDataError("no ticks")
        return {
            symbol: TokenPrice(symbol, price, 0.0, 1_000_000.0, NOW - self._ages.get(symbol, 0.0))
            for symbol, price in self._prices.items()
        }


class FakeQuoteClient:
    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    async def get_quote(self, request):
        self.requests.append(request)
        response = self.responses.get((request.input_token, request.output_token))
        if response is None:
            raise QuoteUnavailable("no route")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return await response(request)
        return response


@pytest.fixture
def mock_config():
    return AppConfig(
        target_tokens=('SOL', 'USDC'),
        min_profit_threshold=0.002,
        max_gas_price=0.01,
        dex_fee_pct=0.25,
        synthetic_quotes=False,
        quote_timeout=0.05,
        price_stale_after=60.0,
    )


@pytest.fixture
def fee_source():
    source = MagicMock()
    source.get_gas_estimate = AsyncMock(return_value=0.004)
    source.get_slot_times_ms = AsyncMock(return_value=[400.0])
    source.last_priority_fees = [0, 0, 0]
    return source


def _scanner(config, quote_client, fee_source, prices=None, ages=None):
    return OpportunityScanner(
        config,
        FakeFeed(prices if prices is not None else {'SOL': 185.67, 'USDC': 1.0, 'USDT': 1.0, 'RAY': 2.0}, ages),
        fee_source,
        quote_client,
        rng=random.Random(1),
        clock=lambda: NOW,
    )


def _sol_usdc_quote(usdc_out):
    return Quote(in_amount=1_000_000_000, out_amount=int(usdc_out * 1_000_000), price_impact_pct=0.3, route=('Orca',))


def test_candidate_pairs_wrap_around(mock_config, fee_source):
    config = mock_config._replace(target_tokens=('SOL', 'USDC', 'RAY'))
    scanner = _scanner(config, None, fee_source)
    assert scanner.candidate_pairs() == [('SOL', 'USDC'), ('USDC', 'RAY'), ('RAY', 'SOL')]
    assert _scanner(config._replace(max_pairs=2), None, fee_source).candidate_pairs() == [('SOL', 'USDC'), ('USDC', 'RAY')]


def test_single_pair_strategies_only_trade_against_sol(mock_config, fee_source):
    config = mock_config._replace(target_tokens=('SOL', 'USDC', 'USDT', 'RAY'))
    scanner = _scanner(config, None, fee_source)
    assert scanner.candidate_pairs(get_strategy('ULTRA_SAFE')) == [('SOL', 'USDC'), ('RAY', 'SOL')]
    assert len(scanner.candidate_pairs(get_strategy('BALANCED'))) == 4


@pytest.mark.asyncio
async def test_accepts_opportunity_above_gas_plus_threshold(mock_config, fee_source):
    quotes = FakeQuoteClient({('SOL', 'USDC'): _sol_usdc_quote(189.0)})
    scanner = _scanner(mock_config, quotes, fee_source)

    found = await scanner.scan(get_strategy('ULTRA_SAFE'))

    assert len(found) == 1
    opportunity = found[0]
    assert opportunity.input_token == 'SOL'
    assert opportunity.output_token == 'USDC'
    assert opportunity.profit_potential > 0.006
    assert opportunity.gas_estimate == 0.004
    assert 0 <= opportunity.confidence <= 100
    assert quotes.requests[0].amount == 1_000_000_000
    assert quotes.requests[0].max_slippage_bps == 250


@pytest.mark.asyncio
async def test_discards_opportunity_below_gas_plus_threshold(mock_config, fee_source):
    quotes = FakeQuoteClient({('SOL', 'USDC'): _sol_usdc_quote(188.0)})
    scanner = _scanner(mock_config, quotes, fee_source)
    assert await scanner.scan(get_strategy('ULTRA_SAFE')) == []


@pytest.mark.asyncio
async def test_pair_failure_does_not_abort_batch(mock_config, fee_source):
    config = mock_config._replace(target_tokens=('USDC', 'RAY', 'SOL'))
    quotes = FakeQuoteClient({
        ('USDC', 'RAY'): RuntimeError("boom"),
        ('SOL', 'USDC'): _sol_usdc_quote(189.0),
    })
    scanner = _scanner(config, quotes, fee_source)

    found = await scanner.scan(get_strategy('BALANCED'))

    assert len(quotes.requests) == 3
    assert [(o.input_token, o.output_token) for o in found] == [('SOL', 'USDC')]


@pytest.mark.asyncio
async def test_unreachable_quote_service_switches_to_synthetic_quotes(mock_config, fee_source):
    config = mock_config._replace(target_tokens=('SOL', 'USDC', 'RAY'), synthetic_quotes=True)
    quotes = FakeQuoteClient({('SOL', 'USDC'): QuoteServiceUnreachable("connection refused")})
    scanner = _scanner(config, quotes, fee_source)

    found = await scanner.scan(get_strategy('BALANCED'))

    assert len(quotes.requests) == 1
    assert scanner.last_synthetic_count == 3
    assert all(opp.synthetic for opp in found)


@pytest.mark.asyncio
async def test_hung_quote_request_times_out(mock_config, fee_source):
    async def hang(request):
        await asyncio.sleep(10)

    quotes = FakeQuoteClient({('SOL', 'USDC'): hang, ('USDC', 'SOL'): hang})
    scanner = _scanner(mock_config, quotes, fee_source)

    found = await asyncio.wait_for(scanner.scan(get_strategy('ULTRA_SAFE')), timeout=2)
    assert found == []
    assert len(quotes.requests) == 2


@pytest.mark.asyncio
async def test_stale_prices_are_skipped(mock_config, fee_source):
    config = mock_config._replace(target_tokens=('SOL', 'USDC', 'RAY'))
    quotes = FakeQuoteClient({})
    scanner = _scanner(config, quotes, fee_source, ages={'RAY': 600.0})

    await scanner.scan(get_strategy('BALANCED'))

    requested = {(r.input_token, r.output_token) for r in quotes.requests}
    assert requested == {('SOL', 'USDC')}


@pytest.mark.asyncio
async def test_gas_above_maximum_skips_batch(mock_config, fee_source):
    fee_source.get_gas_estimate = AsyncMock(return_value=0.05)
    quotes = FakeQuoteClient({('SOL', 'USDC'): _sol_usdc_quote(189.0)})
    scanner = _scanner(mock_config, quotes, fee_source)

    assert await scanner.scan(get_strategy('BALANCED')) == []
    assert quotes.requests == []


@pytest.mark.asyncio
async def test_missing_price_data_propagates(mock_config, fee_source):
    scanner = OpportunityScanner(mock_config, FakeFeed(None), fee_source, FakeQuoteClient({}))
    with pytest.raises(NoDataError):
        await scanner.scan(get_strategy('BALANCED'))


@pytest.mark.asyncio
async def test_synthetic_batch_only_keeps_profitable_scored_opportunities(mock_config, fee_source):
    config = mock_config._replace(target_tokens=('SOL', 'USDC', 'USDT', 'RAY'), synthetic_quotes=True)
    scanner = _scanner(config, None, fee_source)

    found = []
    for _ in range(20):
        found.extend(await scanner.scan(get_strategy('ULTRA_AGGRESSIVE')))

    for opp in found:
        assert opp.profit_potential > opp.gas_estimate + config.min_profit_threshold
        assert 0 <= opp.confidence <= 100
        assert opp.synthetic is True


class UndecodableRpcSession:
    """Every JSON-RPC reply fails to decode."""

    def post(self, url, json, timeout):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        return None

    async def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


@pytest.mark.asyncio
async def test_broken_rpc_replies_fall_back_instead_of_aborting_scan(mock_config):
    fee_source = SolanaRpcClient(UndecodableRpcSession(), rpc_url='http://mock-rpc')
    quotes = FakeQuoteClient({('SOL', 'USDC'): _sol_usdc_quote(189.0)})
    scanner = _scanner(mock_config, quotes, fee_source)

    found = await scanner.scan(get_strategy('ULTRA_SAFE'))

    assert [(o.input_token, o.output_token) for o in found] == [('SOL', 'USDC')]
    assert scanner.last_gas_estimate == pytest.approx(30_000 / 1_000_000_000)
    assert scanner.last_conditions is not None
