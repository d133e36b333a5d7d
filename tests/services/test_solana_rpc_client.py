import aiohttp
import pytest

from errors import BalanceUnavailable, InvalidAddress
from services.solana_rpc_client import SolanaRpcClient, validate_wallet_address

SYSTEM_PROGRAM = '11111111111111111111111111111111'


class BrokenBody:
    """Response body that fails to decode."""

    def __init__(self, exc):
        self.exc = exc


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.status = 200

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        return None

    async def json(self):
        if isinstance(self._payload, BrokenBody):
            raise self._payload.exc
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def post(self, url, json, timeout):
        self.requests.append(json)
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return FakeResponse(response)


@pytest.mark.asyncio
async def test_gas_estimate_uses_median_priority_fee_for_two_transactions():
    session = FakeSession([
        {'jsonrpc': '2.0', 'id': 1, 'result': [
            {'slot': 1, 'prioritizationFee': 0},
            {'slot': 2, 'prioritizationFee': 10_000},
            {'slot': 3, 'prioritizationFee': 50_000},
        ]},
    ])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    estimate = await client.get_gas_estimate()

    # (5000 base + 10000 median) lamports per tx, two transactions.
    assert estimate == pytest.approx(30_000 / 1_000_000_000)
    assert client.last_priority_fees == [0, 10_000, 50_000]
    assert session.requests[0]['method'] == 'getRecentPrioritizationFees'


@pytest.mark.asyncio
async def test_gas_estimate_is_cached_briefly():
    session = FakeSession([{'jsonrpc': '2.0', 'id': 1, 'result': []}])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc', fee_cache_ttl=60.0)

    first = await client.get_gas_estimate()
    second = await client.get_gas_estimate()

    assert first == second == pytest.approx(10_000 / 1_000_000_000)
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_gas_estimate_falls_back_to_network_average():
    session = FakeSession([aiohttp.ClientConnectionError("refused")])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    estimate = await client.get_gas_estimate()

    assert estimate == pytest.approx(30_000 / 1_000_000_000)
    assert estimate > 0


@pytest.mark.asyncio
async def test_gas_estimate_falls_back_to_recent_history():
    session = FakeSession([
        {'jsonrpc': '2.0', 'id': 1, 'result': [{'slot': 1, 'prioritizationFee': 45_000}]},
        {'jsonrpc': '2.0', 'id': 2, 'error': {'code': -32005, 'message': 'Node is behind'}},
    ])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc', fee_cache_ttl=0.0)

    observed = await client.get_gas_estimate()
    fallback = await client.get_gas_estimate()

    assert observed == pytest.approx(100_000 / 1_000_000_000)
    assert fallback == pytest.approx(observed)


@pytest.mark.asyncio
async def test_slot_times_from_performance_samples():
    session = FakeSession([
        {'jsonrpc': '2.0', 'id': 1, 'result': [
            {'numSlots': 120, 'samplePeriodSecs': 60},
            {'numSlots': 0, 'samplePeriodSecs': 60},
        ]},
    ])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    assert await client.get_slot_times_ms() == [500.0]


@pytest.mark.asyncio
async def test_slot_times_empty_on_rpc_error():
    session = FakeSession([{'jsonrpc': '2.0', 'id': 1, 'error': {'code': -32601, 'message': 'not found'}}])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    assert await client.get_slot_times_ms() == []


@pytest.mark.asyncio
async def test_slot_times_empty_on_undecodable_body():
    session = FakeSession([BrokenBody(ValueError("Expecting value: line 1 column 1 (char 0)"))])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    assert await client.get_slot_times_ms() == []


@pytest.mark.asyncio
async def test_slot_times_empty_on_unexpected_sample_shape():
    session = FakeSession([{'jsonrpc': '2.0', 'id': 1, 'result': [[120, 60]]}])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    assert await client.get_slot_times_ms() == []


@pytest.mark.asyncio
async def test_get_balance_converts_lamports():
    session = FakeSession([{'jsonrpc': '2.0', 'id': 1, 'result': {'context': {'slot': 1}, 'value': 2_500_000_000}}])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    assert await client.get_balance(SYSTEM_PROGRAM) == 2.5
    assert session.requests[0]['params'] == [SYSTEM_PROGRAM]


@pytest.mark.asyncio
async def test_request_ids_increase():
    session = FakeSession([
        {'jsonrpc': '2.0', 'id': 1, 'result': []},
        {'jsonrpc': '2.0', 'id': 2, 'result': []},
    ])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    await client.get_slot_times_ms()
    await client.get_slot_times_ms()

    assert [request['id'] for request in session.requests] == [1, 2]


def test_validate_wallet_address_accepts_base58_key():
    assert validate_wallet_address(f"  {SYSTEM_PROGRAM} ") == SYSTEM_PROGRAM


@pytest.mark.parametrize('address', ['', 'not-base58!', '1111'])
def test_validate_wallet_address_rejects_garbage(address):
    with pytest.raises(InvalidAddress):
        validate_wallet_address(address)


@pytest.mark.asyncio
async def test_gas_estimate_falls_back_on_undecodable_body():
    session = FakeSession([BrokenBody(ValueError("Expecting value"))])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    assert await client.get_gas_estimate() == pytest.approx(30_000 / 1_000_000_000)


@pytest.mark.asyncio
async def test_get_balance_failure_is_reported_as_engine_error():
    session = FakeSession([aiohttp.ClientConnectionError("refused")])
    client = SolanaRpcClient(session, rpc_url='http://mock-rpc')

    with pytest.raises(BalanceUnavailable):
        await client.get_balance(SYSTEM_PROGRAM)
