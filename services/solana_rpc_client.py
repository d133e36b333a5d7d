#!/usr/bin/env python3
import asyncio
import logging
import time
from collections import deque
from statistics import mean, median
from typing import Deque, List, Optional

import aiohttp
from aiohttp import ClientSession
from solders.pubkey import Pubkey

from constants import (
    BASE_FEE_LAMPORTS,
    FEE_HISTORY_SIZE,
    LAMPORTS_PER_SOL,
    NETWORK_AVERAGE_FEE_LAMPORTS,
    TX_PER_TRADE,
)
from errors import BalanceUnavailable, InvalidAddress

logger = logging.getLogger(__name__)


def validate_wallet_address(address: str) -> str:
    """Returns the canonical base58 form of a Solana address or raises InvalidAddress."""
    if not address or not isinstance(address, str):
        raise InvalidAddress("Wallet address is empty")
    try:
        return str(Pubkey.from_string(address.strip()))
    except ValueError as exc:
        raise InvalidAddress(f"Invalid Solana address '{address}': {exc}") from exc


class SolanaRpcClient:
    """Minimal JSON-RPC client for fee estimates, performance samples and balances."""

    def __init__(
        self,
        session: ClientSession,
        *,
        rpc_url: str,
        timeout: float = 8.0,
        fee_cache_ttl: float = 2.0,
    ) -> None:
        self._session = session
        self._rpc_url = rpc_url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._fee_history: Deque[float] = deque(maxlen=FEE_HISTORY_SIZE)
        self._fee_cache: Optional[tuple[float, float]] = None
        self._fee_cache_ttl = fee_cache_ttl
        self._id_lock = asyncio.Lock()
        self._next_request_id = 1
        self.last_priority_fees: List[int] = []

    async def get_gas_estimate(self) -> float:
        """Gas in SOL for one sandwich (front-run plus back-run).

        Falls back to the rolling average of earlier estimates, or to the
        network average before any query has succeeded. Never returns zero.
        """
        now = time.monotonic()
        if self._fee_cache and now - self._fee_cache[1] <= self._fee_cache_ttl:
            return self._fee_cache[0]

        try:
            result = await self._rpc_call("getRecentPrioritizationFees", [])
            fees = [int(entry.get("prioritizationFee", 0)) for entry in result or []]
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError, TypeError, AttributeError) as exc:
            fallback = self.fallback_gas_estimate()
            logger.warning("Priority fee query failed (%s); using fallback gas estimate %.6f SOL", exc, fallback)
            return fallback

        self.last_priority_fees = fees
        priority = median(fees) if fees else 0
        per_tx_lamports = max(BASE_FEE_LAMPORTS, BASE_FEE_LAMPORTS + priority)
        estimate = per_tx_lamports * TX_PER_TRADE / LAMPORTS_PER_SOL

        self._fee_history.append(estimate)
        self._fee_cache = (estimate, now)
        return estimate

    def fallback_gas_estimate(self) -> float:
        if self._fee_history:
            return mean(self._fee_history)
        return NETWORK_AVERAGE_FEE_LAMPORTS * TX_PER_TRADE / LAMPORTS_PER_SOL

    async def get_slot_times_ms(self, limit: int = 5) -> List[float]:
        """Average slot time per recent performance sample; empty when unavailable."""
        try:
            samples = await self._rpc_call("getRecentPerformanceSamples", [limit])
            slot_times = []
            for sample in samples or []:
                num_slots = sample.get("numSlots") or 0
                period = sample.get("samplePeriodSecs") or 0
                if num_slots > 0 and period > 0:
                    slot_times.append(period * 1000 / num_slots)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError, TypeError, AttributeError) as exc:
            logger.debug("Performance sample query failed: %s", exc)
            return []
        return slot_times

    async def get_balance(self, address: str) -> float:
        """Wallet balance in SOL."""
        address = validate_wallet_address(address)
        try:
            result = await self._rpc_call("getBalance", [address])
            lamports = result["value"] if isinstance(result, dict) else result
            return int(lamports) / LAMPORTS_PER_SOL
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, KeyError, ValueError, TypeError) as exc:
            raise BalanceUnavailable(f"Balance lookup for {address} failed: {exc}") from exc

    async def _rpc_call(self, method: str, params: list):
        request_id = await self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }
        async with self._session.post(self._rpc_url, json=payload, timeout=self._timeout) as response:
            response.raise_for_status()
            data = await response.json()
        if 'error' in data:
            raise RuntimeError(data['error'])
        return data.get('result')

    async def _get_request_id(self) -> int:
        async with self._id_lock:
            request_id = self._next_request_id
            self._next_request_id += 1
        return request_id
