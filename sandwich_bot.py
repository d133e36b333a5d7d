#!/usr/bin/env python3
import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from analysis.models import Opportunity, Position, Stats
from config import AppConfig
from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW
from errors import (
    CapacityExceeded,
    FeedConnectionError,
    InsufficientFunds,
    NoDataError,
    OpportunityNotAvailable,
)
from execution_engine import ExecutionEngine
from scanner import OpportunityScanner
from services.price_feed import BinancePriceFeed
from services.solana_rpc_client import SolanaRpcClient, validate_wallet_address
from stats_aggregator import StatsAggregator
from storage import SQLiteRepository
from strategies import StrategyProfile, get_strategy

logger = logging.getLogger(__name__)


class SandwichBot:
    """Owns the scan loop and exposes the engine's state and commands.

    ``stop`` only sets the stop event: the loop exits before its next tick and
    positions already in flight run to completion. ``shutdown`` additionally
    waits for the loop and those positions, then releases the price feed.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        price_feed: BinancePriceFeed,
        scanner: OpportunityScanner,
        engine: ExecutionEngine,
        aggregator: StatsAggregator,
        rpc_client: Optional[SolanaRpcClient] = None,
        repository: Optional[SQLiteRepository] = None,
    ):
        self.config = config
        self.price_feed = price_feed
        self.scanner = scanner
        self.engine = engine
        self.aggregator = aggregator
        self.rpc_client = rpc_client
        self.repository = repository
        self._strategy = get_strategy(config.strategy)
        self._auto_execute = config.auto_execute
        self._opportunities: Tuple[Opportunity, ...] = ()
        self._submitted: Dict[str, Tuple[Opportunity, str]] = {}
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._current_scan_cycle_id: Optional[int] = None
        self.last_error: Optional[str] = None
        self.last_scan_time: Optional[str] = None
        self.found_last_scan = 0
        self.cycles = 0
        if repository is not None:
            engine.add_completion_listener(self._persist_position)

    # --- Read-only accessors ---

    @property
    def strategy(self) -> StrategyProfile:
        return self._strategy

    @property
    def strategy_name(self) -> str:
        return self._strategy.key

    @property
    def auto_execute(self) -> bool:
        return self._auto_execute

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def opportunities(self) -> Tuple[Opportunity, ...]:
        return self._opportunities

    def positions(self) -> Tuple[Position, ...]:
        return self.engine.positions()

    def stats(self) -> Stats:
        return self.aggregator.snapshot()

    # --- Commands ---

    async def start(self) -> None:
        """Connects the price feed and starts the scan loop."""
        if self.is_running:
            return
        await self.price_feed.connect()
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run_main_loop())
        logger.info("Sandwich bot started with strategy %s", self.strategy_name)

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self) -> None:
        self.stop()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        await self.engine.drain()
        await self.price_feed.disconnect()
        logger.info("Sandwich bot shut down")

    def set_strategy(self, name: str) -> StrategyProfile:
        self._strategy = get_strategy(name)
        logger.info("Strategy set to %s", self._strategy.key)
        return self._strategy

    def set_auto_execute(self, enabled: bool) -> None:
        self._auto_execute = bool(enabled)

    async def execute_opportunity(self, opportunity_id: str, wallet_address: Optional[str] = None) -> Position:
        """Manually executes one available opportunity.

        Address and balance problems are raised before any position exists,
        and the opportunity stays available.
        """
        opportunity = self._find_opportunity(opportunity_id)

        address = wallet_address or self.config.wallet_address
        if address:
            address = validate_wallet_address(address)
            if self.rpc_client is not None:
                balance = await self.rpc_client.get_balance(address)
                if balance < opportunity.gas_estimate:
                    raise InsufficientFunds(
                        f"Wallet balance {balance:.6f} SOL cannot cover gas {opportunity.gas_estimate:.6f} SOL"
                    )

        # Re-check: the balance lookup yields to the loop.
        opportunity = self._find_opportunity(opportunity_id)
        return self._submit(opportunity)

    async def run_cycle(self) -> List[Opportunity]:
        """Runs one scan and, if enabled, auto-executes the results."""
        if not self.price_feed.is_streaming:
            await self.price_feed.connect()

        strategy = self._strategy
        self._current_scan_cycle_id = await self._record_scan_cycle_start(strategy)
        opportunities = await self.scanner.scan(strategy)
        self._opportunities = tuple(opportunities)
        self.aggregator.record_opportunities(len(opportunities))
        self.last_scan_time = time.strftime('%Y-%m-%d %H:%M:%S')
        self.found_last_scan = len(opportunities)
        self.cycles += 1

        if self._auto_execute and not self._stopping:
            self._auto_execute_batch(opportunities, strategy)

        await self._record_scan_cycle_finish(len(opportunities))
        self._current_scan_cycle_id = None
        return opportunities

    # --- Internals ---

    @property
    def _stopping(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def _run_main_loop(self) -> None:
        interval = self.config.scan_interval_ms / 1000
        while not self._stopping:
            print("\n" + "=" * 50)
            print(f"Starting scan cycle with strategy {C_BLUE}{self.strategy_name}{C_RESET}...")
            try:
                found = await self.run_cycle()
                self.last_error = None
                colour = C_GREEN if found else C_YELLOW
                print(f"{colour}Found {len(found)} opportunities.{C_RESET}")
            except (FeedConnectionError, NoDataError) as exc:
                print(f"{C_RED}Price feed unavailable, skipping cycle: {exc}{C_RESET}")
                self.last_error = str(exc)
            except Exception as exc:
                logger.exception("Error during scan cycle")
                print(f"{C_RED}Error during scan cycle: {exc}{C_RESET}")
                self.last_error = str(exc)

            print(f"Scan finished. Waiting {interval:g} seconds...")
            print("=" * 50)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def _auto_execute_batch(self, opportunities: List[Opportunity], strategy: StrategyProfile) -> None:
        for opportunity in opportunities:
            if opportunity.confidence < self.config.auto_execute_min_confidence:
                continue
            try:
                self._submit(opportunity, strategy)
            except CapacityExceeded as exc:
                logger.info("Auto-execute dropped opportunity %s: %s", opportunity.id, exc)

    def _submit(self, opportunity: Opportunity, strategy: Optional[StrategyProfile] = None) -> Position:
        strategy = strategy or self._strategy
        position = self.engine.submit(opportunity, strategy)
        self._opportunities = tuple(opp for opp in self._opportunities if opp.id != opportunity.id)
        if self.repository is not None:
            self._submitted[position.id] = (opportunity, strategy.key)
        return position

    def _find_opportunity(self, opportunity_id: str) -> Opportunity:
        for opportunity in self._opportunities:
            if opportunity.id == opportunity_id:
                return opportunity
        raise OpportunityNotAvailable(f"Opportunity {opportunity_id} is not available")

    async def _persist_position(self, position: Position) -> None:
        opportunity, strategy_key = self._submitted.pop(position.id, (None, self.strategy_name))
        await self.repository.record_position(
            position,
            output_token=opportunity.output_token if opportunity else None,
            strategy=strategy_key,
        )

    async def _record_scan_cycle_start(self, strategy: StrategyProfile) -> Optional[int]:
        if not self.repository:
            return None
        try:
            return await self.repository.record_scan_cycle_start(strategy.key, self.config.target_tokens)
        except Exception as exc:
            logger.warning("Failed to record scan cycle start: %s", exc)
            return None

    async def _record_scan_cycle_finish(self, opportunities_found: int) -> None:
        if not self.repository or self._current_scan_cycle_id is None:
            return
        try:
            await self.repository.record_scan_cycle_finish(self._current_scan_cycle_id, opportunities_found)
        except Exception as exc:
            logger.warning("Failed to record scan cycle finish: %s", exc)
