#!/usr/bin/env python3
import asyncio
import inspect
import logging
import random
import time
import uuid
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Set, Tuple, Union

from analysis.models import Opportunity, Position, PositionStatus
from analysis.risk_policy import LossPreventionPolicy
from errors import CapacityExceeded, NoDataError
from stats_aggregator import StatsAggregator
from strategies import StrategyProfile

logger = logging.getLogger(__name__)

CompletionListener = Callable[[Position], Union[None, Awaitable[None]]]


class ExecutionEngine:
    """Runs accepted opportunities through the front-run/back-run simulation.

    ``submit`` is synchronous: it either creates a DETECTED position and
    schedules its run, or raises CapacityExceeded. Each run ends in exactly
    one terminal state, reported once to the aggregator and then to any
    completion listeners.
    """

    def __init__(
        self,
        aggregator: StatsAggregator,
        *,
        max_concurrent_positions: int,
        front_run_delay_ms: Tuple[int, int] = (100, 300),
        back_run_delay_ms: Tuple[int, int] = (200, 500),
        rng: Optional[random.Random] = None,
        risk_policy: Optional[LossPreventionPolicy] = None,
        price_source: Optional[Callable[[], Mapping[str, float]]] = None,
        recent_limit: int = 50,
        clock: Callable[[], float] = time.time,
    ):
        if max_concurrent_positions < 1:
            raise ValueError("max_concurrent_positions must be at least 1")
        self.aggregator = aggregator
        self.max_concurrent_positions = max_concurrent_positions
        self.front_run_delay_ms = front_run_delay_ms
        self.back_run_delay_ms = back_run_delay_ms
        self.rng = rng or random.Random()
        self.risk_policy = risk_policy or LossPreventionPolicy()
        self.price_source = price_source
        self._clock = clock
        self._open: Dict[str, Position] = {}
        self._recent: Deque[Position] = deque(maxlen=recent_limit)
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[CompletionListener] = []

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    def open_count(self) -> int:
        return len(self._open)

    def positions(self) -> Tuple[Position, ...]:
        """Recently completed positions followed by open ones."""
        return tuple(self._recent) + tuple(self._open.values())

    def get_position(self, position_id: str) -> Optional[Position]:
        if position_id in self._open:
            return self._open[position_id]
        for position in self._recent:
            if position.id == position_id:
                return position
        return None

    def submit(self, opportunity: Opportunity, strategy: StrategyProfile) -> Position:
        if len(self._open) >= self.max_concurrent_positions:
            raise CapacityExceeded(
                f"{len(self._open)}/{self.max_concurrent_positions} positions open; dropping opportunity {opportunity.id}"
            )

        entry_price = self._price_of(opportunity.input_token)
        if entry_price is None:
            entry_price = opportunity.estimated_output / opportunity.input_amount if opportunity.input_amount else 0.0

        position = Position(
            id=uuid.uuid4().hex[:12],
            opportunity_id=opportunity.id,
            token=opportunity.input_token,
            amount=opportunity.input_amount,
            entry_price=entry_price,
            timestamp_created=self._clock(),
            synthetic=opportunity.synthetic,
        )
        self._open[position.id] = position

        task = asyncio.create_task(self._run(position, opportunity, strategy))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            "Position %s opened for %s (%.4f %s, est. profit %.6f SOL, strategy %s)",
            position.id, opportunity.pair_name, opportunity.input_amount, opportunity.input_token,
            opportunity.profit_potential, strategy.key,
        )
        return position

    async def drain(self) -> None:
        """Waits until every in-flight position has reached a terminal state."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, position: Position, opportunity: Opportunity, strategy: StrategyProfile) -> None:
        gas = opportunity.gas_estimate
        try:
            position = self._advance(position, PositionStatus.EXECUTING)

            await asyncio.sleep(self._draw_delay(self.front_run_delay_ms))

            current_price = self._price_of(position.token)
            if not self.risk_policy.should_hold(position, strategy, now=self._clock(), current_price=current_price):
                final = position.transition(
                    PositionStatus.FAILED,
                    exit_price=current_price if current_price is not None else position.entry_price,
                    profit=-gas,
                    gas_used=gas,
                    exit_reason='risk_exit',
                )
            else:
                await asyncio.sleep(self._draw_delay(self.back_run_delay_ms))
                if self.rng.random() < strategy.success_probability:
                    final = position.transition(
                        PositionStatus.COMPLETED,
                        exit_price=position.entry_price * (1 + opportunity.price_impact_pct / 100),
                        profit=opportunity.profit_potential * self.rng.uniform(0.7, 1.3),
                        gas_used=gas,
                        exit_reason='back_run_filled',
                    )
                else:
                    final = position.transition(
                        PositionStatus.FAILED,
                        exit_price=position.entry_price,
                        profit=-gas,
                        gas_used=gas,
                        exit_reason='back_run_failed',
                    )
        except asyncio.CancelledError:
            final = self._fail(position, gas, 'cancelled')
            self._complete(final)
            await self._notify(final)
            raise
        except Exception:
            logger.exception("Position %s crashed during execution", position.id)
            final = self._fail(position, gas, 'error')

        self._complete(final)
        await self._notify(final)

    def _advance(self, position: Position, status: PositionStatus) -> Position:
        updated = position.transition(status)
        self._open[updated.id] = updated
        return updated

    @staticmethod
    def _fail(position: Position, gas: float, reason: str) -> Position:
        # Valid from DETECTED or EXECUTING.
        return position.transition(
            PositionStatus.FAILED,
            exit_price=position.entry_price,
            profit=-gas,
            gas_used=gas,
            exit_reason=reason,
        )

    def _complete(self, final: Position) -> None:
        self._open.pop(final.id, None)
        self._recent.append(final)
        self.aggregator.on_position_completed(final)
        logger.info(
            "Position %s %s (%s): profit %.6f SOL, gas %.6f SOL, net %.6f SOL",
            final.id, final.status.value, final.exit_reason, final.profit, final.gas_used, final.net_profit,
        )

    async def _notify(self, final: Position) -> None:
        for listener in self._listeners:
            try:
                result = listener(final)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Completion listener failed for position %s", final.id)

    def _draw_delay(self, bounds_ms: Tuple[int, int]) -> float:
        low, high = bounds_ms
        return self.rng.uniform(low, high) / 1000

    def _price_of(self, token: str) -> Optional[float]:
        if self.price_source is None:
            return None
        try:
            price = self.price_source().get(token)
        except NoDataError:
            return None
        return price if price and price > 0 else None
