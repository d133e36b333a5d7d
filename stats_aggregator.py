#!/usr/bin/env python3
import threading
import time
from typing import Callable, Set

from analysis.models import Position, PositionStatus, Stats
from errors import DuplicateCompletion, InvalidTransition


class StatsAggregator:
    """Incrementally maintained performance counters.

    Every update and every snapshot runs under one lock, so a reader never sees
    counters from the middle of an update. Each position id is counted once.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._lock = threading.Lock()
        self._clock = clock
        self._seen: Set[str] = set()
        self._stats = Stats()

    def on_position_completed(self, position: Position) -> Stats:
        if not position.status.is_terminal:
            raise InvalidTransition(f"Position {position.id} is not terminal ({position.status.value})")

        with self._lock:
            if position.id in self._seen:
                raise DuplicateCompletion(f"Position {position.id} was already counted")
            self._seen.add(position.id)

            current = self._stats
            executed = current.executed_count + 1
            successful = current.successful_count + (1 if position.status is PositionStatus.COMPLETED else 0)
            total_profit = current.total_profit + max(0.0, position.profit)
            total_gas = current.total_gas_spent + position.gas_used

            self._stats = Stats(
                total_opportunities=current.total_opportunities,
                executed_count=executed,
                successful_count=successful,
                total_profit=total_profit,
                total_gas_spent=total_gas,
                net_profit=total_profit - total_gas,
                success_rate=successful / executed * 100,
                avg_profit_per_trade=total_profit / executed,
                last_update_time=self._clock(),
            )
            return self._stats

    def record_opportunities(self, count: int) -> Stats:
        if count < 0:
            raise ValueError("Opportunity count cannot be negative")
        with self._lock:
            current = self._stats
            self._stats = Stats(
                total_opportunities=current.total_opportunities + count,
                executed_count=current.executed_count,
                successful_count=current.successful_count,
                total_profit=current.total_profit,
                total_gas_spent=current.total_gas_spent,
                net_profit=current.net_profit,
                success_rate=current.success_rate,
                avg_profit_per_trade=current.avg_profit_per_trade,
                last_update_time=self._clock(),
            )
            return self._stats

    def snapshot(self) -> Stats:
        with self._lock:
            return self._stats
