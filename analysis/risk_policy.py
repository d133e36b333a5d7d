#!/usr/bin/env python3
import time
from typing import Optional

from analysis.models import Position
from strategies import StrategyProfile


class LossPreventionPolicy:
    """Hold-or-exit decisions for open positions.

    A position is held while its unrealized loss stays under half of the
    strategy's stop-loss and it has not outlived the strategy's max hold time.
    The policy never mutates positions; the execution engine acts on the
    decision.
    """

    @staticmethod
    def unrealized_loss_pct(entry_price: float, current_price: float) -> float:
        if entry_price <= 0:
            return 0.0
        return max(0.0, (entry_price - current_price) / entry_price * 100)

    def should_hold(
        self,
        position: Position,
        strategy: StrategyProfile,
        now: Optional[float] = None,
        current_price: Optional[float] = None,
    ) -> bool:
        now = time.time() if now is None else now
        price = position.entry_price if current_price is None else current_price

        loss_pct = self.unrealized_loss_pct(position.entry_price, price)
        held_ms = (now - position.timestamp_created) * 1000

        return loss_pct < strategy.stop_loss_pct / 2 and held_ms < strategy.max_hold_time_ms
