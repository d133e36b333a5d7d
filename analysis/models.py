#!/usr/bin/env python3
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from errors import InvalidTransition


@dataclass(frozen=True, slots=True)
class TokenPrice:
    """A single normalized price tick."""
    symbol: str
    price: float
    change_24h: float
    volume_24h: float
    last_update: float


@dataclass(frozen=True, slots=True)
class QuoteRequest:
    """Swap quote request; amount is in the input token's atomic units."""
    input_token: str
    output_token: str
    input_mint: str
    output_mint: str
    amount: int
    max_slippage_bps: int


@dataclass(frozen=True, slots=True)
class Quote:
    """Quote response in atomic units."""
    in_amount: int
    out_amount: int
    price_impact_pct: float
    route: Tuple[str, ...]
    synthetic: bool = False


class CongestionLevel(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


@dataclass(frozen=True, slots=True)
class NetworkConditions:
    congestion_level: CongestionLevel
    competition_level: float
    liquidity_depth: float


@dataclass(frozen=True, slots=True)
class Opportunity:
    """A scored sandwich candidate. Profit and gas are denominated in SOL."""
    id: str
    input_token: str
    output_token: str
    input_amount: float
    estimated_output: float
    price_impact_pct: float
    confidence: float
    profit_potential: float
    gas_estimate: float
    quote_route: Tuple[str, ...]
    synthetic: bool
    created_at: float

    @property
    def score(self) -> float:
        return self.profit_potential * self.confidence

    @property
    def pair_name(self) -> str:
        return f"{self.input_token}/{self.output_token}"


class PositionStatus(str, Enum):
    DETECTED = 'DETECTED'
    EXECUTING = 'EXECUTING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'

    @property
    def is_terminal(self) -> bool:
        return self in (PositionStatus.COMPLETED, PositionStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    PositionStatus.DETECTED: {PositionStatus.EXECUTING, PositionStatus.FAILED},
    PositionStatus.EXECUTING: {PositionStatus.COMPLETED, PositionStatus.FAILED},
    PositionStatus.COMPLETED: set(),
    PositionStatus.FAILED: set(),
}


@dataclass(frozen=True, slots=True)
class Position:
    """One execution attempt of an Opportunity.

    Instances are immutable; every state change produces a new object through
    ``transition``. ``net_profit`` is derived so it always equals
    ``profit - gas_used``.
    """
    id: str
    opportunity_id: str
    token: str
    amount: float
    entry_price: float
    timestamp_created: float
    status: PositionStatus = PositionStatus.DETECTED
    exit_price: Optional[float] = None
    profit: float = 0.0
    gas_used: float = 0.0
    exit_reason: Optional[str] = None
    synthetic: bool = False
    net_profit: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'net_profit', self.profit - self.gas_used)

    def transition(self, status: PositionStatus, **changes) -> 'Position':
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(f"Position {self.id} cannot move from {self.status.value} to {status.value}")
        return replace(self, status=status, **changes)


@dataclass(frozen=True, slots=True)
class Stats:
    total_opportunities: int = 0
    executed_count: int = 0
    successful_count: int = 0
    total_profit: float = 0.0
    total_gas_spent: float = 0.0
    net_profit: float = 0.0
    success_rate: float = 0.0
    avg_profit_per_trade: float = 0.0
    last_update_time: Optional[float] = None
