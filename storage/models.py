"""Dataclasses representing stored engine records."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class ScanCycleRecord:
    id: int
    started_at: datetime
    finished_at: Optional[datetime]
    strategy: str
    tokens: list[str]
    opportunities_found: int


@dataclass(slots=True)
class PositionRecord:
    id: int
    position_id: str
    opportunity_id: str
    strategy: str
    token: str
    output_token: Optional[str]
    amount: float
    entry_price: float
    exit_price: Optional[float]
    profit: float
    gas_used: float
    net_profit: float
    status: str
    exit_reason: Optional[str]
    synthetic: bool
    created_at: datetime
    completed_at: datetime
