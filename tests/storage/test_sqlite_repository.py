import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from analysis.models import Position, PositionStatus
from storage import SQLiteRepository


def _position(position_id, status=PositionStatus.COMPLETED, profit=0.008, gas=0.004, synthetic=False):
    return Position(
        id=position_id,
        opportunity_id=f"opp-{position_id}",
        token='SOL',
        amount=1.0,
        entry_price=185.67,
        timestamp_created=1_700_000_000.0,
        status=status,
        exit_price=186.04,
        profit=profit,
        gas_used=gas,
        exit_reason='back_run_filled' if status is PositionStatus.COMPLETED else 'back_run_failed',
        synthetic=synthetic,
    )


@pytest.mark.asyncio
async def test_persist_scan_cycle(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "test.db")

    scan_id = await repository.record_scan_cycle_start('BALANCED', ['USDC', 'SOL', 'SOL'])
    assert isinstance(scan_id, int)
    await repository.record_scan_cycle_finish(scan_id, 3)

    cycle = await repository.fetch_scan_cycle(scan_id)
    assert cycle.strategy == 'BALANCED'
    assert cycle.tokens == ['SOL', 'USDC']
    assert cycle.opportunities_found == 3
    assert cycle.finished_at >= cycle.started_at

    assert await repository.fetch_scan_cycle(scan_id + 1) is None
    await repository.close()


@pytest.mark.asyncio
async def test_persist_completed_position(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "positions.db")

    record_id = await repository.record_position(
        _position('p1', synthetic=True), strategy='AGGRESSIVE', output_token='USDC'
    )

    records = await repository.fetch_recent_positions()
    assert len(records) == 1
    record = records[0]
    assert record.id == record_id
    assert record.position_id == 'p1'
    assert record.strategy == 'AGGRESSIVE'
    assert record.output_token == 'USDC'
    assert record.status == 'COMPLETED'
    assert record.net_profit == pytest.approx(0.004)
    assert record.synthetic is True
    assert record.created_at == datetime(2023, 11, 14, 22, 13, 20)

    await repository.close()


@pytest.mark.asyncio
async def test_fetch_recent_positions_filters_and_orders(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "history.db")
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)

    await repository.record_position(_position('old'), strategy='BALANCED', completed_at=base)
    await repository.record_position(
        _position('lost', PositionStatus.FAILED, profit=-0.004), strategy='BALANCED',
        completed_at=base + timedelta(minutes=1),
    )
    await repository.record_position(_position('new'), strategy='BALANCED', completed_at=base + timedelta(minutes=2))

    recent = await repository.fetch_recent_positions(limit=2)
    assert [r.position_id for r in recent] == ['new', 'lost']

    failed = await repository.fetch_recent_positions(status='FAILED')
    assert [r.position_id for r in failed] == ['lost']
    assert failed[0].net_profit == pytest.approx(-0.008)

    await repository.close()


@pytest.mark.asyncio
async def test_open_positions_are_not_persisted(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "open.db")
    with pytest.raises(ValueError):
        await repository.record_position(_position('p', status=PositionStatus.EXECUTING), strategy='BALANCED')
    assert await repository.fetch_recent_positions() == []
    await repository.close()


@pytest.mark.asyncio
async def test_position_is_stored_once(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "unique.db")
    await repository.record_position(_position('p'), strategy='BALANCED')
    with pytest.raises(sqlite3.IntegrityError):
        await repository.record_position(_position('p'), strategy='BALANCED')
    await repository.close()
