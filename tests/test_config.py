import argparse
import pytest
from config import load_config, AppConfig
from constants import BINANCE_SYMBOL_MAP, QUOTE_CURRENCY, TOKEN_MINTS


def _namespace(**overrides):
    values = dict(
        capital=10.0,
        min_profit=0.002,
        max_gas_price=0.01,
        slippage=2.5,
        max_position_size=50.0,
        token=['SOL', 'USDC', 'USDT', 'RAY'],
        max_positions=5,
        interval=8000,
        strategy='BALANCED',
        auto_execute=False,
        auto_execute_min_confidence=75.0,
        trade_size=1.0,
        dex_fee=0.25,
        max_pairs=5,
        top_k=10,
        quote_timeout=5.0,
        price_stale_after=60.0,
        front_run_delay=(100, 300),
        back_run_delay=(200, 500),
        no_synthetic_quotes=False,
        seed=None,
        quote_api_url='https://quote-api.jup.ag/v6/quote',
        recent_positions=50,
        telegram_enabled=False,
        show_trades=False,
        trades_limit=10,
        trades_status=None,
        db_path='data/test.db',
        log_level='INFO',
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for key in ('TELEGRAM_BOT_TOKEN', 'TELEGRAM_CHAT_ID', 'SOLANA_RPC_URL', 'WALLET_ADDRESS'):
        monkeypatch.delenv(key, raising=False)


def test_engine_options_are_mapped(monkeypatch):
    monkeypatch.setattr('argparse.ArgumentParser.parse_args', lambda self: _namespace(
        capital=25.0,
        min_profit=0.005,
        token=['SOL', 'RAY', 'ORCA'],
        max_positions=3,
        strategy='AGGRESSIVE',
        auto_execute=True,
        no_synthetic_quotes=True,
        seed=42,
    ))
    config = load_config()
    assert config.capital == 25.0
    assert config.min_profit_threshold == 0.005
    assert config.target_tokens == ('SOL', 'RAY', 'ORCA')
    assert config.max_concurrent_positions == 3
    assert config.strategy == 'AGGRESSIVE'
    assert config.auto_execute is True
    assert config.synthetic_quotes is False
    assert config.seed == 42


def test_environment_overrides_rpc_and_wallet(monkeypatch):
    monkeypatch.setenv('SOLANA_RPC_URL', 'http://localhost:8899')
    monkeypatch.setenv('WALLET_ADDRESS', 'So11111111111111111111111111111111111111112')
    monkeypatch.setattr('argparse.ArgumentParser.parse_args', lambda self: _namespace())
    config = load_config()
    assert config.rpc_url == 'http://localhost:8899'
    assert config.wallet_address == 'So11111111111111111111111111111111111111112'


def test_defaults_match_app_config(monkeypatch):
    monkeypatch.setattr('argparse.ArgumentParser.parse_args', lambda self: _namespace())
    config = load_config()
    defaults = AppConfig()
    assert config.max_concurrent_positions == defaults.max_concurrent_positions
    assert config.scan_interval_ms == defaults.scan_interval_ms
    assert config.slippage_tolerance_pct == defaults.slippage_tolerance_pct
    assert config.front_run_delay_ms == defaults.front_run_delay_ms


def test_telegram_without_token_exits(monkeypatch, capsys):
    monkeypatch.setattr('argparse.ArgumentParser.parse_args', lambda self: _namespace(telegram_enabled=True))
    with pytest.raises(SystemExit):
        load_config()
    assert 'TELEGRAM_BOT_TOKEN' in capsys.readouterr().out


def test_default_tokens_are_priced_and_routable():
    priced = set(BINANCE_SYMBOL_MAP.values()) | {QUOTE_CURRENCY}
    for token in AppConfig().target_tokens:
        assert token in priced
        assert token in TOKEN_MINTS


def test_unpriced_token_is_rejected(monkeypatch, capsys):
    monkeypatch.setattr('argparse.ArgumentParser.parse_args', lambda self: _namespace(token=['SOL', 'mSOL']))
    with pytest.raises(SystemExit):
        load_config()
    assert 'mSOL' in capsys.readouterr().err


def test_single_token_is_rejected(monkeypatch):
    monkeypatch.setattr('argparse.ArgumentParser.parse_args', lambda self: _namespace(token=['SOL']))
    with pytest.raises(SystemExit):
        load_config()
