#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple, Optional, Tuple
import constants
from strategies import STRATEGIES


class AppConfig(NamedTuple):
    """Typed configuration object."""
    capital: float = constants.DEFAULT_CAPITAL
    min_profit_threshold: float = constants.DEFAULT_MIN_PROFIT_THRESHOLD
    max_gas_price: float = constants.DEFAULT_MAX_GAS_PRICE
    slippage_tolerance_pct: float = constants.DEFAULT_SLIPPAGE_TOLERANCE_PCT
    max_position_size_pct: float = constants.DEFAULT_MAX_POSITION_SIZE_PCT
    target_tokens: Tuple[str, ...] = tuple(constants.DEFAULT_TARGET_TOKENS)
    max_concurrent_positions: int = constants.DEFAULT_MAX_CONCURRENT_POSITIONS
    scan_interval_ms: int = constants.DEFAULT_SCAN_INTERVAL_MS
    strategy: str = constants.DEFAULT_STRATEGY
    auto_execute: bool = False
    auto_execute_min_confidence: float = constants.DEFAULT_AUTO_EXECUTE_MIN_CONFIDENCE
    static_trade_size: float = constants.DEFAULT_STATIC_TRADE_SIZE
    dex_fee_pct: float = constants.DEFAULT_DEX_FEE_PCT
    max_pairs: int = constants.DEFAULT_MAX_PAIRS
    top_k: int = constants.DEFAULT_TOP_K
    quote_timeout: float = constants.DEFAULT_QUOTE_TIMEOUT
    price_stale_after: float = constants.DEFAULT_PRICE_STALE_AFTER
    front_run_delay_ms: Tuple[int, int] = constants.DEFAULT_FRONT_RUN_DELAY_MS
    back_run_delay_ms: Tuple[int, int] = constants.DEFAULT_BACK_RUN_DELAY_MS
    synthetic_quotes: bool = True
    seed: Optional[int] = None
    rpc_url: str = constants.SOLANA_RPC_DEFAULT_URL
    quote_api_url: str = constants.JUPITER_QUOTE_API_URL
    recent_positions_limit: int = constants.DEFAULT_RECENT_POSITIONS_LIMIT
    wallet_address: Optional[str] = None
    telegram_enabled: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    show_trades: bool = False
    trades_limit: int = 10
    trades_status: Optional[str] = None
    db_path: str = constants.DEFAULT_DB_PATH
    log_level: str = 'INFO'


def _delay_range(value: str) -> Tuple[int, int]:
    """Parses a 'MIN-MAX' millisecond range."""
    try:
        low, high = (int(part) for part in value.split('-', 1))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected MIN-MAX milliseconds, got '{value}'")
    if low < 0 or high < low:
        raise argparse.ArgumentTypeError(f"invalid delay range '{value}'")
    return low, high


def load_config() -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    parser = argparse.ArgumentParser(
        description="Detect and simulate sandwich opportunities across Solana token pairs.",
        epilog="Example: ./main.py --strategy CONSERVATIVE --token SOL USDC RAY --auto-execute"
    )
    # --- Engine Arguments ---
    parser.add_argument('--capital', type=float, default=constants.DEFAULT_CAPITAL, help='Trading capital in SOL (default: 10).')
    parser.add_argument('--min-profit', type=float, default=constants.DEFAULT_MIN_PROFIT_THRESHOLD, help='Minimum profit above gas in SOL for an opportunity (default: 0.002).')
    parser.add_argument('--max-gas-price', type=float, default=constants.DEFAULT_MAX_GAS_PRICE, help='Skip scan cycles whose gas estimate exceeds this many SOL (default: 0.01).')
    parser.add_argument('--slippage', type=float, default=constants.DEFAULT_SLIPPAGE_TOLERANCE_PCT, help='Slippage tolerance percentage (default: 2.5).')
    parser.add_argument('--max-position-size', type=float, default=constants.DEFAULT_MAX_POSITION_SIZE_PCT, help='Maximum position size as a percentage of capital (default: 50).')
    parser.add_argument('--token', nargs='+', default=list(constants.DEFAULT_TARGET_TOKENS), help='Token universe to pair up (default: SOL USDC USDT RAY).')
    parser.add_argument('--max-positions', type=int, default=constants.DEFAULT_MAX_CONCURRENT_POSITIONS, help='Maximum concurrent open positions (default: 5).')
    parser.add_argument('--interval', type=int, default=constants.DEFAULT_SCAN_INTERVAL_MS, help='Milliseconds between scan cycles (default: 8000).')
    parser.add_argument('--strategy', type=str.upper, default=constants.DEFAULT_STRATEGY, choices=list(STRATEGIES), help='Risk strategy profile (default: BALANCED).')
    parser.add_argument('--auto-execute', action='store_true', help='Execute high-confidence opportunities automatically.')
    parser.add_argument('--auto-execute-min-confidence', type=float, default=constants.DEFAULT_AUTO_EXECUTE_MIN_CONFIDENCE, help='Minimum confidence for auto execution (default: 75).')
    parser.add_argument('--trade-size', type=float, default=constants.DEFAULT_STATIC_TRADE_SIZE, help='Fixed notional in SOL for static sizing strategies (default: 1.0).')
    parser.add_argument('--dex-fee', type=float, default=constants.DEFAULT_DEX_FEE_PCT, help='Per-swap DEX fee percentage (default: 0.25).')
    parser.add_argument('--max-pairs', type=int, default=constants.DEFAULT_MAX_PAIRS, help='Maximum candidate pairs per scan (default: 5).')
    parser.add_argument('--top-k', type=int, default=constants.DEFAULT_TOP_K, help='Opportunities kept after ranking (default: 10).')
    parser.add_argument('--quote-timeout', type=float, default=constants.DEFAULT_QUOTE_TIMEOUT, help='Seconds before a quote request is abandoned (default: 5).')
    parser.add_argument('--price-stale-after', type=float, default=constants.DEFAULT_PRICE_STALE_AFTER, help='Seconds after which a price tick is considered stale (default: 60).')
    parser.add_argument('--front-run-delay', type=_delay_range, default=constants.DEFAULT_FRONT_RUN_DELAY_MS, help='Front-run delay range in ms (default: 100-300).')
    parser.add_argument('--back-run-delay', type=_delay_range, default=constants.DEFAULT_BACK_RUN_DELAY_MS, help='Back-run delay range in ms (default: 200-500).')
    parser.add_argument('--no-synthetic-quotes', action='store_true', help='Skip pairs instead of synthesizing quotes when the quote service fails.')
    parser.add_argument('--seed', type=int, help='Seed for the simulation random source.')
    parser.add_argument('--quote-api-url', type=str, default=constants.JUPITER_QUOTE_API_URL, help='Quote service endpoint.')
    parser.add_argument('--recent-positions', type=int, default=constants.DEFAULT_RECENT_POSITIONS_LIMIT, help='Completed positions kept in memory (default: 50).')

    # --- Presentation Arguments ---
    parser.add_argument('--telegram-enabled', action='store_true', help='Expose the bot through Telegram commands.')
    parser.add_argument('--show-trades', action='store_true', help='Display recent completed positions and exit.')
    parser.add_argument('--trades-limit', type=int, default=10, help='Number of recent positions to display (default: 10).')
    parser.add_argument('--trades-status', choices=['COMPLETED', 'FAILED'], help='Filter displayed positions by status.')
    parser.add_argument('--db-path', type=str, default=constants.DEFAULT_DB_PATH, help='SQLite database path for trade history.')
    parser.add_argument('--log-level', type=str.upper, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level (default: INFO).')

    args = parser.parse_args()

    if args.capital <= 0:
        parser.error('--capital must be positive.')
    if not 0 < args.max_position_size <= 100:
        parser.error('--max-position-size must be within (0, 100].')
    if args.max_positions < 1:
        parser.error('--max-positions must be at least 1.')
    if len(args.token) < 2:
        parser.error('--token needs at least two symbols to form a pair.')
    unsupported = [token for token in args.token if token not in constants.SUPPORTED_TOKENS]
    if unsupported:
        parser.error(
            f"--token has no price feed or mint for: {', '.join(unsupported)}. "
            f"Supported: {', '.join(constants.SUPPORTED_TOKENS)}."
        )

    # Load from environment
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)
    rpc_url = os.environ.get(constants.SOLANA_RPC_URL_ENV_VAR) or constants.SOLANA_RPC_DEFAULT_URL
    wallet_address = os.environ.get(constants.WALLET_ADDRESS_ENV_VAR)

    if args.telegram_enabled and not telegram_bot_token:
        print(f"{constants.C_RED}Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} is not set.{constants.C_RESET}")
        exit(1)

    return AppConfig(
        capital=args.capital,
        min_profit_threshold=args.min_profit,
        max_gas_price=args.max_gas_price,
        slippage_tolerance_pct=args.slippage,
        max_position_size_pct=args.max_position_size,
        target_tokens=tuple(args.token),
        max_concurrent_positions=args.max_positions,
        scan_interval_ms=args.interval,
        strategy=args.strategy,
        auto_execute=args.auto_execute,
        auto_execute_min_confidence=args.auto_execute_min_confidence,
        static_trade_size=args.trade_size,
        dex_fee_pct=args.dex_fee,
        max_pairs=args.max_pairs,
        top_k=args.top_k,
        quote_timeout=args.quote_timeout,
        price_stale_after=args.price_stale_after,
        front_run_delay_ms=tuple(args.front_run_delay),
        back_run_delay_ms=tuple(args.back_run_delay),
        synthetic_quotes=not args.no_synthetic_quotes,
        seed=args.seed,
        rpc_url=rpc_url,
        quote_api_url=args.quote_api_url,
        recent_positions_limit=args.recent_positions,
        wallet_address=wallet_address,
        telegram_enabled=args.telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        show_trades=args.show_trades,
        trades_limit=args.trades_limit,
        trades_status=args.trades_status,
        db_path=args.db_path,
        log_level=args.log_level,
    )
