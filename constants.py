#!/usr/bin/env python3
from typing import Dict, Tuple

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
BINANCE_API_BASE_URL = 'https://api.binance.com/api/v3'
BINANCE_WS_BASE_URL = 'wss://stream.binance.com:9443'
JUPITER_QUOTE_API_URL = 'https://quote-api.jup.ag/v6/quote'
SOLANA_RPC_DEFAULT_URL = 'https://api.mainnet-beta.solana.com'

# --- Environment Variable Names ---
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'
SOLANA_RPC_URL_ENV_VAR = 'SOLANA_RPC_URL'
WALLET_ADDRESS_ENV_VAR = 'WALLET_ADDRESS'

# --- Token Configuration ---
# SOL is the denomination asset for profit, gas and position sizing.
DENOMINATION_TOKEN = 'SOL'
# Every Binance stream is quoted in USDT, so USDT is worth exactly 1.0.
QUOTE_CURRENCY = 'USDT'

TOKEN_MINTS: Dict[str, str] = {
    'SOL': 'So11111111111111111111111111111111111111112',
    'USDC': 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v',
    'USDT': 'Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB',
    'RAY': '4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R',
    'ORCA': 'orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE',
    'JUP': 'JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN',
    'BONK': 'DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263',
}

TOKEN_DECIMALS: Dict[str, int] = {
    'SOL': 9,
    'USDC': 6,
    'USDT': 6,
    'RAY': 6,
    'ORCA': 6,
    'JUP': 6,
    'BONK': 5,
}

# Binance ticker symbol -> internal token symbol
BINANCE_SYMBOL_MAP: Dict[str, str] = {
    'SOLUSDT': 'SOL',
    'RAYUSDT': 'RAY',
    'ORCAUSDT': 'ORCA',
    'USDCUSDT': 'USDC',
    'JUPUSDT': 'JUP',
    'BONKUSDT': 'BONK',
}

# Tokens the feed can price and the quote service can route.
SUPPORTED_TOKENS: Tuple[str, ...] = tuple(
    symbol for symbol in TOKEN_MINTS
    if symbol == QUOTE_CURRENCY or symbol in BINANCE_SYMBOL_MAP.values()
)

# --- Network Fee Configuration ---
LAMPORTS_PER_SOL = 1_000_000_000
BASE_FEE_LAMPORTS = 5000
# Rolling network average used before any fee query has succeeded.
NETWORK_AVERAGE_FEE_LAMPORTS = 15000
# A sandwich is a front-run plus a back-run transaction.
TX_PER_TRADE = 2
FEE_HISTORY_SIZE = 20

# --- Network Conditions ---
SLOT_TIME_HIGH_MS = 550.0
SLOT_TIME_MEDIUM_MS = 450.0

# --- Price Feed ---
FEED_MAX_RECONNECTS = 10
FEED_RECONNECT_DELAY = 5.0

# --- Engine Defaults ---
DEFAULT_CAPITAL = 10.0
DEFAULT_MIN_PROFIT_THRESHOLD = 0.002
DEFAULT_MAX_GAS_PRICE = 0.01
DEFAULT_SLIPPAGE_TOLERANCE_PCT = 2.5
DEFAULT_MAX_POSITION_SIZE_PCT = 50.0
DEFAULT_TARGET_TOKENS = ['SOL', 'USDC', 'USDT', 'RAY']
DEFAULT_MAX_CONCURRENT_POSITIONS = 5
DEFAULT_SCAN_INTERVAL_MS = 8000
DEFAULT_STRATEGY = 'BALANCED'
DEFAULT_STATIC_TRADE_SIZE = 1.0
DEFAULT_DEX_FEE_PCT = 0.25
DEFAULT_MAX_PAIRS = 5
DEFAULT_TOP_K = 10
DEFAULT_QUOTE_TIMEOUT = 5.0
DEFAULT_PRICE_STALE_AFTER = 60.0
DEFAULT_AUTO_EXECUTE_MIN_CONFIDENCE = 75.0
DEFAULT_FRONT_RUN_DELAY_MS: Tuple[int, int] = (100, 300)
DEFAULT_BACK_RUN_DELAY_MS: Tuple[int, int] = (200, 500)
DEFAULT_RECENT_POSITIONS_LIMIT = 50
DEFAULT_DB_PATH = 'data/sandwich_history.db'

# --- Confidence Model ---
CONFIDENCE_BASE = 75.0
CONFIDENCE_MIN = 0.0
CONFIDENCE_MAX = 100.0
SYNTHETIC_CONFIDENCE_PENALTY = 10.0
