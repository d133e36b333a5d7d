#!/usr/bin/env python3
import asyncio
import logging
import random
import time
from datetime import datetime

import aiohttp
from telegram import BotCommand
from telegram.ext import Application, CommandHandler
from telegram.error import TimedOut, TelegramError

import constants
from config import AppConfig, load_config
from bot.handlers import (
    autoexecute_command,
    execute_command,
    help_command,
    opportunities_command,
    positions_command,
    startbot_command,
    stats_command,
    status_command,
    stopbot_command,
    strategy_command,
)
from execution_engine import ExecutionEngine
from sandwich_bot import SandwichBot
from scanner import OpportunityScanner
from services.jupiter_client import JupiterQuoteClient
from services.price_feed import BinancePriceFeed
from services.solana_rpc_client import SolanaRpcClient
from services.synthetic_quotes import SyntheticQuoteGenerator
from stats_aggregator import StatsAggregator
from storage import SQLiteRepository
from storage.models import PositionRecord


def build_sandwich_bot(
    config: AppConfig,
    session: aiohttp.ClientSession,
    repository: SQLiteRepository | None = None,
) -> SandwichBot:
    """Wires the feed, clients, scanner and engine into one bot instance."""
    rng = random.Random(config.seed)
    price_feed = BinancePriceFeed(session)
    rpc_client = SolanaRpcClient(session, rpc_url=config.rpc_url)
    quote_client = JupiterQuoteClient(session, base_url=config.quote_api_url, timeout=config.quote_timeout)
    aggregator = StatsAggregator()
    scanner = OpportunityScanner(
        config,
        price_feed,
        rpc_client,
        quote_client,
        synthetic_quotes=SyntheticQuoteGenerator(rng),
        rng=rng,
    )
    engine = ExecutionEngine(
        aggregator,
        max_concurrent_positions=config.max_concurrent_positions,
        front_run_delay_ms=config.front_run_delay_ms,
        back_run_delay_ms=config.back_run_delay_ms,
        rng=rng,
        price_source=price_feed.current_prices,
        recent_limit=config.recent_positions_limit,
    )
    return SandwichBot(
        config,
        price_feed=price_feed,
        scanner=scanner,
        engine=engine,
        aggregator=aggregator,
        rpc_client=rpc_client,
        repository=repository,
    )


async def post_init_hook(application: Application) -> None:
    """A hook that runs after the bot is initialized to set up shared clients and tasks."""
    # Create and store a single, shared aiohttp session
    session = aiohttp.ClientSession(headers={'User-Agent': 'SandwichBot/1.0'})
    application.bot_data['http_session'] = session

    config = application.bot_data['config']
    sandwich_bot = build_sandwich_bot(config, session, application.bot_data.get('repository'))
    application.bot_data['sandwich_bot'] = sandwich_bot

    commands = [
        BotCommand("status", "Check bot status"),
        BotCommand("stats", "Show trading statistics"),
        BotCommand("opportunities", "List available opportunities"),
        BotCommand("positions", "List open and recent positions"),
        BotCommand("strategy", "Show or change the risk strategy"),
        BotCommand("autoexecute", "Toggle automatic execution"),
        BotCommand("execute", "Execute an opportunity"),
        BotCommand("startbot", "Start the scanner"),
        BotCommand("stopbot", "Stop the scanner"),
        BotCommand("help", "Show help message"),
    ]
    try:
        await application.bot.set_my_commands(commands)
    except (TimedOut, TelegramError) as exc:
        print(
            f"{constants.C_YELLOW}Warning: unable to set Telegram bot commands ({exc})."
            f" Continuing startup without updating commands.{constants.C_RESET}"
        )

    try:
        await sandwich_bot.start()
    except ConnectionError as exc:
        print(f"{constants.C_RED}Scanner not started: {exc}. Use /startbot to retry.{constants.C_RESET}")


async def post_shutdown_hook(application: Application) -> None:
    """A hook that runs on application shutdown to clean up resources."""
    sandwich_bot = application.bot_data.get('sandwich_bot')
    if sandwich_bot:
        await sandwich_bot.shutdown()
    session = application.bot_data.get('http_session')
    if session:
        await session.close()
    repository = application.bot_data.get('repository')
    if repository:
        await repository.close()


async def run_console(config: AppConfig, repository: SQLiteRepository) -> None:
    """Runs the bot without Telegram, printing a summary after every interval."""
    interval = config.scan_interval_ms / 1000
    async with aiohttp.ClientSession(headers={'User-Agent': 'SandwichBot/1.0'}) as session:
        sandwich_bot = build_sandwich_bot(config, session, repository)
        try:
            await sandwich_bot.start()
        except ConnectionError as exc:
            print(f"{constants.C_RED}Could not connect to the price feed: {exc}{constants.C_RESET}")
            await repository.close()
            return
        try:
            while True:
                await asyncio.sleep(interval)
                _print_summary(sandwich_bot)
        finally:
            await sandwich_bot.shutdown()
            await repository.close()


def _print_summary(sandwich_bot: SandwichBot) -> None:
    stats = sandwich_bot.stats()
    colour = constants.C_GREEN if stats.net_profit >= 0 else constants.C_RED
    print(
        f"[{sandwich_bot.strategy_name}] opportunities={stats.total_opportunities} "
        f"executed={stats.executed_count} success={stats.success_rate:.1f}% "
        f"open={sandwich_bot.engine.open_count()} "
        f"net={colour}{stats.net_profit:+.6f} SOL{constants.C_RESET}"
    )


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if config.show_trades:
        repository = SQLiteRepository(config.db_path)
        try:
            records = asyncio.run(
                repository.fetch_recent_positions(limit=config.trades_limit, status=config.trades_status)
            )
        finally:
            asyncio.run(repository.close())
        _print_position_records(records, config.trades_limit, config.trades_status)
        return

    repository = SQLiteRepository(config.db_path)

    if not config.telegram_enabled or not config.telegram_bot_token:
        print("Telegram is not configured. The application will run in CLI-only mode.")
        try:
            asyncio.run(run_console(config, repository))
        except KeyboardInterrupt:
            print("Stopped.")
        return

    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .post_init(post_init_hook)
        .post_shutdown(post_shutdown_hook)
        .build()
    )

    # Store config and other shared data
    application.bot_data['config'] = config
    application.bot_data['start_time'] = time.time()
    application.bot_data['repository'] = repository

    # Register command handlers
    application.add_handler(CommandHandler("start", help_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("stats", stats_command))
    application.add_handler(CommandHandler("opportunities", opportunities_command))
    application.add_handler(CommandHandler("positions", positions_command))
    application.add_handler(CommandHandler("strategy", strategy_command))
    application.add_handler(CommandHandler("autoexecute", autoexecute_command))
    application.add_handler(CommandHandler("execute", execute_command))
    application.add_handler(CommandHandler("startbot", startbot_command))
    application.add_handler(CommandHandler("stopbot", stopbot_command))

    application.run_polling()


def _print_position_records(records: list[PositionRecord], limit: int, status: str | None) -> None:
    heading = f"Showing up to {limit} completed positions"
    if status:
        heading += f" (status={status})"
    print(heading)
    print("=" * len(heading))

    if not records:
        print("No positions found.")
        return

    headers = [
        "Completed (UTC)",
        "Strategy",
        "Pair",
        "Amount",
        "Status",
        "Profit SOL",
        "Gas SOL",
        "Net SOL",
        "Exit",
        "Synthetic",
    ]

    def _format_row(record: PositionRecord) -> list[str]:
        completed: datetime = record.completed_at
        time_str = completed.strftime("%Y-%m-%d %H:%M:%S") if completed else "N/A"
        pair = f"{record.token}/{record.output_token}" if record.output_token else record.token
        return [
            time_str,
            record.strategy,
            pair,
            f"{record.amount:.4f}",
            record.status,
            f"{record.profit:+.6f}",
            f"{record.gas_used:.6f}",
            f"{record.net_profit:+.6f}",
            record.exit_reason or "-",
            "Yes" if record.synthetic else "No",
        ]

    rows = [_format_row(rec) for rec in records]
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def _format_line(row: list[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row))

    print(_format_line(headers))
    print("  ".join('-' * w for w in widths))
    for row in rows:
        print(_format_line(row))


if __name__ == "__main__":
    main()
