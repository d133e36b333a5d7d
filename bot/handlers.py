# bot/handlers.py
import html
import time

from telegram import Update
from telegram.ext import ContextTypes

from errors import EngineError
from sandwich_bot import SandwichBot
from strategies import STRATEGIES

# --- Command Handlers ---


def _bot(context: ContextTypes.DEFAULT_TYPE) -> SandwichBot:
    return context.application.bot_data['sandwich_bot']


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays a help message with all available commands."""
    help_text = """
    <b>Welcome to the Sandwich Opportunity Bot!</b>

    This bot scans Solana token pairs for sandwich opportunities and simulates their execution.

    <b><u>Available Commands:</u></b>
    /status - Get bot status and last scan info
    /stats - Show trading statistics
    /opportunities - List currently available opportunities
    /positions - List open and recent positions
    /strategy [NAME] - Show or change the risk strategy
    /autoexecute on|off - Toggle automatic execution
    /execute ID [WALLET] - Execute an available opportunity
    /startbot - Start the scan loop
    /stopbot - Stop the scan loop
    /help - Show this help message
    """
    await update.message.reply_html(help_text)


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Reports the scan loop state and last cycle details."""
    bot = _bot(context)
    start_time = context.application.bot_data.get('start_time', 0)

    uptime_seconds = time.time() - start_time
    uptime_str = time.strftime('%H:%M:%S', time.gmtime(uptime_seconds))

    if bot.is_running:
        scanner_status = "✅ Running"
    elif bot.last_error:
        scanner_status = "❌ Stopped with error"
    else:
        scanner_status = "⏹️ Stopped"

    status_text = (
        f"<b>🤖 Bot Status</b>\n"
        f"Uptime: <code>{uptime_str}</code>\n\n"
        f"<b>🔍 Scanner</b>\n"
        f"Status: {scanner_status}\n"
        f"Strategy: <code>{bot.strategy_name}</code>\n"
        f"Auto-execute: <code>{'on' if bot.auto_execute else 'off'}</code>\n"
        f"Last Scan: <code>{bot.last_scan_time or 'Never'}</code>\n"
        f"Found Last Scan: <code>{bot.found_last_scan}</code>\n"
        f"Open Positions: <code>{bot.engine.open_count()}/{bot.engine.max_concurrent_positions}</code>\n"
    )
    if bot.scanner.last_gas_estimate is not None:
        status_text += f"Gas Estimate: <code>{bot.scanner.last_gas_estimate:.6f} SOL</code>\n"
    if bot.last_error:
        status_text += f"Last Error: <pre>{html.escape(bot.last_error)}</pre>\n"

    await update.message.reply_html(status_text)


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays the aggregated trading statistics."""
    stats = _bot(context).stats()
    message = (
        f"<b>📊 Trading Statistics</b>\n\n"
        f"<b>Opportunities:</b> {stats.total_opportunities}\n"
        f"<b>Executed:</b> {stats.executed_count}\n"
        f"<b>Successful:</b> {stats.successful_count}\n"
        f"<b>Success Rate:</b> {stats.success_rate:.1f}%\n\n"
        f"<b>Total Profit:</b> {stats.total_profit:.6f} SOL\n"
        f"<b>Gas Spent:</b> {stats.total_gas_spent:.6f} SOL\n"
        f"<b>Net Profit:</b> {stats.net_profit:.6f} SOL\n"
        f"<b>Avg Profit/Trade:</b> {stats.avg_profit_per_trade:.6f} SOL"
    )
    await update.message.reply_html(message)


async def opportunities_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Lists the opportunities from the latest scan that are still available."""
    opportunities = _bot(context).opportunities()
    if not opportunities:
        await update.message.reply_text("No opportunities available right now.")
        return

    lines = ["<b>🎯 Available Opportunities</b>\n"]
    for opp in opportunities:
        flag = " (synthetic)" if opp.synthetic else ""
        lines.append(
            f"<code>{opp.id}</code> {opp.pair_name}{flag}\n"
            f"   - Profit: {opp.profit_potential:.6f} SOL | Gas: {opp.gas_estimate:.6f} SOL\n"
            f"   - Confidence: {opp.confidence:.0f}% | Impact: {opp.price_impact_pct:.3f}%"
        )
    await update.message.reply_html("\n".join(lines))


async def positions_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Lists open and recently completed positions, newest first."""
    positions = _bot(context).positions()
    if not positions:
        await update.message.reply_text("No positions yet.")
        return

    lines = ["<b>📈 Positions</b>\n"]
    for position in reversed(positions[-10:]):
        lines.append(
            f"<code>{position.id}</code> {position.token} {position.amount:.4f} - "
            f"<b>{position.status.value}</b> | Net: {position.net_profit:+.6f} SOL"
        )
    await update.message.reply_html("\n".join(lines))


async def strategy_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Shows the active strategy or switches to the one named in the arguments."""
    bot = _bot(context)
    if context.args:
        try:
            bot.set_strategy(context.args[0])
        except EngineError as exc:
            await update.message.reply_text(str(exc))
            return

    strategy = bot.strategy
    available = ", ".join(STRATEGIES)
    message = (
        f"<b>🛡️ Strategy: {strategy.name}</b>\n\n"
        f"Stop Loss: {strategy.stop_loss_pct}%\n"
        f"Take Profit: {strategy.take_profit_pct}%\n"
        f"Max Hold: {strategy.max_hold_time_ms // 1000}s\n"
        f"Max Drawdown: {strategy.max_drawdown_pct}%\n"
        f"Dynamic Sizing: {'yes' if strategy.dynamic_sizing else 'no'}\n"
        f"Multi-pair: {'yes' if strategy.multi_pair_arbitrage else 'no'}\n"
        f"Risk Score: {strategy.risk_score}/100\n\n"
        f"Available: <code>{available}</code>"
    )
    await update.message.reply_html(message)


async def autoexecute_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Turns automatic execution on or off."""
    bot = _bot(context)
    if not context.args or context.args[0].lower() not in {"on", "off"}:
        await update.message.reply_text("Usage: /autoexecute on|off")
        return
    bot.set_auto_execute(context.args[0].lower() == "on")
    await update.message.reply_text(f"Auto-execute is now {'on' if bot.auto_execute else 'off'}.")


async def execute_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Executes one available opportunity by id."""
    if not context.args:
        await update.message.reply_text("Usage: /execute OPPORTUNITY_ID [WALLET_ADDRESS]")
        return
    opportunity_id = context.args[0]
    wallet_address = context.args[1] if len(context.args) > 1 else None
    try:
        position = await _bot(context).execute_opportunity(opportunity_id, wallet_address)
    except EngineError as exc:
        await update.message.reply_text(f"Execution refused: {exc}")
        return
    await update.message.reply_html(f"Position <code>{position.id}</code> opened for {position.token}.")


async def startbot_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Starts the scan loop."""
    bot = _bot(context)
    if bot.is_running:
        await update.message.reply_text("Scanner is already running.")
        return
    try:
        await bot.start()
    except EngineError as exc:
        await update.message.reply_text(f"Could not start scanner: {exc}")
        return
    await update.message.reply_text(f"Scanner started with strategy {bot.strategy_name}.")


async def stopbot_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Stops the scan loop; in-flight positions still complete."""
    bot = _bot(context)
    if not bot.is_running:
        await update.message.reply_text("Scanner is not running.")
        return
    bot.stop()
    await update.message.reply_text("Scanner stopping. Open positions will finish executing.")
