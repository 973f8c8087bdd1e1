#!/usr/bin/env python3
"""
Wallet assistant Telegram bot

A Telegram bot that allows users to:
1. Create or import a wallet and switch between networks
2. Deploy their own ERC-20 token, transfer tokens and send funds
3. Look up token market data and follow whale transactions
4. Resolve, watch and register ENS names

Requires:
- python-telegram-bot (with the job-queue extra)
- web3
- requests
- python-dotenv
- sqlite3 (built-in)
"""

import logging
import sys

from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from walletbot import config
from walletbot.chains import get_chain
from walletbot.channel import TelegramChannel
from walletbot.flows import FlowEngine
from walletbot.history import HistoryStore
from walletbot.ledger import LedgerClient
from walletbot.market_data import MarketDataSource, WhaleAlertFeed, WhaleWatcher
from walletbot.name_service import NameService
from walletbot.router import MenuRouter
from walletbot.sessions import SessionStore
from walletbot.wallet_flows import register_wallet_flows

logger = logging.getLogger(__name__)


async def on_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    router: MenuRouter = context.bot_data["router"]
    message = update.effective_message
    await router.handle_text(update.effective_chat.id, message.text, message.message_id)


async def on_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    router: MenuRouter = context.bot_data["router"]
    message = update.effective_message
    await router.handle_text(update.effective_chat.id, message.text, message.message_id)


async def on_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    router: MenuRouter = context.bot_data["router"]
    query = update.callback_query
    await query.answer()
    await router.handle_selection(query.message.chat.id, query.data, query.message.message_id)


async def whale_watch_job(context: ContextTypes.DEFAULT_TYPE):
    watcher: WhaleWatcher = context.bot_data["watcher"]
    await watcher.tick()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error(f"Update {update} caused error {context.error}", exc_info=context.error)


def build_application(token: str) -> Application:
    """Create the Application and wire the session, flow and data-source objects into it."""
    application = Application.builder().token(token).build()

    channel = TelegramChannel(application.bot)
    ledger = LedgerClient()
    market = MarketDataSource()
    names = NameService(ledger)
    history = HistoryStore()
    engine = FlowEngine(channel, SessionStore(), ledger, market=market, names=names, history=history)
    register_wallet_flows(engine)

    feed = WhaleAlertFeed()
    watcher = WhaleWatcher(feed, channel)
    if config.WHALE_ALERT_CHAT_ID:
        watcher.subscribe(config.WHALE_ALERT_CHAT_ID)

    application.bot_data["router"] = MenuRouter(
        engine, market=market, whales=feed, watcher=watcher, names=names, history=history
    )
    application.bot_data["watcher"] = watcher

    # every command, known or not, goes to the router
    application.add_handler(MessageHandler(filters.COMMAND, on_command))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, on_text))
    application.add_handler(CallbackQueryHandler(on_callback))
    application.add_error_handler(error_handler)

    jq = getattr(application, "job_queue", None)
    if jq is None:
        logger.warning("No job_queue available; periodic whale alerts won't run")
    else:
        jq.run_repeating(whale_watch_job, interval=config.WHALE_POLL_INTERVAL, first=10)

    return application


def main():
    """Start the bot."""
    config.configure_logging()

    if not config.BOT_TOKEN or config.BOT_TOKEN == 'YOUR_BOT_TOKEN_HERE':
        logger.error("BOT_TOKEN is not set. Add it to your .env file or run bootstrap.py")
        sys.exit(1)

    application = build_application(config.BOT_TOKEN)

    chain = get_chain(config.DEFAULT_CHAIN)
    print("🚀 Wallet assistant bot is starting...")
    print(f"🌐 Default network: {chain.name} ({chain.chain_id})")
    print(f"🔗 RPC: {chain.rpc_url}")
    print("✅ Bot is ready!")

    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == '__main__':
    main()
