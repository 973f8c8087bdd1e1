"""
Menu router

Decodes slash commands and inline-button callback data into command objects
once, then dispatches them: flow entry points go to the ``FlowEngine``,
everything else is a menu or a read-only query answered directly.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from web3 import Web3

from walletbot import config, views
from walletbot.dialogs import ReplyKind
from walletbot.errors import FlowError, UnknownSelection, ValidationFailed
from walletbot.flows import GENERIC_FAILURE, FlowEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShowMenu:
    menu: str


@dataclass(frozen=True)
class StartFlow:
    flow_id: str
    args: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SelectOption:
    value: str


@dataclass(frozen=True)
class CancelFlow:
    pass


@dataclass(frozen=True)
class Disconnect:
    pass


@dataclass(frozen=True)
class TokenInfo:
    token: str


@dataclass(frozen=True)
class WhaleAlerts:
    pass


@dataclass(frozen=True)
class WhaleWatch:
    enabled: bool


@dataclass(frozen=True)
class NameLookup:
    query: str


@dataclass(frozen=True)
class ExpiringNames:
    length: Optional[int] = None


@dataclass(frozen=True)
class MyTokens:
    pass


@dataclass(frozen=True)
class TransactionHistory:
    pass


Command = Union[
    ShowMenu, StartFlow, SelectOption, CancelFlow, Disconnect, TokenInfo, WhaleAlerts,
    WhaleWatch, NameLookup, ExpiringNames, MyTokens, TransactionHistory,
]

# Commands and callbacks that only start a flow
FLOW_COMMANDS = {
    "createwallet": "create_wallet",
    "createtoken": "create_token",
    "send": "send_funds",
    "transfer": "transfer_token",
    "switchnetwork": "switch_network",
    "registerens": "ens_register",
}

FLOW_CALLBACKS = {
    "create_wallet": "create_wallet",
    "import_wallet": "import_wallet",
    "create_token": "create_token",
    "send_funds": "send_funds",
    "transfer_token": "transfer_token",
    "switch_network": "switch_network",
    "register_ens": "ens_register",
    "token_info": "token_lookup",
}

MENU_CALLBACKS = {"wallet_menu", "tokens_menu", "network_settings", "analytics", "change_wallet"}


def parse_command(text: str) -> Optional[Command]:
    """Decode a slash command; None when the command is unknown."""
    parts = text.strip().split(maxsplit=1)
    # "/start@MyBot" in group chats
    name = parts[0][1:].split("@", 1)[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""

    if name == "start":
        return ShowMenu("main")
    if name == "help":
        return ShowMenu("help")
    if name in FLOW_COMMANDS:
        return StartFlow(FLOW_COMMANDS[name])
    if name == "importwallet":
        return StartFlow("import_wallet", {"secret": arg} if arg else {})
    if name == "tokeninfo":
        return TokenInfo(arg) if arg else StartFlow("token_lookup")
    if name in ("whalealerts", "whalereport"):
        return WhaleAlerts()
    if name == "watchwhales":
        if arg.lower() not in ("on", "off"):
            raise ValidationFailed("option", "use /watchwhales on or /watchwhales off")
        return WhaleWatch(arg.lower() == "on")
    if name == "ens":
        if not arg:
            raise ValidationFailed("name", "use /ens <name or address>")
        return NameLookup(arg)
    if name == "expiring":
        if arg and not arg.isdecimal():
            raise ValidationFailed("length", "use /expiring or /expiring <number of characters>")
        return ExpiringNames(int(arg) if arg else None)
    if name == "mytokens":
        return MyTokens()
    if name == "history":
        return TransactionHistory()
    if name == "disconnect":
        return Disconnect()
    if name == "cancel":
        return CancelFlow()
    return None


def parse_callback(data: str) -> Command:
    """Decode inline button callback data; raises UnknownSelection."""
    if data in FLOW_CALLBACKS:
        return StartFlow(FLOW_CALLBACKS[data])
    if data in MENU_CALLBACKS:
        return ShowMenu(data)
    if data in ("back_to_main", "confirm_private_key"):
        return ShowMenu("main")
    if data == "disconnect_wallet":
        return Disconnect()
    if data == "my_tokens":
        return MyTokens()
    if data == "tx_history":
        return TransactionHistory()
    if data == "whale_alerts":
        return WhaleAlerts()
    if data == "expiring_ens":
        return ExpiringNames()
    if data == "cancel":
        return CancelFlow()

    kind, _, rest = data.partition(":")
    if kind == "choice" and rest:
        return SelectOption(rest)
    if kind == "switch_to_chain" and rest:
        return StartFlow("switch_network", {"chain": rest})
    if kind == "deploy_token":
        parts = rest.split(":")
        if len(parts) == 4 and all(parts):
            chain, name, symbol, supply = parts
            return StartFlow("create_token", {"chain": chain, "name": name, "symbol": symbol, "supply": supply})
    raise UnknownSelection(data)


class MenuRouter:
    def __init__(self, engine: FlowEngine, market=None, whales=None, watcher=None, names=None, history=None):
        self.engine = engine
        self.channel = engine.channel
        self.sessions = engine.sessions
        self.market = market
        self.whales = whales
        self.watcher = watcher
        self.names = names
        self.history = history

    async def handle_text(self, conversation_id, text: str, message_id: int = None):
        text = text or ""
        if text.startswith("/"):
            try:
                command = parse_command(text)
            except FlowError as e:
                await self.channel.send_text(conversation_id, e.user_message)
                return
            if command is None:
                await self.channel.send_text(conversation_id, "❓ Unknown command. Send /help for the list.")
                return
            if isinstance(command, StartFlow) and "secret" in command.args and message_id is not None:
                await self.channel.delete_message(conversation_id, message_id)
            await self.dispatch(conversation_id, command)
            return

        pending = self.engine.dialogs.pending(conversation_id)
        if pending is not None and pending.sensitive and message_id is not None:
            await self.channel.delete_message(conversation_id, message_id)
        if not await self.engine.dialogs.deliver(conversation_id, ReplyKind.TEXT, text):
            await self.channel.send_menu(
                conversation_id,
                "ℹ️ Use the menu below or send /help to see what I can do.",
                views.main_keyboard(self.sessions.is_connected(conversation_id)),
            )

    async def handle_selection(self, conversation_id, data: str, message_id: int = None):
        try:
            command = parse_callback(data)
        except UnknownSelection as e:
            logger.warning(f"Unknown callback data from {conversation_id}: {data}")
            await self.channel.send_text(conversation_id, e.user_message)
            return
        await self.dispatch(conversation_id, command, message_id)

    async def dispatch(self, conversation_id, command: Command, message_id: int = None):
        try:
            await self._dispatch(conversation_id, command, message_id)
        except FlowError as e:
            await self.channel.send_text(conversation_id, e.user_message)
        except Exception:
            # type name only: StartFlow args may hold a private key
            logger.exception(f"Error handling {type(command).__name__} for conversation {conversation_id}")
            await self.channel.send_text(conversation_id, GENERIC_FAILURE)

    async def _dispatch(self, conversation_id, command, message_id):
        if isinstance(command, StartFlow):
            await self.engine.start(conversation_id, command.flow_id, command.args)
        elif isinstance(command, SelectOption):
            if not await self.engine.dialogs.deliver(conversation_id, ReplyKind.SELECTION, command.value):
                await self.channel.send_text(conversation_id, "⚠️ This menu is no longer active.")
        elif isinstance(command, ShowMenu):
            await self.show_menu(conversation_id, command.menu, message_id)
        elif isinstance(command, CancelFlow):
            if not self.engine.cancel(conversation_id):
                await self.channel.send_text(conversation_id, "ℹ️ There is nothing to cancel.")
        elif isinstance(command, Disconnect):
            await self.disconnect(conversation_id)
        elif isinstance(command, TokenInfo):
            snapshot = await asyncio.to_thread(self.market.get_token_snapshot, command.token)
            await self.channel.send_text(conversation_id, views.token_snapshot(snapshot), formatting="HTML")
        elif isinstance(command, WhaleAlerts):
            await self.whale_alerts(conversation_id)
        elif isinstance(command, WhaleWatch):
            if command.enabled:
                self.watcher.subscribe(conversation_id)
                await self.channel.send_text(conversation_id, "🐳 Whale alerts enabled for this chat.")
            else:
                self.watcher.unsubscribe(conversation_id)
                await self.channel.send_text(conversation_id, "🔕 Whale alerts disabled for this chat.")
        elif isinstance(command, NameLookup):
            await self.name_lookup(conversation_id, command.query)
        elif isinstance(command, ExpiringNames):
            entries = await asyncio.to_thread(self.names.find_expiring_soon, command.length)
            await self.channel.send_menu(conversation_id, views.expiring_names(entries), views.back_to_main_keyboard())
        elif isinstance(command, MyTokens):
            tokens = self.history.get_tokens(conversation_id)
            await self.channel.send_menu(conversation_id, views.my_tokens(tokens), views.back_to_main_keyboard())
        elif isinstance(command, TransactionHistory):
            transactions = self.history.get_transactions(conversation_id)
            await self.channel.send_menu(
                conversation_id, views.transaction_history(transactions), views.back_to_main_keyboard()
            )

    async def show_menu(self, conversation_id, menu: str, message_id: int = None):
        session = self.sessions.get(conversation_id)
        connected = session is not None

        if menu == "main":
            text = views.welcome_text(views.wallet_details(session, await self._balance(session)))
            options = views.main_keyboard(connected)
        elif menu == "wallet_menu":
            text = "💼 *Wallet*\n\n" + views.wallet_details(session, await self._balance(session))
            options = views.wallet_keyboard(connected)
        elif menu == "change_wallet":
            text = "🔄 Create a new wallet or import another one. Your current wallet will be replaced."
            options = views.change_wallet_keyboard()
        elif menu == "tokens_menu":
            text = "🪙 *Token Management*\n\nWhat would you like to do?"
            options = views.tokens_keyboard()
        elif menu == "network_settings":
            current = session.wallet.chain.name if connected else "none"
            text = f"🌐 *Network Settings*\n\nCurrent network: {views.md(current)}"
            options = views.network_settings_keyboard()
        elif menu == "analytics":
            text = "📊 *Analytics*\n\nChoose a report:"
            options = views.analytics_keyboard()
        else:
            text = views.HELP_TEXT
            options = views.back_to_main_keyboard()

        if message_id is not None:
            await self.channel.edit_menu(conversation_id, message_id, text, options)
        else:
            await self.channel.send_menu(conversation_id, text, options)

    async def disconnect(self, conversation_id):
        self.engine.cancel(conversation_id)
        if not self.sessions.is_connected(conversation_id):
            await self.channel.send_text(conversation_id, "ℹ️ No wallet is connected.")
            return
        self.sessions.remove(conversation_id)
        logger.info(f"Conversation {conversation_id} disconnected its wallet")
        await self.channel.send_menu(
            conversation_id,
            "🔌 Wallet disconnected. Your private key has been forgotten.",
            views.main_keyboard(connected=False),
        )

    async def whale_alerts(self, conversation_id):
        since = int(time.time()) - config.WHALE_LOOKBACK
        transfers = await asyncio.to_thread(
            self.whales.poll_recent_large_transfers, config.WHALE_MIN_VALUE_USD, since
        )
        if not transfers:
            await self.channel.send_text(conversation_id, "🐳 No recent whale transactions.")
            return
        for transfer in transfers:
            await self.channel.send_text(conversation_id, views.whale_alert(transfer), formatting="HTML")

    async def name_lookup(self, conversation_id, query: str):
        resolved, expiry = await asyncio.to_thread(self._resolve, query)
        await self.channel.send_text(conversation_id, views.name_lookup(query, resolved, expiry))

    def _resolve(self, query: str):
        if Web3.is_address(query):
            resolved = self.names.resolve_address(query)
            name = resolved
        else:
            name = query.lower() if "." in query else f"{query.lower()}.eth"
            resolved = self.names.resolve_name(name)
        expiry = self.names.get_expiry(name) if resolved is not None else None
        return resolved, expiry

    async def _balance(self, session):
        if session is None:
            return None
        try:
            return await asyncio.to_thread(self.engine.ledger.balance, session.wallet)
        except Exception as e:
            logger.warning(f"Could not fetch balance for {session.wallet.address}: {e}")
            return None
