"""Keyboards and message text shown by the bot."""

from html import escape
from typing import Dict, List, Optional

from telegram.helpers import escape_markdown

from walletbot.chains import AVAILABLE_CHAINS

NOT_AVAILABLE = "Data not available"


def md(text) -> str:
    return escape_markdown(str(text))


# Keyboards: rows of (label, callback_data)

def main_keyboard(connected: bool):
    keyboard = [[("💼 Wallet", "wallet_menu")]]
    if connected:
        keyboard.extend([
            [("🪙 Tokens", "tokens_menu")],
            [("💸 Send Funds", "send_funds")],
            [("🌐 Network Settings", "network_settings")],
        ])
    keyboard.append([("📊 Analytics", "analytics")])
    return keyboard


def wallet_keyboard(connected: bool):
    if connected:
        return [
            [("🔄 Change Wallet", "change_wallet")],
            [("📜 Transaction History", "tx_history")],
            [("🔌 Disconnect Wallet", "disconnect_wallet")],
            [("🔙 Back", "back_to_main")],
        ]
    return [
        [("➕ Create Wallet", "create_wallet")],
        [("📥 Import Wallet", "import_wallet")],
        [("🔙 Back", "back_to_main")],
    ]


def change_wallet_keyboard():
    return [
        [("➕ Create Wallet", "create_wallet")],
        [("📥 Import Wallet", "import_wallet")],
        [("🔙 Back", "wallet_menu")],
    ]


def tokens_keyboard():
    return [
        [("➕ Create Token", "create_token")],
        [("📤 Transfer Token", "transfer_token")],
        [("🏦 My Tokens", "my_tokens")],
        [("🔙 Back", "back_to_main")],
    ]


def network_settings_keyboard():
    return [
        [("🔄 Switch Network", "switch_network")],
        [("🔙 Back", "back_to_main")],
    ]


def analytics_keyboard():
    return [
        [("🔎 Token Info", "token_info")],
        [("🐳 Whale Alerts", "whale_alerts")],
        [("⏳ Expiring ENS Names", "expiring_ens")],
        [("📝 Register ENS Name", "register_ens")],
        [("🔙 Back", "back_to_main")],
    ]


def back_to_main_keyboard():
    return [[("🏠 Back to Main Menu", "back_to_main")]]


def saved_key_keyboard():
    return [[("I've saved my private key", "confirm_private_key")]]


# Messages

def welcome_text(details: str) -> str:
    return f"👋 Welcome!\n\n{details}"


def wallet_details(session, balance) -> str:
    if session is None:
        return "❌ Wallet not connected. Please create or import a wallet."
    chain = AVAILABLE_CHAINS.get(session.network_id, session.wallet.chain)
    balance_text = f"{balance} {chain.symbol}" if balance is not None else "unavailable"
    return (
        f"💼 Connected: `{session.wallet.address}`\n"
        f"🌐 Network: {md(chain.name)}\n"
        f"💰 Balance: {balance_text}"
    )


def wallet_created(address: str, private_key: str) -> str:
    return (
        f"✅ Wallet created!\n"
        f"📍 Address: `{address}`\n"
        f"🔑 Private Key: `{private_key}`\n"
        f"⚠️ Keep your private key safe! It is never stored by this bot and is "
        f"lost when you disconnect."
    )


def wallet_imported(address: str, balance, symbol: str) -> str:
    balance_text = f"{balance} {symbol}" if balance is not None else "unavailable"
    return (
        f"✅ Wallet imported!\n"
        f"📍 Address: `{address}`\n"
        f"💰 Balance: {balance_text}"
    )


def token_snapshot(snapshot) -> str:
    """HTML card for a CoinGecko coin."""
    def value(v, prefix="", suffix=""):
        return f"{prefix}{v}{suffix}" if v is not None else NOT_AVAILABLE

    lines = [
        f"<b>{escape(snapshot.name)} Analysis</b>",
        "------------------------------",
        "<b>Price Information</b>:",
        f"Price: {value(snapshot.price, '$')}",
        f"Market Cap: {value(snapshot.market_cap, '$')}",
        f"1H Change: {value(snapshot.change_1h, suffix='%')}",
        f"24H Change: {value(snapshot.change_24h, suffix='%')}",
        f"7D Change: {value(snapshot.change_7d, suffix='%')}",
        f"24H Volume: {value(snapshot.volume, '$')}",
    ]
    if snapshot.ath is not None or snapshot.atl is not None:
        lines.append(f"All-Time High: {value(snapshot.ath, '$')}")
        lines.append(f"All-Time Low: {value(snapshot.atl, '$')}")
    if snapshot.circulating_supply is not None or snapshot.total_supply is not None:
        lines.append(f"Circulating Supply: {value(snapshot.circulating_supply)}")
        lines.append(f"Total Supply: {value(snapshot.total_supply)}")
    if snapshot.sentiment_up is not None:
        lines.extend([
            "",
            "<b>Sentiment Analysis</b>:",
            f"👍 {snapshot.sentiment_up}% | 👎 {value(snapshot.sentiment_down)}%",
        ])
    return "\n".join(lines)


def whale_alert(transfer) -> str:
    return (
        f"<b>🚨 Whale Alert 🚨</b>\n"
        f"Blockchain: {escape(transfer.blockchain.upper())}\n"
        f"Currency: {escape(transfer.symbol.upper())}\n"
        f"Amount: {transfer.amount} ({transfer.amount_usd} USD)\n"
        f"From: {escape(transfer.from_owner or 'Unknown')}\n"
        f"To: {escape(transfer.to_owner or 'Unknown')}\n"
        f"Transaction Hash: <code>{escape(transfer.hash)}</code>\n\n"
        f"Check it out: https://whale-alert.io/transaction/{transfer.blockchain}/{transfer.hash}"
    )


def expiring_names(entries) -> str:
    if not entries:
        return "⏳ No ENS names are about to expire."
    lines = ["⏳ *ENS names expiring soon*", ""]
    for entry in entries:
        left = entry.time_until_expiry
        lines.append(f"• {md(entry.name)}: {left.days}d {left.hours}h {left.minutes}m")
    return "\n".join(lines)


def name_lookup(query: str, resolved: Optional[str], expiry=None) -> str:
    if resolved is None:
        return f"🔎 No ENS record found for `{query}`."
    text = f"🔎 `{query}` → `{resolved}`"
    if expiry is not None:
        text += f"\n📅 Expires: {expiry:%Y-%m-%d %H:%M} UTC"
    return text


def my_tokens(tokens: List[Dict]) -> str:
    if not tokens:
        return "🏦 You haven't deployed any tokens yet."
    lines = ["🏦 *Your Tokens*", ""]
    for token in tokens:
        chain = AVAILABLE_CHAINS.get(token['chain'])
        chain_name = chain.name if chain else token['chain']
        lines.append(
            f"• {md(token['name'])} ({md(token['symbol'])}) on {md(chain_name)}\n"
            f"  `{token['address']}`"
        )
    return "\n".join(lines)


def transaction_history(transactions: List[Dict]) -> str:
    if not transactions:
        return "📜 No transactions yet."
    lines = ["📜 *Recent Transactions*", ""]
    for tx in transactions:
        lines.append(
            f"• {md(tx['tx_type'])} {md(tx['amount'] or '')} ({md(tx['status'])})\n"
            f"  `{tx['tx_hash']}`"
        )
    return "\n".join(lines)


HELP_TEXT = (
    "🤖 *Commands*\n\n"
    "/start - main menu\n"
    "/createwallet - create a new wallet\n"
    "/importwallet <private key> - import a wallet\n"
    "/createtoken - deploy your own token\n"
    "/send - send native currency\n"
    "/transfer - transfer an ERC-20 token\n"
    "/switchnetwork - change network\n"
    "/tokeninfo <coin> - market data\n"
    "/whalealerts - recent whale transactions\n"
    "/watchwhales on|off - periodic whale alerts\n"
    "/ens <name or address> - ENS lookup\n"
    "/expiring [length] - ENS names about to expire\n"
    "/registerens - register an ENS name\n"
    "/mytokens - tokens you deployed\n"
    "/history - your transactions\n"
    "/disconnect - forget your wallet\n"
    "/cancel - cancel the current operation"
)
