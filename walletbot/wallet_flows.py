"""
Wallet flows

The concrete conversations the bot runs: wallet create/import, network
switching, token deployment, token transfer, sending funds, ENS
registration and the read-only token lookup.
"""

import asyncio
import logging
import re
import secrets
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from web3 import Web3

from walletbot import config, views
from walletbot.chains import AVAILABLE_CHAINS, get_chain
from walletbot.errors import FlowError, ValidationFailed
from walletbot.flows import Action, Choice, Confirm, FlowDefinition, FlowEngine, FlowResult, Prompt
from walletbot.ledger import TokenArtifact
from walletbot.name_service import SECONDS_PER_YEAR
from walletbot.sessions import Session

logger = logging.getLogger(__name__)

ENS_LABEL_PATTERN = re.compile(r'^[a-z0-9-]{3,63}$')


# Validators: raw reply -> value, or ValidationFailed

def secret_text(raw: str) -> str:
    secret = raw.strip()
    if not secret:
        raise ValidationFailed("private key", "please send your private key as text")
    return secret


def token_name(raw: str) -> str:
    name = raw.strip()
    if not 1 <= len(name) <= 50:
        raise ValidationFailed("token name", "must be between 1 and 50 characters")
    return name


def token_symbol(raw: str) -> str:
    symbol = raw.strip().upper()
    if not re.match(r'^[A-Z0-9]{1,11}$', symbol):
        raise ValidationFailed("token symbol", "use 1 to 11 letters or digits")
    return symbol


def token_supply(raw: str) -> int:
    text = raw.strip().replace(",", "").replace("_", "")
    if not text.isdecimal() or int(text) <= 0:
        raise ValidationFailed("supply", "must be a positive whole number")
    return int(text)


def address(raw: str) -> str:
    text = raw.strip()
    if not Web3.is_address(text):
        raise ValidationFailed("address", "please send a valid 0x address")
    return Web3.to_checksum_address(text)


def positive_amount(raw: str) -> Decimal:
    try:
        amount = Decimal(raw.strip())
    except InvalidOperation:
        raise ValidationFailed("amount", "please enter a number such as 0.1")
    if not amount.is_finite() or amount <= 0:
        raise ValidationFailed("amount", "must be greater than zero")
    return amount


def ens_label(raw: str) -> str:
    label = raw.strip().lower()
    if label.endswith(".eth"):
        label = label[:-4]
    if not ENS_LABEL_PATTERN.match(label):
        raise ValidationFailed("name", "use at least 3 lowercase letters, digits or hyphens")
    return label


def years(raw: str) -> int:
    text = raw.strip()
    if not text.isdecimal() or not 1 <= int(text) <= 10:
        raise ValidationFailed("duration", "enter a whole number of years from 1 to 10")
    return int(text)


def _explorer_link(chain, tx_hash: str) -> str:
    return f"🔗 [View on Explorer]({chain.tx_url(tx_hash)})"


def _log_transaction(engine: FlowEngine, ctx, wallet, tx_hash, tx_type, amount=None, counterparty=None):
    if engine.history is not None:
        engine.history.log_transaction(
            ctx.conversation_id, wallet.chain.key, wallet.address, tx_hash, tx_type,
            amount=amount, counterparty=counterparty,
        )


def _update_status(engine: FlowEngine, tx_hash, status):
    if engine.history is not None:
        engine.history.update_status(tx_hash, status)


async def _confirmed(engine: FlowEngine, wallet, tx_hash):
    """Wait for a receipt; None when the transaction is still pending after the timeout."""
    try:
        # blocks for up to CONFIRMATION_TIMEOUT seconds
        receipt = await asyncio.to_thread(engine.ledger.wait_for_confirmation, wallet, tx_hash)
    except Exception as e:
        logger.warning(f"No receipt for {tx_hash} yet: {e}")
        return None
    status = "confirmed" if receipt["status"] == 1 else "failed"
    _update_status(engine, tx_hash, status)
    return receipt


# Wallet create / import

async def create_wallet(engine: FlowEngine, ctx) -> FlowResult:
    account, private_key = engine.ledger.create_account()
    wallet = engine.ledger.connect(account, get_chain(engine.default_chain))
    engine.sessions.put(ctx.conversation_id, Session(wallet=wallet, network_id=wallet.chain.key))
    logger.info(f"Created wallet {account.address} for conversation {ctx.conversation_id}")
    return FlowResult(views.wallet_created(account.address, private_key), views.saved_key_keyboard())


async def import_wallet(engine: FlowEngine, ctx) -> FlowResult:
    account = engine.ledger.derive_account(ctx.collected["secret"])
    wallet = engine.ledger.connect(account, get_chain(engine.default_chain))
    engine.sessions.put(ctx.conversation_id, Session(wallet=wallet, network_id=wallet.chain.key))
    logger.info(f"Imported wallet {account.address} for conversation {ctx.conversation_id}")

    try:
        balance = await asyncio.to_thread(engine.ledger.balance, wallet)
    except Exception as e:
        logger.warning(f"Could not fetch balance after import: {e}")
        balance = None
    return FlowResult(
        views.wallet_imported(account.address, balance, wallet.chain.symbol),
        views.back_to_main_keyboard(),
    )


# Network

def chain_options(ctx):
    current = ctx.session.network_id if ctx.session else None
    return [
        (f"✅ {chain.name}" if key == current else chain.name, key)
        for key, chain in AVAILABLE_CHAINS.items()
    ]


async def switch_network(engine: FlowEngine, ctx) -> FlowResult:
    chain = get_chain(ctx.collected["chain"])
    wallet = engine.ledger.switch_chain(ctx.session.wallet, chain)
    engine.sessions.put(ctx.conversation_id, replace(ctx.session, wallet=wallet, network_id=chain.key))
    return FlowResult(
        f"✅ Network switched to {views.md(chain.name)}.\n\n"
        f"💼 Connected: `{wallet.address}`",
        views.main_keyboard(connected=True),
    )


# Token deployment

def _target_chain(ctx):
    """Session network unless the flow was started for a specific chain (deploy_token menu)."""
    key = ctx.prefill.get("chain") or ctx.session.network_id
    if key not in AVAILABLE_CHAINS:
        raise ValidationFailed("network", f"{key} is not a supported network")
    return get_chain(key)


def token_summary(engine: FlowEngine, ctx) -> str:
    chain = _target_chain(ctx)
    return (
        f"🪙 *Deploy Token*\n\n"
        f"Name: {views.md(ctx.collected['name'])}\n"
        f"Symbol: {views.md(ctx.collected['symbol'])}\n"
        f"Supply: {ctx.collected['supply']:,}\n"
        f"Network: {views.md(chain.name)}\n"
        f"Deployer: `{ctx.session.wallet.address}`"
    )


def build_create_token_flow(artifact: Optional[TokenArtifact] = None,
                            artifact_path: str = None) -> FlowDefinition:
    loaded = {}

    def token_artifact() -> TokenArtifact:
        if artifact is not None:
            return artifact
        if "artifact" not in loaded:
            loaded["artifact"] = TokenArtifact.from_file(artifact_path or config.TOKEN_ARTIFACT_PATH)
        return loaded["artifact"]

    def precheck(engine: FlowEngine, ctx):
        engine.require_balance(engine.wallet_for(ctx, _target_chain(ctx)), engine.min_deploy_balance)
        try:
            deployable = token_artifact().deployable
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Could not load token artifact: {e}")
            deployable = False
        if not deployable:
            raise FlowError("❌ Token deployment is not configured on this bot.")

    async def deploy(engine: FlowEngine, ctx) -> FlowResult:
        chain = _target_chain(ctx)
        wallet = engine.wallet_for(ctx, chain)
        await asyncio.to_thread(engine.require_balance, wallet, engine.min_deploy_balance)

        contract = token_artifact()
        name, symbol, supply = ctx.collected["name"], ctx.collected["symbol"], ctx.collected["supply"]
        tx_hash = await asyncio.to_thread(
            engine.ledger.deploy_contract, wallet, contract.bytecode, contract.abi, [name, symbol, supply], chain
        )
        _log_transaction(engine, ctx, wallet, tx_hash, "deploy_token", amount=f"{supply} {symbol}")

        receipt = await _confirmed(engine, wallet, tx_hash)
        if receipt is None:
            return FlowResult(
                f"⏳ Token deployment submitted.\n\n"
                f"🧾 Transaction: `{tx_hash}`\n{_explorer_link(chain, tx_hash)}",
                views.back_to_main_keyboard(),
            )
        if receipt["status"] != 1:
            return FlowResult(
                f"❌ Token deployment reverted.\n\n🧾 Transaction: `{tx_hash}`",
                views.back_to_main_keyboard(),
            )

        token_address = receipt.get("contractAddress")
        if engine.history is not None:
            engine.history.record_token(
                ctx.conversation_id, chain.key, wallet.address, token_address, name, symbol, supply, tx_hash
            )
        return FlowResult(
            f"✅ Token deployed successfully!\n\n"
            f"📍 Address: `{token_address}`\n"
            f"🧾 Transaction: `{tx_hash}`\n"
            f"🔗 [View on Explorer]({chain.address_url(token_address)})",
            views.back_to_main_keyboard(),
        )

    return FlowDefinition(
        flow_id="create_token",
        mutating=True,
        precheck=precheck,
        steps=[
            Prompt("name", "🪙 *Create Token*\n\nWhat is the token's name?", validator=token_name),
            Prompt("symbol", "🔤 What is the token's symbol? (e.g. MTK)", validator=token_symbol),
            Prompt("supply", "🔢 What is the initial supply? (whole tokens)", validator=token_supply),
            Confirm(token_summary),
            Action(deploy),
        ],
    )


# Sending funds

def amount_within_balance(engine: FlowEngine, ctx, amount: Decimal) -> Decimal:
    balance = engine.ledger.balance(ctx.session.wallet)
    if amount > balance:
        raise ValidationFailed(
            "amount",
            f"your balance is {balance} {ctx.session.wallet.chain.symbol}, please enter a smaller amount"
        )
    return amount


def send_summary(engine: FlowEngine, ctx) -> str:
    symbol = ctx.session.wallet.chain.symbol
    return (
        f"💸 *Send Funds*\n\n"
        f"To: `{ctx.collected['recipient']}`\n"
        f"Amount: {ctx.collected['amount']} {symbol}\n"
        f"Network: {views.md(ctx.session.wallet.chain.name)}"
    )


async def send_funds(engine: FlowEngine, ctx) -> FlowResult:
    wallet = ctx.session.wallet
    amount = ctx.collected["amount"]
    recipient = ctx.collected["recipient"]
    await asyncio.to_thread(engine.require_balance, wallet, amount)

    tx_hash = await asyncio.to_thread(engine.ledger.send_value, wallet, recipient, amount)
    _log_transaction(engine, ctx, wallet, tx_hash, "send", amount=f"{amount} {wallet.chain.symbol}",
                     counterparty=recipient)
    await engine.channel.send_text(ctx.conversation_id, f"✅ Transaction sent! Hash: `{tx_hash}`")

    receipt = await _confirmed(engine, wallet, tx_hash)
    if receipt is None:
        return FlowResult(f"⏳ Still waiting for confirmation.\n{_explorer_link(wallet.chain, tx_hash)}")
    if receipt["status"] != 1:
        return FlowResult(f"❌ Transaction `{tx_hash}` failed on-chain.")

    try:
        balance = await asyncio.to_thread(engine.ledger.balance, wallet)
        new_balance = f"{balance} {wallet.chain.symbol}"
    except Exception as e:
        logger.warning(f"Could not refresh balance: {e}")
        new_balance = "unavailable"
    return FlowResult(
        f"✅ Transaction confirmed! Block number: {receipt['blockNumber']}\n"
        f"💰 New balance: {new_balance}",
        views.back_to_main_keyboard(),
    )


# ERC-20 transfer

def erc20_token(engine: FlowEngine, ctx, token_address: str) -> str:
    try:
        metadata = engine.ledger.token_metadata(ctx.session.wallet, token_address)
    except Exception as e:
        logger.info(f"{token_address} does not look like an ERC-20 token: {e}")
        raise ValidationFailed("token", "could not read token information at that address")
    ctx.extras["token"] = metadata
    return metadata["address"]


def amount_within_token_balance(engine: FlowEngine, ctx, amount: Decimal) -> Decimal:
    token = ctx.extras["token"]
    if amount > token["balance"]:
        raise ValidationFailed(
            "amount", f"your balance is {token['balance']} {token['symbol']}, please enter a smaller amount"
        )
    return amount


def transfer_summary(engine: FlowEngine, ctx) -> str:
    token = ctx.extras["token"]
    return (
        f"📤 *Transfer Token*\n\n"
        f"Token: {views.md(token['name'])} ({views.md(token['symbol'])})\n"
        f"To: `{ctx.collected['recipient']}`\n"
        f"Amount: {ctx.collected['amount']} {views.md(token['symbol'])}"
    )


async def transfer_token(engine: FlowEngine, ctx) -> FlowResult:
    wallet = ctx.session.wallet
    token = ctx.extras["token"]
    tx_hash = await asyncio.to_thread(
        engine.ledger.transfer_token, wallet, ctx.collected["token"], ctx.collected["recipient"], ctx.collected["amount"]
    )
    _log_transaction(engine, ctx, wallet, tx_hash, "transfer",
                     amount=f"{ctx.collected['amount']} {token['symbol']}",
                     counterparty=ctx.collected["recipient"])
    return FlowResult(
        f"✅ Transfer sent!\n\n🧾 Transaction: `{tx_hash}`\n{_explorer_link(wallet.chain, tx_hash)}",
        views.back_to_main_keyboard(),
    )


# ENS registration

def available_label(engine: FlowEngine, ctx, label: str) -> str:
    if not engine.names.available(label):
        raise ValidationFailed("name", f"{label}.eth is already registered")
    return label


def ens_summary(engine: FlowEngine, ctx) -> str:
    label = ctx.collected["label"]
    duration = ctx.collected["years"] * SECONDS_PER_YEAR
    price = engine.names.rent_price(label, duration)
    ctx.extras["price"] = price
    return (
        f"📝 *Register ENS Name*\n\n"
        f"Name: {views.md(label)}.eth\n"
        f"Duration: {ctx.collected['years']} year(s)\n"
        f"Price: {Web3.from_wei(price, 'ether')} ETH (plus gas)\n\n"
        f"Registration takes two transactions about a minute apart."
    )


async def register_ens(engine: FlowEngine, ctx) -> FlowResult:
    names = engine.names
    wallet = engine.wallet_for(ctx, names.chain)
    label = ctx.collected["label"]
    duration = ctx.collected["years"] * SECONDS_PER_YEAR
    # 10% headroom for price movement; the controller refunds the excess
    value = ctx.extras["price"] * 110 // 100
    balance = await asyncio.to_thread(engine.require_balance, wallet, Decimal(Web3.from_wei(value, "ether")))
    logger.debug(f"Registering {label}.eth with balance {balance}")

    secret = secrets.token_bytes(32)
    commit_hash = await asyncio.to_thread(names.commit, wallet, label, duration, secret)
    _log_transaction(engine, ctx, wallet, commit_hash, "ens_commit", counterparty=f"{label}.eth")
    await engine.channel.send_text(
        ctx.conversation_id,
        f"⏳ Commitment sent (`{commit_hash}`). Waiting before registering..."
    )
    not_registered = f"{label}.eth was not registered."
    receipt = await _confirmed(engine, wallet, commit_hash)
    engine.ensure_session(ctx, not_registered)
    if receipt is None or receipt["status"] != 1:
        return FlowResult(f"❌ The commitment for {label}.eth was not confirmed. Nothing was registered.")

    min_age = await asyncio.to_thread(names.min_commitment_age)
    await asyncio.sleep(min_age + 1)
    engine.ensure_session(ctx, not_registered)

    register_hash = await asyncio.to_thread(names.register, wallet, label, duration, secret, value)
    _log_transaction(engine, ctx, wallet, register_hash, "ens_register",
                     amount=f"{Web3.from_wei(value, 'ether')} ETH", counterparty=f"{label}.eth")
    return FlowResult(
        f"✅ Registration sent for *{views.md(label)}.eth*!\n\n"
        f"🧾 Transaction: `{register_hash}`\n{_explorer_link(wallet.chain, register_hash)}",
        views.back_to_main_keyboard(),
    )


# Read-only token lookup

async def lookup_token(engine: FlowEngine, ctx) -> FlowResult:
    snapshot = await asyncio.to_thread(
        engine.market.get_pool_token_snapshot, ctx.collected["network"], ctx.collected["address"]
    )
    await engine.channel.send_text(ctx.conversation_id, views.token_snapshot(snapshot), formatting="HTML")
    return FlowResult("What would you like to do next?", views.back_to_main_keyboard())


def lookup_networks(ctx):
    return list(config.TOKEN_LOOKUP_NETWORKS)


def build_wallet_flows(token_artifact: Optional[TokenArtifact] = None,
                       token_artifact_path: str = None) -> List[FlowDefinition]:
    return [
        FlowDefinition(
            flow_id="create_wallet",
            requires_session=False,
            steps=[Action(create_wallet)],
        ),
        FlowDefinition(
            flow_id="import_wallet",
            requires_session=False,
            steps=[
                Prompt(
                    "secret",
                    "🔑 Please enter your private key.\n\n"
                    "⚠️ Your message will be deleted as soon as I've read it.",
                    validator=secret_text,
                    sensitive=True,
                ),
                Action(import_wallet),
            ],
        ),
        FlowDefinition(
            flow_id="switch_network",
            steps=[
                Choice("chain", "🔄 Select a network to switch to:", chain_options),
                Action(switch_network),
            ],
        ),
        build_create_token_flow(token_artifact, token_artifact_path),
        FlowDefinition(
            flow_id="send_funds",
            mutating=True,
            steps=[
                Prompt("recipient", "📮 Enter the recipient's address:", validator=address),
                Prompt(
                    "amount",
                    lambda ctx: f"💰 Enter the amount to send (in {ctx.session.wallet.chain.symbol}):",
                    validator=positive_amount,
                    verify=amount_within_balance,
                ),
                Confirm(send_summary),
                Action(send_funds),
            ],
        ),
        FlowDefinition(
            flow_id="transfer_token",
            mutating=True,
            steps=[
                Prompt("token", "🪙 Send the token contract address:", validator=address, verify=erc20_token),
                Prompt("recipient", "📮 Enter the recipient's address:", validator=address),
                Prompt(
                    "amount",
                    lambda ctx: f"💰 How many {ctx.extras['token']['symbol']} do you want to send?",
                    validator=positive_amount,
                    verify=amount_within_token_balance,
                ),
                Confirm(transfer_summary),
                Action(transfer_token),
            ],
        ),
        FlowDefinition(
            flow_id="ens_register",
            mutating=True,
            steps=[
                Prompt("label", "📝 Which .eth name do you want to register?", validator=ens_label,
                       verify=available_label),
                Prompt("years", "📅 For how many years? (1-10)", validator=years),
                Confirm(ens_summary),
                Action(register_ens),
            ],
        ),
        FlowDefinition(
            flow_id="token_lookup",
            requires_session=False,
            steps=[
                Choice("network", "🌐 Please select a network:", lookup_networks),
                Prompt("address", "🔎 Please enter the token address:", validator=address),
                Action(lookup_token),
            ],
        ),
    ]


def register_wallet_flows(engine: FlowEngine, **kwargs):
    for flow in build_wallet_flows(**kwargs):
        engine.register(flow)
