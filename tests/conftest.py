import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from walletbot.chains import get_chain
from walletbot.dialogs import ReplyKind
from walletbot.flows import FlowEngine
from walletbot.ledger import TokenArtifact, WalletHandle
from walletbot.sessions import Session, SessionStore
from walletbot.wallet_flows import register_wallet_flows

CHAT_ID = 4242
ADDRESS = "0x" + "12" * 20
RECIPIENT = "0x" + "ab" * 20
TOKEN = "0x" + "cd" * 20
DEPLOY_HASH = "0xdeadbeef"
TOKEN_ADDRESS = "0x" + "ef" * 20


def make_handle(chain_key="airdao", address=ADDRESS):
    return WalletHandle(account=MagicMock(address=address), chain=get_chain(chain_key), w3=MagicMock())


class ChatDriver:
    """Plays the user's side of a conversation against the engine's pending steps."""

    def __init__(self, engine, conversation_id=CHAT_ID):
        self.engine = engine
        self.conversation_id = conversation_id

    async def wait_for_prompt(self):
        for _ in range(500):
            step = self.engine.dialogs.pending(self.conversation_id)
            if step is not None:
                return step
            await asyncio.sleep(0.01)
        raise AssertionError("the flow never asked for a reply")

    async def wait_until_idle(self):
        for _ in range(500):
            if not self.engine.is_active(self.conversation_id):
                return
            await asyncio.sleep(0.01)
        raise AssertionError("the flow is still running")

    async def reply(self, text):
        await self.wait_for_prompt()
        assert await self.engine.dialogs.deliver(self.conversation_id, ReplyKind.TEXT, text)

    async def select(self, value):
        await self.wait_for_prompt()
        assert await self.engine.dialogs.deliver(self.conversation_id, ReplyKind.SELECTION, value)


@pytest.fixture
def channel():
    channel = MagicMock()
    # texts of sent messages and menus, in order
    channel.sent = []

    async def send_text(conversation_id, text, formatting="Markdown"):
        channel.sent.append(text)
        return 1

    async def send_menu(conversation_id, prompt, options, formatting="Markdown"):
        channel.sent.append(prompt)
        return 42

    channel.send_text = AsyncMock(side_effect=send_text)
    channel.send_menu = AsyncMock(side_effect=send_menu)
    channel.edit_menu = AsyncMock()
    channel.delete_message = AsyncMock()
    return channel


@pytest.fixture
def ledger():
    ledger = MagicMock()
    ledger.balance.return_value = Decimal("1")
    ledger.create_account.return_value = (MagicMock(address=ADDRESS), "0x" + "11" * 32)
    ledger.connect.side_effect = lambda account, chain: make_handle(chain.key, account.address)
    ledger.switch_chain.side_effect = lambda handle, chain: make_handle(chain.key, handle.address)
    ledger.deploy_contract.return_value = DEPLOY_HASH
    ledger.send_value.return_value = "0xsendhash"
    ledger.transfer_token.return_value = "0xtransferhash"
    ledger.wait_for_confirmation.return_value = {
        "status": 1,
        "contractAddress": TOKEN_ADDRESS,
        "blockNumber": 1234,
    }
    return ledger


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def engine(channel, sessions, ledger):
    engine = FlowEngine(
        channel, sessions, ledger,
        market=MagicMock(), names=MagicMock(),
        step_timeout=5, min_deploy_balance=Decimal("0.01"), default_chain="airdao",
    )
    register_wallet_flows(engine, token_artifact=TokenArtifact(abi=[], bytecode="0x6000"))
    return engine


@pytest.fixture
def connected(sessions):
    """A session on AirDAO for CHAT_ID."""
    session = Session(wallet=make_handle(), network_id="airdao")
    sessions.put(CHAT_ID, session)
    return session


@pytest.fixture
def chat(engine):
    return ChatDriver(engine)


def sent_texts(channel):
    """Every text the bot sent, plain messages and menus alike, oldest first."""
    return list(channel.sent)
