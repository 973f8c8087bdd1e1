import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import CHAT_ID, RECIPIENT, sent_texts
from walletbot.chains import get_chain
from walletbot.errors import NotConnected, UnknownSelection, UpstreamUnavailable, ValidationFailed
from walletbot.flows import FlowOutcome
from walletbot.ledger import LedgerClient
from walletbot.market_data import LargeTransfer, TokenSnapshot
from walletbot.router import (
    CancelFlow,
    Disconnect,
    ExpiringNames,
    MenuRouter,
    NameLookup,
    SelectOption,
    ShowMenu,
    StartFlow,
    TokenInfo,
    TransactionHistory,
    WhaleAlerts,
    WhaleWatch,
    parse_callback,
    parse_command,
)


@pytest.fixture
def router(engine):
    return MenuRouter(
        engine,
        market=MagicMock(),
        whales=MagicMock(),
        watcher=MagicMock(),
        names=MagicMock(),
        history=MagicMock(),
    )


@pytest.mark.parametrize("text, expected", [
    ("/start", ShowMenu("main")),
    ("/help", ShowMenu("help")),
    ("/createwallet", StartFlow("create_wallet")),
    ("/createtoken@WalletBot", StartFlow("create_token")),
    ("/importwallet", StartFlow("import_wallet")),
    ("/importwallet 0xabc", StartFlow("import_wallet", {"secret": "0xabc"})),
    ("/send", StartFlow("send_funds")),
    ("/switchnetwork", StartFlow("switch_network")),
    ("/registerens", StartFlow("ens_register")),
    ("/tokeninfo", StartFlow("token_lookup")),
    ("/tokeninfo wrapped bitcoin", TokenInfo("wrapped bitcoin")),
    ("/whalereport", WhaleAlerts()),
    ("/watchwhales ON", WhaleWatch(True)),
    ("/ens vitalik.eth", NameLookup("vitalik.eth")),
    ("/expiring", ExpiringNames(None)),
    ("/expiring 3", ExpiringNames(3)),
    ("/history", TransactionHistory()),
    ("/disconnect", Disconnect()),
    ("/cancel", CancelFlow()),
])
def test_parse_command(text, expected):
    assert parse_command(text) == expected


def test_parse_command_rejects_bad_arguments():
    assert parse_command("/frobnicate") is None
    with pytest.raises(ValidationFailed):
        parse_command("/watchwhales sometimes")
    with pytest.raises(ValidationFailed):
        parse_command("/ens")
    with pytest.raises(ValidationFailed):
        parse_command("/expiring three")
    with pytest.raises(ValidationFailed):
        parse_command("/expiring ³")


@pytest.mark.parametrize("data, expected", [
    ("wallet_menu", ShowMenu("wallet_menu")),
    ("back_to_main", ShowMenu("main")),
    ("create_token", StartFlow("create_token")),
    ("register_ens", StartFlow("ens_register")),
    ("token_info", StartFlow("token_lookup")),
    ("disconnect_wallet", Disconnect()),
    ("cancel", CancelFlow()),
    ("choice:gnosis", SelectOption("gnosis")),
    ("switch_to_chain:rootstock", StartFlow("switch_network", {"chain": "rootstock"})),
    ("deploy_token:airdao:MyToken:MTK:1000", StartFlow(
        "create_token", {"chain": "airdao", "name": "MyToken", "symbol": "MTK", "supply": "1000"}
    )),
])
def test_parse_callback(data, expected):
    assert parse_callback(data) == expected


@pytest.mark.parametrize("data", ["", "bogus", "choice:", "deploy_token:airdao:MyToken", "switch_to_chain:"])
def test_parse_callback_rejects_unknown_data(data):
    with pytest.raises(UnknownSelection):
        parse_callback(data)


def test_flow_command_without_wallet_sends_one_message(router, ledger, channel):
    asyncio.run(router.handle_text(CHAT_ID, "/createtoken"))
    assert sent_texts(channel) == [NotConnected.user_message]
    assert ledger.method_calls == []


def test_text_without_pending_step_gets_a_hint(router, channel):
    asyncio.run(router.handle_text(CHAT_ID, "hello there"))
    assert sent_texts(channel)[0].startswith("ℹ️ Use the menu below")


def test_unknown_callback_is_reported(router, channel):
    asyncio.run(router.handle_selection(CHAT_ID, "sell_everything"))
    assert sent_texts(channel) == [UnknownSelection("sell_everything").user_message]


def test_stale_menu_selection(router, channel):
    asyncio.run(router.handle_selection(CHAT_ID, "choice:gnosis"))
    assert sent_texts(channel) == ["⚠️ This menu is no longer active."]


def test_text_reply_reaches_the_running_flow(router, engine, chat, ledger, channel, connected):
    async def scenario():
        await router.handle_text(CHAT_ID, "/send")
        await chat.wait_for_prompt()
        await router.handle_text(CHAT_ID, RECIPIENT, message_id=10)
        await chat.wait_for_prompt()
        await router.handle_text(CHAT_ID, "0.25", message_id=11)
        await chat.wait_for_prompt()
        await router.handle_text(CHAT_ID, "confirm", message_id=12)
        await chat.wait_until_idle()

    asyncio.run(scenario())
    assert ledger.send_value.call_args.args[2] == Decimal("0.25")
    channel.delete_message.assert_not_called()


def test_menu_selection_reaches_the_running_flow(router, engine, chat, sessions, connected):
    async def scenario():
        await router.handle_selection(CHAT_ID, "switch_network", message_id=5)
        await chat.wait_for_prompt()
        await router.handle_selection(CHAT_ID, "choice:gnosis", message_id=42)
        await chat.wait_until_idle()

    asyncio.run(scenario())
    assert sessions.get(CHAT_ID).network_id == "gnosis"


def test_private_key_messages_are_deleted(router, engine, chat, ledger, sessions, channel):
    ledger.derive_account.side_effect = LedgerClient().derive_account

    async def scenario():
        await router.handle_text(CHAT_ID, "/importwallet")
        await chat.wait_for_prompt()
        await router.handle_text(CHAT_ID, "0x" + "11" * 32, message_id=77)
        await chat.wait_until_idle()

    asyncio.run(scenario())
    channel.delete_message.assert_called_once_with(CHAT_ID, 77)
    assert sessions.is_connected(CHAT_ID)


def test_importwallet_with_inline_key_is_deleted(router, engine, chat, ledger, sessions, channel):
    ledger.derive_account.side_effect = LedgerClient().derive_account

    async def scenario():
        await router.handle_text(CHAT_ID, "/importwallet " + "11" * 32, message_id=78)
        await chat.wait_until_idle()

    asyncio.run(scenario())
    channel.delete_message.assert_called_once_with(CHAT_ID, 78)
    assert sessions.is_connected(CHAT_ID)


def test_disconnect_cancels_flow_and_forgets_wallet(router, engine, chat, sessions, channel, connected):
    async def scenario():
        await router.handle_text(CHAT_ID, "/createtoken")
        await chat.wait_for_prompt()
        await router.handle_text(CHAT_ID, "/disconnect")
        await chat.wait_until_idle()

    asyncio.run(scenario())
    assert not sessions.is_connected(CHAT_ID)
    assert "❌ Operation cancelled." in sent_texts(channel)
    assert any(text.startswith("🔌 Wallet disconnected") for text in sent_texts(channel))


def test_cancel_with_nothing_running(router, channel):
    asyncio.run(router.handle_text(CHAT_ID, "/cancel"))
    assert sent_texts(channel) == ["ℹ️ There is nothing to cancel."]


def test_callback_menus_edit_the_pressed_message(router, channel, connected):
    asyncio.run(router.handle_selection(CHAT_ID, "wallet_menu", message_id=9))
    conversation_id, message_id, text, options = channel.edit_menu.call_args.args
    assert message_id == 9
    assert "Balance: 1 AMB" in text
    assert [("🔌 Disconnect Wallet", "disconnect_wallet")] in options


def test_start_shows_main_menu_even_if_balance_fails(router, ledger, channel, connected):
    ledger.balance.side_effect = ConnectionError("rpc down")
    asyncio.run(router.handle_text(CHAT_ID, "/start"))
    assert "Balance: unavailable" in sent_texts(channel)[0]


def test_tokeninfo_renders_html(router, channel):
    router.market.get_token_snapshot.return_value = TokenSnapshot(name="Bitcoin", symbol="BTC", price=65000)
    asyncio.run(router.handle_text(CHAT_ID, "/tokeninfo bitcoin"))
    router.market.get_token_snapshot.assert_called_once_with("bitcoin")
    assert channel.send_text.call_args.kwargs["formatting"] == "HTML"
    assert "<b>Bitcoin Analysis</b>" in sent_texts(channel)[0]


def test_upstream_failure_becomes_one_message(router, channel):
    router.market.get_token_snapshot.side_effect = UpstreamUnavailable("CoinGecko")
    asyncio.run(router.handle_text(CHAT_ID, "/tokeninfo bitcoin"))
    assert sent_texts(channel) == ["❌ CoinGecko is unavailable right now. Please try again later."]


def test_whale_alerts(router, channel):
    router.whales.poll_recent_large_transfers.return_value = [
        LargeTransfer("bitcoin", "btc", 500, 30000000, "unknown", "binance", "abc123", 1700000000),
    ]
    asyncio.run(router.handle_text(CHAT_ID, "/whalealerts"))
    assert "Whale Alert" in sent_texts(channel)[0]
    assert "abc123" in sent_texts(channel)[0]

    router.whales.poll_recent_large_transfers.return_value = []
    asyncio.run(router.handle_text(CHAT_ID, "/whalealerts"))
    assert sent_texts(channel)[-1] == "🐳 No recent whale transactions."


def test_watchwhales_subscribes_chat(router):
    asyncio.run(router.handle_text(CHAT_ID, "/watchwhales on"))
    router.watcher.subscribe.assert_called_once_with(CHAT_ID)
    asyncio.run(router.handle_text(CHAT_ID, "/watchwhales off"))
    router.watcher.unsubscribe.assert_called_once_with(CHAT_ID)


def test_ens_lookup_forward_and_reverse(router, channel):
    router.names.resolve_name.return_value = "0x" + "12" * 20
    router.names.get_expiry.return_value = None
    asyncio.run(router.handle_text(CHAT_ID, "/ens vitalik"))
    router.names.resolve_name.assert_called_once_with("vitalik.eth")

    router.names.resolve_address.return_value = None
    asyncio.run(router.handle_text(CHAT_ID, "/ens " + "0x" + "12" * 20))
    assert sent_texts(channel)[-1].startswith("🔎 No ENS record found")


def test_my_tokens_lists_history(router, channel):
    router.history.get_tokens.return_value = [
        {"chain": "airdao", "address": "0x" + "ef" * 20, "name": "MyToken", "symbol": "MTK",
         "supply": "1000", "tx_hash": "0x01"},
    ]
    asyncio.run(router.handle_text(CHAT_ID, "/mytokens"))
    router.history.get_tokens.assert_called_once_with(CHAT_ID)
    assert "MyToken (MTK) on AirDAO Mainnet" in sent_texts(channel)[0]


def test_unknown_command_is_answered(router, channel):
    asyncio.run(router.handle_text(CHAT_ID, "/frobnicate"))
    assert sent_texts(channel) == ["❓ Unknown command. Send /help for the list."]


def test_disconnect_during_name_commitment_stops_registration(router, engine, chat, channel, connected):
    names = engine.names
    names.chain = get_chain("mainnet")
    names.available.return_value = True
    names.rent_price.return_value = 10 ** 16
    names.min_commitment_age.return_value = 0
    names.commit.return_value = "0xcommit"
    names.register.return_value = "0xregister"

    async def scenario():
        task = await engine.start(CHAT_ID, "ens_register")
        await chat.reply("myname")
        await chat.reply("1")
        await chat.reply("confirm")
        for _ in range(100):
            if names.commit.called:
                break
            await asyncio.sleep(0.01)
        await router.handle_text(CHAT_ID, "/disconnect")
        return await task

    assert asyncio.run(scenario()) == FlowOutcome.CANCELLED
    names.commit.assert_called_once()
    names.register.assert_not_called()
    assert "changed while this operation was open" in sent_texts(channel)[-1]
    assert "myname.eth was not registered" in sent_texts(channel)[-1]
