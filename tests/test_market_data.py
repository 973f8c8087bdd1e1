import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from walletbot.errors import NotFound, UpstreamUnavailable
from walletbot.market_data import LargeTransfer, MarketDataSource, WhaleAlertFeed, WhaleWatcher


def _response(status_code=200, payload=None):
    response = MagicMock(status_code=status_code, text="")
    response.json.return_value = payload or {}
    return response


COINGECKO_BITCOIN = {
    "name": "Bitcoin",
    "symbol": "btc",
    "sentiment_votes_up_percentage": 80.5,
    "sentiment_votes_down_percentage": 19.5,
    "market_data": {
        "current_price": {"usd": 65000},
        "market_cap": {"usd": 1200000000000},
        "price_change_percentage_1h_in_currency": {"usd": 0.1},
        "price_change_percentage_24h_in_currency": {"usd": -1.2},
        "price_change_percentage_7d_in_currency": {"usd": 3.4},
        "total_volume": {"usd": 30000000000},
        "ath": {"usd": 73000},
        "atl": {"usd": 67.81},
        "circulating_supply": 19700000,
        "max_supply": 21000000,
    },
}


def test_coingecko_snapshot(mocker):
    mock_get = mocker.patch("walletbot.market_data.requests.get", return_value=_response(payload=COINGECKO_BITCOIN))

    snapshot = MarketDataSource(coingecko_url="https://cg.test").get_token_snapshot("Wrapped Bitcoin")

    assert mock_get.call_args.args[0] == "https://cg.test/coins/wrapped-bitcoin"
    assert snapshot.name == "Bitcoin"
    assert snapshot.symbol == "BTC"
    assert snapshot.price == 65000
    assert snapshot.change_24h == -1.2
    assert snapshot.total_supply == 21000000
    assert snapshot.sentiment_up == 80.5


def test_coingecko_unknown_coin(mocker):
    mocker.patch("walletbot.market_data.requests.get", return_value=_response(status_code=404))
    with pytest.raises(NotFound):
        MarketDataSource().get_token_snapshot("notacoin")


def test_coingecko_rate_limited(mocker):
    mocker.patch("walletbot.market_data.requests.get", return_value=_response(status_code=429))
    with pytest.raises(UpstreamUnavailable) as excinfo:
        MarketDataSource().get_token_snapshot("bitcoin")
    assert excinfo.value.service == "CoinGecko"


def test_network_error_is_upstream_unavailable(mocker):
    mocker.patch("walletbot.market_data.requests.get", side_effect=requests.ConnectionError("boom"))
    with pytest.raises(UpstreamUnavailable):
        MarketDataSource().get_pool_token_snapshot("eth", "0xabc")


def test_geckoterminal_snapshot(mocker):
    payload = {"data": {"attributes": {
        "name": "Pepe", "symbol": "PEPE", "price_usd": "0.00001",
        "fdv_usd": "4000000000", "volume_usd": {"h24": "1000000"}, "total_supply": "420690000000000",
    }}}
    mock_get = mocker.patch("walletbot.market_data.requests.get", return_value=_response(payload=payload))

    snapshot = MarketDataSource(geckoterminal_url="https://gt.test").get_pool_token_snapshot("eth", "0xabc")

    assert mock_get.call_args.args[0] == "https://gt.test/networks/eth/tokens/0xabc"
    assert snapshot.symbol == "PEPE"
    assert snapshot.market_cap == "4000000000"
    assert snapshot.volume == "1000000"


def test_whale_feed_parses_transactions(mocker):
    payload = {"transactions": [{
        "blockchain": "ethereum", "symbol": "usdt", "amount": 5000000, "amount_usd": 5000000,
        "from": {"owner": "binance"}, "to": {"owner_type": "unknown"}, "hash": "0xhash", "timestamp": 1700000000,
    }]}
    mock_get = mocker.patch("walletbot.market_data.requests.get", return_value=_response(payload=payload))

    transfers = WhaleAlertFeed(api_key="key").poll_recent_large_transfers(1000000, 1699999700)

    assert mock_get.call_args.kwargs["params"] == {"api_key": "key", "min_value": 1000000, "start": 1699999700}
    assert transfers == [LargeTransfer("ethereum", "usdt", 5000000, 5000000, "binance", None, "0xhash", 1700000000)]


def _transfer(tx_hash):
    return LargeTransfer("bitcoin", "btc", 100, 6500000, None, None, tx_hash, 1700000000)


def test_watcher_posts_each_transfer_once():
    feed = MagicMock()
    channel = MagicMock()
    channel.send_text = AsyncMock(return_value=1)
    watcher = WhaleWatcher(feed, channel, min_value_usd=500000, lookback=300)
    watcher.subscribe(1)
    watcher.subscribe(2)

    feed.poll_recent_large_transfers.return_value = [_transfer("a"), _transfer("b")]
    asyncio.run(watcher.tick(now=1000))
    feed.poll_recent_large_transfers.assert_called_with(500000, 700)
    assert channel.send_text.await_count == 4

    feed.poll_recent_large_transfers.return_value = [_transfer("b"), _transfer("c")]
    asyncio.run(watcher.tick(now=1300))
    feed.poll_recent_large_transfers.assert_called_with(500000, 1000)
    assert channel.send_text.await_count == 6
    assert channel.send_text.call_args.kwargs["formatting"] == "HTML"


def test_watcher_without_subscribers_does_not_poll():
    feed = MagicMock()
    watcher = WhaleWatcher(feed, MagicMock())
    asyncio.run(watcher.tick())
    feed.poll_recent_large_transfers.assert_not_called()


def test_watcher_survives_upstream_failure():
    feed = MagicMock()
    feed.poll_recent_large_transfers.side_effect = UpstreamUnavailable("Whale Alert", "HTTP 500")
    channel = MagicMock()
    channel.send_text = AsyncMock()
    watcher = WhaleWatcher(feed, channel)
    watcher.subscribe(1)

    asyncio.run(watcher.tick(now=1000))

    channel.send_text.assert_not_called()
    watcher.unsubscribe(1)
    assert not watcher.subscribers
