"""
Market data

Read-only HTTP sources: CoinGecko coin snapshots, GeckoTerminal token
snapshots and the Whale Alert large-transaction feed, plus the watcher that
posts whale alerts to subscribed chats.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

import requests

from walletbot import config, views
from walletbot.errors import NotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
}


@dataclass
class TokenSnapshot:
    name: str
    symbol: Optional[str] = None
    price: Optional[float] = None
    market_cap: Optional[float] = None
    change_1h: Optional[float] = None
    change_24h: Optional[float] = None
    change_7d: Optional[float] = None
    volume: Optional[float] = None
    ath: Optional[float] = None
    atl: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    sentiment_up: Optional[float] = None
    sentiment_down: Optional[float] = None


@dataclass
class LargeTransfer:
    blockchain: str
    symbol: str
    amount: float
    amount_usd: float
    from_owner: Optional[str]
    to_owner: Optional[str]
    hash: str
    timestamp: int


def _usd(data: Dict[str, Any], key: str):
    return (data.get(key) or {}).get("usd")


def _get_json(service: str, url: str, params: Dict[str, Any] = None, what: str = None) -> Dict[str, Any]:
    try:
        response = requests.get(url, params=params, headers=HEADERS, timeout=config.HTTP_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"Error calling {service}: {e}")
        raise UpstreamUnavailable(service, str(e)) from e

    if response.status_code == 404 and what is not None:
        raise NotFound(what)
    if response.status_code != 200:
        logger.error(f"{service} returned {response.status_code}: {response.text[:200]}")
        raise UpstreamUnavailable(service, f"HTTP {response.status_code}")
    return response.json()


class MarketDataSource:
    def __init__(self, coingecko_url: str = None, geckoterminal_url: str = None):
        self.coingecko_url = coingecko_url or config.COINGECKO_API_URL
        self.geckoterminal_url = geckoterminal_url or config.GECKOTERMINAL_API_URL

    def get_token_snapshot(self, token: str) -> TokenSnapshot:
        """Market data for a CoinGecko coin id or name ("wrapped bitcoin" works too)."""
        coin_id = "-".join(token.split()).lower()
        data = _get_json(
            "CoinGecko",
            f"{self.coingecko_url}/coins/{coin_id}",
            params={"localization": "false", "tickers": "false", "community_data": "false", "developer_data": "false"},
            what=f"a token named {token}",
        )
        market = data.get("market_data") or {}
        return TokenSnapshot(
            name=data.get("name") or token,
            symbol=(data.get("symbol") or "").upper() or None,
            price=_usd(market, "current_price"),
            market_cap=_usd(market, "market_cap"),
            change_1h=_usd(market, "price_change_percentage_1h_in_currency"),
            change_24h=_usd(market, "price_change_percentage_24h_in_currency"),
            change_7d=_usd(market, "price_change_percentage_7d_in_currency"),
            volume=_usd(market, "total_volume"),
            ath=_usd(market, "ath"),
            atl=_usd(market, "atl"),
            circulating_supply=market.get("circulating_supply"),
            total_supply=market.get("max_supply"),
            sentiment_up=data.get("sentiment_votes_up_percentage"),
            sentiment_down=data.get("sentiment_votes_down_percentage"),
        )

    def get_pool_token_snapshot(self, network: str, token_address: str) -> TokenSnapshot:
        """Market data for a token contract on a GeckoTerminal network."""
        data = _get_json(
            "GeckoTerminal",
            f"{self.geckoterminal_url}/networks/{network}/tokens/{token_address}",
            what=f"token {token_address} on {network}",
        )
        attributes = (data.get("data") or {}).get("attributes") or {}
        if not attributes:
            raise NotFound(f"token {token_address} on {network}")
        return TokenSnapshot(
            name=attributes.get("name") or token_address,
            symbol=attributes.get("symbol"),
            price=attributes.get("price_usd"),
            market_cap=attributes.get("market_cap_usd") or attributes.get("fdv_usd"),
            volume=(attributes.get("volume_usd") or {}).get("h24"),
            total_supply=attributes.get("total_supply"),
        )


class WhaleAlertFeed:
    def __init__(self, api_key: str = None, api_url: str = None):
        self.api_key = api_key if api_key is not None else config.WHALE_ALERT_API_KEY
        self.api_url = api_url or config.WHALE_ALERT_API_URL

    def poll_recent_large_transfers(self, min_value_usd: int, since: int) -> List[LargeTransfer]:
        data = _get_json(
            "Whale Alert",
            self.api_url,
            params={"api_key": self.api_key, "min_value": min_value_usd, "start": since},
        )
        transfers = []
        for tx in data.get("transactions") or []:
            transfers.append(LargeTransfer(
                blockchain=tx.get("blockchain", "unknown"),
                symbol=tx.get("symbol", ""),
                amount=tx.get("amount"),
                amount_usd=tx.get("amount_usd"),
                from_owner=(tx.get("from") or {}).get("owner"),
                to_owner=(tx.get("to") or {}).get("owner"),
                hash=tx.get("hash", ""),
                timestamp=tx.get("timestamp", since),
            ))
        return transfers


class WhaleWatcher:
    """Posts new whale transfers to subscribed chats on every tick."""

    def __init__(self, feed: WhaleAlertFeed, channel, min_value_usd: int = None, lookback: int = None):
        self.feed = feed
        self.channel = channel
        self.min_value_usd = min_value_usd or config.WHALE_MIN_VALUE_USD
        self.lookback = lookback or config.WHALE_LOOKBACK
        self.subscribers: Set[Any] = set()
        self._last_poll: Optional[int] = None
        self._seen = deque(maxlen=500)

    def subscribe(self, conversation_id):
        self.subscribers.add(conversation_id)

    def unsubscribe(self, conversation_id):
        self.subscribers.discard(conversation_id)

    async def tick(self, now: int = None):
        if not self.subscribers:
            return
        now = now or int(time.time())
        since = self._last_poll or now - self.lookback
        try:
            transfers = await asyncio.to_thread(self.feed.poll_recent_large_transfers, self.min_value_usd, since)
        except UpstreamUnavailable as e:
            logger.warning(f"Skipping whale alert poll: {e.detail}")
            return
        self._last_poll = now

        fresh = [t for t in transfers if t.hash not in self._seen]
        for transfer in fresh:
            self._seen.append(transfer.hash)
            for conversation_id in list(self.subscribers):
                await self.channel.send_text(conversation_id, views.whale_alert(transfer), formatting="HTML")
        if fresh:
            logger.info(f"Posted {len(fresh)} whale alerts to {len(self.subscribers)} chats")
