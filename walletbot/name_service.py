"""
ENS name service

Forward/reverse resolution goes through web3's ENS module on Ethereum
mainnet, expiry data comes from the ENS subgraph and registrations use the
ETH registrar controller's commit/reveal scheme.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from web3 import Web3

from walletbot import config
from walletbot.chains import Chain, get_chain
from walletbot.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

EXPIRY_QUERY = """
query Expiry($name: String!) {
  domains(where: { name: $name }) {
    name
    expiryDate
  }
}
"""

EXPIRING_QUERY = """
query ExpiringDomains($first: Int!, $currentDate: Int!) {
  domains(
    first: $first,
    orderBy: expiryDate,
    orderDirection: asc,
    where: { expiryDate_gt: $currentDate }
  ) {
    id
    name
    labelName
    expiryDate
  }
}
"""

CONTROLLER_ABI = [
    {"inputs": [{"internalType": "string", "name": "name", "type": "string"}], "name": "available", "outputs": [{"internalType": "bool", "name": "", "type": "bool"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "minCommitmentAge", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "string", "name": "name", "type": "string"}, {"internalType": "uint256", "name": "duration", "type": "uint256"}], "name": "rentPrice", "outputs": [{"components": [{"internalType": "uint256", "name": "base", "type": "uint256"}, {"internalType": "uint256", "name": "premium", "type": "uint256"}], "internalType": "struct IPriceOracle.Price", "name": "price", "type": "tuple"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "string", "name": "name", "type": "string"}, {"internalType": "address", "name": "owner", "type": "address"}, {"internalType": "uint256", "name": "duration", "type": "uint256"}, {"internalType": "bytes32", "name": "secret", "type": "bytes32"}, {"internalType": "address", "name": "resolver", "type": "address"}, {"internalType": "bytes[]", "name": "data", "type": "bytes[]"}, {"internalType": "bool", "name": "reverseRecord", "type": "bool"}, {"internalType": "uint16", "name": "ownerControlledFuses", "type": "uint16"}], "name": "makeCommitment", "outputs": [{"internalType": "bytes32", "name": "", "type": "bytes32"}], "stateMutability": "pure", "type": "function"},
    {"inputs": [{"internalType": "bytes32", "name": "commitment", "type": "bytes32"}], "name": "commit", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"internalType": "string", "name": "name", "type": "string"}, {"internalType": "address", "name": "owner", "type": "address"}, {"internalType": "uint256", "name": "duration", "type": "uint256"}, {"internalType": "bytes32", "name": "secret", "type": "bytes32"}, {"internalType": "address", "name": "resolver", "type": "address"}, {"internalType": "bytes[]", "name": "data", "type": "bytes[]"}, {"internalType": "bool", "name": "reverseRecord", "type": "bool"}, {"internalType": "uint16", "name": "ownerControlledFuses", "type": "uint16"}], "name": "register", "outputs": [], "stateMutability": "payable", "type": "function"}
]


@dataclass
class TimeLeft:
    days: int
    hours: int
    minutes: int


@dataclass
class ExpiringName:
    name: str
    expiry: datetime
    time_until_expiry: TimeLeft


def time_left(expiry_ts: int, now: float = None) -> TimeLeft:
    seconds = max(0, int(expiry_ts - (now if now is not None else time.time())))
    return TimeLeft(
        days=seconds // 86400,
        hours=(seconds % 86400) // 3600,
        minutes=(seconds % 3600) // 60,
    )


class NameService:
    def __init__(self, ledger, chain: Chain = None, subgraph_url: str = None):
        self.ledger = ledger
        self.chain = chain or get_chain("mainnet")
        self.subgraph_url = subgraph_url or config.ENS_SUBGRAPH_URL
        self._w3 = None

    @property
    def w3(self) -> Web3:
        if self._w3 is None:
            self._w3 = Web3(Web3.HTTPProvider(self.chain.rpc_url, request_kwargs={'timeout': config.RPC_TIMEOUT}))
        return self._w3

    # Lookups

    def resolve_name(self, name: str) -> Optional[str]:
        return self.w3.ens.address(name)

    def resolve_address(self, address: str) -> Optional[str]:
        return self.w3.ens.name(Web3.to_checksum_address(address))

    def get_expiry(self, name: str) -> Optional[datetime]:
        data = self._query(EXPIRY_QUERY, {"name": name.lower()})
        domains = data.get("domains") or []
        if not domains or not domains[0].get("expiryDate"):
            return None
        return datetime.fromtimestamp(int(domains[0]["expiryDate"]), tz=timezone.utc)

    def find_expiring_soon(self, name_length: Optional[int] = None, first: int = 10) -> List[ExpiringName]:
        """Names closest to expiry, optionally only those whose label has ``name_length`` characters."""
        now = time.time()
        # the subgraph can't filter on label length, so over-fetch and filter here
        fetch = first if name_length is None else first * 10
        data = self._query(EXPIRING_QUERY, {"first": fetch, "currentDate": int(now)})

        results = []
        for domain in data.get("domains") or []:
            label = domain.get("labelName")
            if name_length is not None and (label is None or len(label) != name_length):
                continue
            expiry_ts = int(domain["expiryDate"])
            results.append(ExpiringName(
                name=domain.get("name") or f"[{domain.get('id')}]",
                expiry=datetime.fromtimestamp(expiry_ts, tz=timezone.utc),
                time_until_expiry=time_left(expiry_ts, now),
            ))
            if len(results) == first:
                break
        return results

    # Registration

    def available(self, label: str) -> bool:
        return self._controller(self.w3).functions.available(label).call()

    def rent_price(self, label: str, duration: int) -> int:
        """Price in wei for registering ``label`` for ``duration`` seconds."""
        base, premium = self._controller(self.w3).functions.rentPrice(label, duration).call()
        return base + premium

    def min_commitment_age(self) -> int:
        return self._controller(self.w3).functions.minCommitmentAge().call()

    def commit(self, handle, label: str, duration: int, secret: bytes) -> str:
        controller = self._controller(handle.w3)
        commitment = controller.functions.makeCommitment(*self._registration_args(handle, label, duration, secret)).call()
        transaction = controller.functions.commit(commitment).build_transaction(self.ledger.transaction_params(handle))
        tx_hash = self.ledger.submit(handle, transaction)
        logger.info(f"ENS commitment for {label}.eth submitted: {tx_hash}")
        return tx_hash

    def register(self, handle, label: str, duration: int, secret: bytes, value: int) -> str:
        controller = self._controller(handle.w3)
        params = self.ledger.transaction_params(handle)
        params['value'] = value
        transaction = controller.functions.register(
            *self._registration_args(handle, label, duration, secret)
        ).build_transaction(params)
        tx_hash = self.ledger.submit(handle, transaction)
        logger.info(f"ENS registration for {label}.eth submitted: {tx_hash}")
        return tx_hash

    def _registration_args(self, handle, label, duration, secret):
        return (
            label,
            handle.address,
            duration,
            secret,
            Web3.to_checksum_address(config.ENS_PUBLIC_RESOLVER),
            [],
            False,
            0,
        )

    def _controller(self, w3: Web3):
        return w3.eth.contract(address=Web3.to_checksum_address(config.ENS_CONTROLLER_ADDRESS), abi=CONTROLLER_ABI)

    def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = requests.post(
                self.subgraph_url,
                json={"query": query, "variables": variables},
                headers={"Content-Type": "application/json"},
                timeout=config.HTTP_TIMEOUT
            )
        except requests.RequestException as e:
            logger.error(f"Error querying ENS subgraph: {e}")
            raise UpstreamUnavailable("The ENS subgraph", str(e)) from e

        if response.status_code != 200:
            logger.error(f"ENS subgraph returned {response.status_code}")
            raise UpstreamUnavailable("The ENS subgraph", f"HTTP {response.status_code}")
        payload = response.json()
        if payload.get("errors"):
            logger.error(f"ENS subgraph errors: {payload['errors']}")
            raise UpstreamUnavailable("The ENS subgraph", str(payload["errors"]))
        return payload.get("data") or {}
