"""Networks a wallet can be connected to."""

import os
from dataclasses import dataclass
from typing import Dict

from walletbot import config  # noqa: F401  loads .env before the RPC overrides are read


@dataclass(frozen=True)
class Chain:
    key: str
    name: str
    chain_id: int
    rpc_url: str
    symbol: str
    explorer_url: str

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"


def _chain(key, name, chain_id, rpc_url, symbol, explorer_url):
    # e.g. AIRDAO_TESTNET_RPC_URL overrides the public endpoint
    rpc_url = os.getenv(f"{key.upper()}_RPC_URL", rpc_url)
    return Chain(key, name, chain_id, rpc_url, symbol, explorer_url)


AVAILABLE_CHAINS: Dict[str, Chain] = {
    chain.key: chain for chain in (
        _chain("airdao", "AirDAO Mainnet", 16718, "https://rpc.airdao.io", "AMB", "https://airdao.io/explorer"),
        _chain("airdao_testnet", "AirDAO Testnet", 22040, "https://network.ambrosus-test.io", "AMB",
               "https://testnet.airdao.io/explorer"),
        _chain("rootstock", "Rootstock", 30, "https://public-node.rsk.co", "RBTC", "https://explorer.rsk.co"),
        _chain("gnosis", "Gnosis", 100, "https://rpc.gnosischain.com", "xDAI", "https://gnosisscan.io"),
        _chain("mainnet", "Ethereum", 1, "https://cloudflare-eth.com", "ETH", "https://etherscan.io"),
    )
}


def get_chain(key: str) -> Chain:
    """Look up a chain by key; raises KeyError for unknown keys."""
    return AVAILABLE_CHAINS[key]
