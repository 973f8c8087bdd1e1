"""
Ledger client

Thin wrapper around web3 / eth-account used by the wallet flows:
account creation and import, balances, contract deployment, native and
ERC-20 transfers, confirmations and network switching.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import requests
import solcx
from eth_account import Account
from eth_account.signers.local import LocalAccount
from solcx.exceptions import SolcError, SolcInstallationError
from web3 import Web3

from walletbot import config
from walletbot.chains import Chain
from walletbot.errors import InvalidSecret

logger = logging.getLogger(__name__)

PRIVATE_KEY_PATTERN = re.compile(r'^0x[0-9a-fA-F]{64}$')

ERC20_ABI = [
    {"inputs": [{"internalType": "address", "name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "name", "outputs": [{"internalType": "string", "name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "symbol", "outputs": [{"internalType": "string", "name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "decimals", "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "to", "type": "address"}, {"internalType": "uint256", "name": "amount", "type": "uint256"}], "name": "transfer", "outputs": [{"internalType": "bool", "name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"}
]


@dataclass(frozen=True)
class WalletHandle:
    """An account bound to one chain through its own web3 connection."""
    account: LocalAccount
    chain: Chain
    w3: Web3

    @property
    def address(self) -> str:
        return self.account.address


@dataclass(frozen=True)
class TokenArtifact:
    """Compiled token contract (ABI + creation bytecode)."""
    abi: List[Dict[str, Any]]
    bytecode: str

    @classmethod
    def from_file(cls, path: str) -> 'TokenArtifact':
        """Load an artifact; one without bytecode but with a ``source`` is compiled from it.

        Raises ValueError when the source cannot be compiled.
        """
        with open(path, 'r') as f:
            data = json.load(f)
        bytecode = data.get('bytecode', '')
        if len(bytecode) <= 2 and data.get('source'):
            source_path = os.path.join(os.path.dirname(os.path.abspath(path)), data['source'])
            return compile_contract(source_path, data.get('contractName', 'SimpleToken'))
        return cls(abi=data['abi'], bytecode=bytecode)

    @property
    def deployable(self) -> bool:
        return len(self.bytecode) > 2


def compile_contract(source_path: str, contract_name: str, solc_version: str = None) -> TokenArtifact:
    """Compile a self-contained Solidity file, installing the solc release on first use."""
    version = solc_version or config.SOLC_VERSION
    try:
        if version not in {str(v) for v in solcx.get_installed_solc_versions()}:
            logger.info(f"Installing solc {version}")
            solcx.install_solc(version)
        compiled = solcx.compile_files([source_path], output_values=["abi", "bin"], solc_version=version)
    except (SolcError, SolcInstallationError, requests.RequestException) as e:
        raise ValueError(f"could not compile {source_path}: {e}") from e

    for key, output in compiled.items():
        # keys look like "<path>:<ContractName>"
        if key.rsplit(':', 1)[-1] == contract_name:
            logger.info(f"Compiled {contract_name} with solc {version}")
            return TokenArtifact(abi=output['abi'], bytecode='0x' + output['bin'])
    raise ValueError(f"{contract_name} not found in {source_path}")


class LedgerClient:
    def __init__(self, rpc_timeout: int = None, confirmation_timeout: int = None):
        self.rpc_timeout = rpc_timeout or config.RPC_TIMEOUT
        self.confirmation_timeout = confirmation_timeout or config.CONFIRMATION_TIMEOUT

    def create_account(self) -> Tuple[LocalAccount, str]:
        """Create a fresh account and return it with its private key."""
        account = Account.create()
        return account, Web3.to_hex(account.key)

    def derive_account(self, secret: str) -> LocalAccount:
        """Derive the account behind a private key; raises InvalidSecret."""
        private_key = secret.strip()
        if not private_key.startswith('0x'):
            private_key = '0x' + private_key
        if not PRIVATE_KEY_PATTERN.match(private_key):
            raise InvalidSecret()
        try:
            return Account.from_key(private_key)
        except ValueError as e:
            # e.g. a key outside the secp256k1 curve order
            raise InvalidSecret() from e

    def connect(self, account: LocalAccount, chain: Chain) -> WalletHandle:
        w3 = Web3(Web3.HTTPProvider(chain.rpc_url, request_kwargs={'timeout': self.rpc_timeout}))
        return WalletHandle(account=account, chain=chain, w3=w3)

    def switch_chain(self, handle: WalletHandle, chain: Chain) -> WalletHandle:
        """Rebind the same account to another chain."""
        return self.connect(handle.account, chain)

    def balance(self, handle: WalletHandle) -> Decimal:
        balance_wei = handle.w3.eth.get_balance(handle.address)
        return Decimal(handle.w3.from_wei(balance_wei, 'ether'))

    def token_metadata(self, handle: WalletHandle, token_address: str) -> Dict[str, Any]:
        """Name, symbol, decimals and the wallet's balance of an ERC-20 token."""
        token_address = Web3.to_checksum_address(token_address)
        contract = handle.w3.eth.contract(address=token_address, abi=ERC20_ABI)
        decimals = contract.functions.decimals().call()
        raw_balance = contract.functions.balanceOf(handle.address).call()
        return {
            'address': token_address,
            'name': contract.functions.name().call(),
            'symbol': contract.functions.symbol().call(),
            'decimals': decimals,
            'balance': Decimal(raw_balance) / (Decimal(10) ** decimals),
        }

    def deploy_contract(self, handle: WalletHandle, bytecode: str, abi: List[Dict[str, Any]],
                        args: List[Any], chain: Optional[Chain] = None) -> str:
        if chain is not None and chain.key != handle.chain.key:
            handle = self.switch_chain(handle, chain)
        contract = handle.w3.eth.contract(abi=abi, bytecode=bytecode)
        transaction = contract.constructor(*args).build_transaction(self.transaction_params(handle))
        tx_hash = self.submit(handle, transaction)
        logger.info(f"Deployment submitted on {handle.chain.name}: {tx_hash}")
        return tx_hash

    def send_value(self, handle: WalletHandle, to: str, amount: Decimal) -> str:
        transaction = self.transaction_params(handle)
        transaction['to'] = Web3.to_checksum_address(to)
        transaction['value'] = handle.w3.to_wei(amount, 'ether')
        transaction['gas'] = handle.w3.eth.estimate_gas(transaction)
        tx_hash = self.submit(handle, transaction)
        logger.info(f"Transfer of {amount} {handle.chain.symbol} submitted: {tx_hash}")
        return tx_hash

    def transfer_token(self, handle: WalletHandle, token_address: str, to: str, amount: Decimal) -> str:
        contract = handle.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        decimals = contract.functions.decimals().call()
        raw_amount = int(amount * (Decimal(10) ** decimals))
        transaction = contract.functions.transfer(
            Web3.to_checksum_address(to), raw_amount
        ).build_transaction(self.transaction_params(handle))
        tx_hash = self.submit(handle, transaction)
        logger.info(f"Token transfer submitted: {tx_hash}")
        return tx_hash

    def wait_for_confirmation(self, handle: WalletHandle, tx_hash: str):
        return handle.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)

    def submit(self, handle: WalletHandle, transaction: Dict[str, Any]) -> str:
        """Sign a built transaction with the handle's account and broadcast it."""
        signed_txn = handle.account.sign_transaction(transaction)
        tx_hash = handle.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        return Web3.to_hex(tx_hash)

    def transaction_params(self, handle: WalletHandle) -> Dict[str, Any]:
        return {
            'from': handle.address,
            'chainId': handle.chain.chain_id,
            'gasPrice': handle.w3.eth.gas_price,
            'nonce': handle.w3.eth.get_transaction_count(handle.address),
        }
