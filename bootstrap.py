#!/usr/bin/env python3
"""
Wallet assistant bot setup

Creates .env from .env.example, asks for the Telegram bot token, the
default network and the optional API keys, then checks that every configured
RPC endpoint reports the chain id it should. Install the package first with
``pip install -e .``.
"""

import os
import shutil
import sys

from dotenv import set_key
from web3 import Web3

ENV_FILE = ".env"
EXAMPLE_FILE = ".env.example"

OPTIONAL_KEYS = [
    ('WHALE_ALERT_API_KEY', "Whale Alert API key (enables /whalealerts)"),
    ('GRAPH_API_KEY', "The Graph API key (enables /expiring and ENS expiry dates)"),
]


def create_env_file():
    if os.path.exists(ENV_FILE):
        print(f"✅ Using existing {ENV_FILE}")
        return True
    if not os.path.exists(EXAMPLE_FILE):
        print(f"❌ {EXAMPLE_FILE} is missing, cannot create {ENV_FILE}")
        return False
    shutil.copyfile(EXAMPLE_FILE, ENV_FILE)
    print(f"✅ Created {ENV_FILE} from {EXAMPLE_FILE}")
    return True


def ask(key, question):
    """Store a non-empty answer under ``key`` in .env."""
    answer = input(f"{question} (Enter to skip): ").strip()
    if answer:
        set_key(ENV_FILE, key, answer, quote_mode="never")
    return answer


def configure_bot_token():
    print("\n🤖 Telegram bot token")
    print("Create a bot with @BotFather (/newbot) and paste the token it gives you.")
    if ask('BOT_TOKEN', "Bot token"):
        print("✅ Bot token saved")
    else:
        print("⚠️ No token entered, set BOT_TOKEN in .env before starting the bot")


def configure_default_chain():
    from walletbot.chains import AVAILABLE_CHAINS

    print("\n🌐 Default network for new and imported wallets")
    for key, chain in AVAILABLE_CHAINS.items():
        print(f"  {key:<16} {chain.name} ({chain.symbol})")
    choice = input("Network key (Enter keeps the current one): ").strip().lower()
    if not choice:
        return
    if choice not in AVAILABLE_CHAINS:
        print(f"⚠️ Unknown network '{choice}', keeping the current one")
        return
    set_key(ENV_FILE, 'DEFAULT_CHAIN', choice, quote_mode="never")
    print(f"✅ Default network set to {AVAILABLE_CHAINS[choice].name}")


def configure_optional_keys():
    print("\n🔑 Optional API keys")
    for key, question in OPTIONAL_KEYS:
        ask(key, question)


def check_networks():
    """Connect to every network and compare its chain id; returns the unreachable ones."""
    from walletbot.chains import AVAILABLE_CHAINS

    print("\n🔌 Checking RPC endpoints...")
    failed = []
    for chain in AVAILABLE_CHAINS.values():
        w3 = Web3(Web3.HTTPProvider(chain.rpc_url, request_kwargs={'timeout': 10}))
        if not w3.is_connected():
            print(f"  ❌ {chain.name}: no answer from {chain.rpc_url}")
            failed.append(chain.key)
        elif w3.eth.chain_id != chain.chain_id:
            print(f"  ❌ {chain.name}: {chain.rpc_url} reports chain id {w3.eth.chain_id}, expected {chain.chain_id}")
            failed.append(chain.key)
        else:
            print(f"  ✅ {chain.name} (block {w3.eth.block_number})")
    return failed


def main():
    print("🚀 Wallet Assistant Bot Setup")
    print("=" * 40)

    if sys.version_info < (3, 9):
        print(f"❌ Python 3.9 or newer is required, this is {sys.version.split()[0]}")
        return False

    if not create_env_file():
        return False

    configure_bot_token()
    configure_default_chain()
    configure_optional_keys()

    failed = check_networks()
    if failed:
        print(f"\n⚠️ Set <NETWORK>_RPC_URL in {ENV_FILE} for: {', '.join(failed)}")

    print("\n🎉 Setup complete! Start the bot with: python start_bot.py")
    return True


if __name__ == "__main__":
    try:
        sys.exit(0 if main() else 1)
    except KeyboardInterrupt:
        print("\n❌ Setup cancelled")
        sys.exit(1)
