#!/usr/bin/env python3
"""
Wallet assistant bot launcher

Checks the configuration the bot needs before handing over to
``walletbot.telegram_bot.main``. Blocking problems stop the launch; missing
optional features are only reported.
"""

import importlib.util
import os
import sys

# import name -> distribution to install
REQUIRED_PACKAGES = {
    'telegram': 'python-telegram-bot[job-queue]',
    'web3': 'web3',
    'eth_account': 'eth-account',
    'requests': 'requests',
    'dotenv': 'python-dotenv',
    'solcx': 'py-solc-x',
}


def missing_packages():
    return [dist for name, dist in REQUIRED_PACKAGES.items() if importlib.util.find_spec(name) is None]


def blocking_problems(config):
    from walletbot.chains import AVAILABLE_CHAINS

    problems = []
    if not os.path.exists('.env'):
        problems.append("no .env file, run 'python bootstrap.py'")
    if not config.BOT_TOKEN or config.BOT_TOKEN == 'YOUR_BOT_TOKEN_HERE':
        problems.append("BOT_TOKEN is not set in .env")
    if config.DEFAULT_CHAIN not in AVAILABLE_CHAINS:
        problems.append(
            f"DEFAULT_CHAIN '{config.DEFAULT_CHAIN}' is not one of: {', '.join(AVAILABLE_CHAINS)}"
        )
    return problems


def disabled_features(config):
    from walletbot.ledger import TokenArtifact

    disabled = []
    if not os.path.exists(config.TOKEN_ARTIFACT_PATH):
        disabled.append(f"token creation (artifact {config.TOKEN_ARTIFACT_PATH} not found)")
    else:
        print(f"🔨 Preparing token contract (solc {config.SOLC_VERSION})...")
        try:
            if not TokenArtifact.from_file(config.TOKEN_ARTIFACT_PATH).deployable:
                disabled.append(f"token creation ({config.TOKEN_ARTIFACT_PATH} has no bytecode)")
        except ValueError as e:
            disabled.append(f"token creation ({e})")
    if not config.WHALE_ALERT_API_KEY:
        disabled.append("whale alerts (WHALE_ALERT_API_KEY)")
    if not config.GRAPH_API_KEY:
        disabled.append("ENS expiry lookups (GRAPH_API_KEY)")
    return disabled


def main():
    print("🤖 Wallet Assistant Bot Launcher")
    print("=" * 40)

    missing = missing_packages()
    if missing:
        print(f"❌ Missing packages: {', '.join(missing)}")
        print("Run 'pip install -e .' to install them.")
        return False

    from walletbot import config

    problems = blocking_problems(config)
    for problem in problems:
        print(f"❌ {problem}")
    if problems:
        print("\nFix the issues above and try again.")
        return False

    for feature in disabled_features(config):
        print(f"⚠️ Disabled: {feature}")

    print("✅ Pre-flight checks passed, starting the bot (Ctrl+C to stop)")
    print("-" * 40)

    from walletbot.telegram_bot import main as run_bot
    try:
        run_bot()
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    return True


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
