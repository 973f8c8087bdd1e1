"""
Wallet Telegram Bot

Create or import an EVM wallet from Telegram, switch networks, deploy
tokens, send funds and look up market data.
"""

__version__ = "0.1.0"
