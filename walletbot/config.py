"""Bot configuration loaded from the environment (and a .env file when present)."""

import logging
import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

DEBUG = os.getenv('DEBUG', 'false').lower() == 'true'

BOT_TOKEN = os.getenv('BOT_TOKEN', 'YOUR_BOT_TOKEN_HERE')

# Network every new or imported wallet is connected to
DEFAULT_CHAIN = os.getenv('DEFAULT_CHAIN', 'airdao')

# Wallet policy
MIN_DEPLOY_BALANCE = Decimal(os.getenv('MIN_DEPLOY_BALANCE', '0.01'))
STEP_TIMEOUT = float(os.getenv('STEP_TIMEOUT', '300')) or None
RPC_TIMEOUT = int(os.getenv('RPC_TIMEOUT', '30'))
CONFIRMATION_TIMEOUT = int(os.getenv('CONFIRMATION_TIMEOUT', '120'))

DATABASE_PATH = os.getenv('DATABASE_PATH', 'walletbot.db')
# solc release used to compile the token contract when the artifact has no bytecode
SOLC_VERSION = os.getenv('SOLC_VERSION', '0.8.24')
TOKEN_ARTIFACT_PATH = os.getenv(
    'TOKEN_ARTIFACT_PATH',
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'contracts', 'SimpleToken.json'),
)

# Market data
HTTP_TIMEOUT = int(os.getenv('HTTP_TIMEOUT', '10'))
COINGECKO_API_URL = os.getenv('COINGECKO_API_URL', 'https://api.coingecko.com/api/v3')
GECKOTERMINAL_API_URL = os.getenv('GECKOTERMINAL_API_URL', 'https://api.geckoterminal.com/api/v2')

# Networks offered by the token lookup flow (GeckoTerminal ids)
TOKEN_LOOKUP_NETWORKS = [
    ('Ethereum', 'eth'),
    ('BNB Chain', 'bsc'),
    ('Polygon', 'polygon_pos'),
    ('Avalanche', 'avax'),
    ('Fantom', 'ftm'),
]

# Whale alerts
WHALE_ALERT_API_URL = os.getenv('WHALE_ALERT_API_URL', 'https://api.whale-alert.io/v1/transactions')
WHALE_ALERT_API_KEY = os.getenv('WHALE_ALERT_API_KEY', '')
WHALE_MIN_VALUE_USD = int(os.getenv('WHALE_MIN_VALUE_USD', '1000000'))
WHALE_LOOKBACK = int(os.getenv('WHALE_LOOKBACK', '300'))
WHALE_POLL_INTERVAL = int(os.getenv('WHALE_POLL_INTERVAL', '300'))
WHALE_ALERT_CHAT_ID = int(os.getenv('WHALE_ALERT_CHAT_ID', '0')) or None

# ENS
GRAPH_API_KEY = os.getenv('GRAPH_API_KEY', '')
ENS_SUBGRAPH_URL = os.getenv(
    'ENS_SUBGRAPH_URL',
    f'https://gateway.thegraph.com/api/{GRAPH_API_KEY}/subgraphs/id/5XqPmWe6gjyrJtFn9cLy237i4cWw2j9HcUJEXsP5qGtH',
)
ENS_CONTROLLER_ADDRESS = os.getenv('ENS_CONTROLLER_ADDRESS', '0x253553366Da8546fC250F225fe3d25d0C782303b')
ENS_PUBLIC_RESOLVER = os.getenv('ENS_PUBLIC_RESOLVER', '0x231b0Ee14048e9dCcD1d247744d114a4EB5E8E63')


def configure_logging():
    """Set up logging the same way for the bot and the helper scripts."""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.DEBUG if DEBUG else logging.INFO
    )
    # python-telegram-bot logs every getUpdates request through httpx
    logging.getLogger('httpx').setLevel(logging.WARNING)
