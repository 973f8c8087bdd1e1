"""
Transaction and token history

Every transaction the bot submits and every token it deploys is written to a
small sqlite database so users can list them later. Wallet sessions and keys
are never stored here.
"""

import logging
import sqlite3
from contextlib import closing
from typing import Dict, List, Optional

from walletbot import config

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT,
    chain TEXT,
    wallet_address TEXT,
    tx_hash TEXT,
    tx_type TEXT,
    amount TEXT,
    counterparty TEXT,
    status TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tokens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT,
    chain TEXT,
    owner_address TEXT,
    token_address TEXT,
    name TEXT,
    symbol TEXT,
    supply TEXT,
    tx_hash TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class HistoryStore:
    """sqlite-backed history; opens a short-lived connection per call."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.DATABASE_PATH
        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA)
        logger.info(f"History database ready at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _write(self, sql: str, params: tuple) -> bool:
        """Run one insert or update; a failed write is logged and never raised."""
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error(f"Error writing history: {e}")
            return False
        return True

    def _read(self, sql: str, params: tuple) -> List[Dict]:
        with closing(self._connect()) as conn:
            return [dict(row) for row in conn.execute(sql, params)]

    def log_transaction(self, conversation_id, chain: str, wallet_address: str, tx_hash: str,
                        tx_type: str, amount: Optional[str] = None, counterparty: Optional[str] = None,
                        status: str = "pending"):
        self._write(
            "INSERT INTO transactions "
            "(conversation_id, chain, wallet_address, tx_hash, tx_type, amount, counterparty, status) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (str(conversation_id), chain, wallet_address, tx_hash, tx_type, amount, counterparty, status),
        )

    def update_status(self, tx_hash: str, status: str):
        self._write("UPDATE transactions SET status = ? WHERE tx_hash = ?", (status, tx_hash))

    def record_token(self, conversation_id, chain: str, owner_address: str, token_address: str,
                     name: str, symbol: str, supply: int, tx_hash: str):
        self._write(
            "INSERT INTO tokens "
            "(conversation_id, chain, owner_address, token_address, name, symbol, supply, tx_hash) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (str(conversation_id), chain, owner_address, token_address, name, symbol, str(supply), tx_hash),
        )

    def get_tokens(self, conversation_id) -> List[Dict]:
        """Tokens deployed from a conversation, oldest first."""
        return self._read(
            "SELECT chain, token_address AS address, name, symbol, supply, tx_hash "
            "FROM tokens WHERE conversation_id = ? ORDER BY id ASC",
            (str(conversation_id),),
        )

    def get_transactions(self, conversation_id, limit: int = 10) -> List[Dict]:
        """Most recent transactions first."""
        return self._read(
            "SELECT chain, tx_hash, tx_type, amount, counterparty, status, created_at "
            "FROM transactions WHERE conversation_id = ? ORDER BY id DESC LIMIT ?",
            (str(conversation_id), limit),
        )
