"""In-memory wallet sessions, one per chat."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, Optional


@dataclass(frozen=True)
class Session:
    wallet: Any  # ledger.WalletHandle
    network_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionStore:
    """Source of truth for whether a chat has a connected wallet.

    Sessions are never written to disk, so private keys only live as long as
    the bot process.
    """

    def __init__(self):
        self._sessions: Dict[Hashable, Session] = {}

    def get(self, conversation_id) -> Optional[Session]:
        return self._sessions.get(conversation_id)

    def put(self, conversation_id, session: Session):
        self._sessions[conversation_id] = session

    def remove(self, conversation_id):
        self._sessions.pop(conversation_id, None)

    def is_connected(self, conversation_id) -> bool:
        return conversation_id in self._sessions

    def __len__(self):
        return len(self._sessions)
