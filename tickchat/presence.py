import logging
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Maps an online user to the id of their live connection.

    One entry per user; a newer connection replaces the older one. Entries
    only live in memory, so a restart means everyone is offline until they
    reconnect.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, user_id: str, connection_id: str) -> Optional[str]:
        with self._lock:
            previous = self._entries.get(user_id)
            self._entries[user_id] = connection_id
        if previous is not None and previous != connection_id:
            logger.info("User %s reconnected; %s replaces %s", user_id, connection_id, previous)
        return previous

    def unregister(self, user_id: str, connection_id: str) -> bool:
        # A late close from a replaced connection must not evict the newer one
        with self._lock:
            if self._entries.get(user_id) != connection_id:
                return False
            del self._entries[user_id]
        return True

    def lookup(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(user_id)

    def list_online(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
