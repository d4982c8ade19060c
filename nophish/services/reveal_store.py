import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from nophish.config import settings

RevealEntry = Tuple[str, str]


class RevealStore:
    """
    Short-lived tokens that let moderators reveal the links a detection
    removed. Entries are dropped once their time is up, used or not.
    """

    TOKEN_PREFIX = "reveal_scam_"

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl = settings.REVEAL_TOKEN_TTL if ttl is None else ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, List[RevealEntry]]] = {}

    def create(self, urls: List[RevealEntry]) -> str:
        token = f"{self.TOKEN_PREFIX}{uuid.uuid4().hex}"
        expires_at = self._clock() + self.ttl
        with self._lock:
            self._purge_locked()
            self._entries[token] = (expires_at, list(urls))
        return token

    def reveal(self, token: str) -> Optional[List[RevealEntry]]:
        """The stored (url, source) pairs, or None when unknown or expired"""
        with self._lock:
            self._purge_locked()
            entry = self._entries.get(token)
            return list(entry[1]) if entry else None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [token for token, (expires_at, _) in self._entries.items() if expires_at <= now]
        for token in expired:
            del self._entries[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
