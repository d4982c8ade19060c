import threading
from typing import Iterable, Set


class ReputationCache:
    """
    In-memory set of known-active scam domains.

    Only positives are remembered; a miss means "unknown", not "safe".
    The store is authoritative, so the cache can always be cleared and
    reloaded from it.
    """

    def __init__(self, domains: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._domains: Set[str] = set(domains)

    def contains(self, domain: str) -> bool:
        with self._lock:
            return domain in self._domains

    def add(self, domain: str):
        with self._lock:
            self._domains.add(domain)

    def add_many(self, domains: Iterable[str]):
        with self._lock:
            self._domains.update(domains)

    def remove(self, domain: str):
        with self._lock:
            self._domains.discard(domain)

    def clear(self):
        with self._lock:
            self._domains.clear()

    def reload(self, domains: Iterable[str]):
        """Replace the whole set in one step"""
        fresh = set(domains)
        with self._lock:
            self._domains = fresh

    def snapshot(self) -> Set[str]:
        with self._lock:
            return set(self._domains)

    def __contains__(self, domain: str) -> bool:
        return self.contains(domain)

    def __len__(self) -> int:
        with self._lock:
            return len(self._domains)
