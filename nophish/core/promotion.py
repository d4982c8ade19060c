import logging
import queue
import threading
from dataclasses import dataclass
from typing import List, Optional

from nophish.core.domain_store import DomainStore, UpsertResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionRequest:
    domain: str
    source: str
    notes: Optional[str] = None


class PromotionWorker:
    """
    Background writer for auto-learned scam domains.

    Detection paths hand requests over with ``submit`` and return right away;
    a single daemon thread applies them to the store. Upserts are idempotent,
    so duplicates in the queue are harmless.
    """

    def __init__(self, store: DomainStore, name: str = "promotion-worker"):
        self.store = store
        self.name = name
        self._queue: "queue.Queue[Optional[PromotionRequest]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        # Guards starting and stopping the thread
        self._lifecycle_lock = threading.Lock()
        self._results_lock = threading.Lock()
        self.completed: List[tuple] = []
        self.failures: List[tuple] = []

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._lifecycle_lock:
            if self.running:
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        logger.info("✓ Promotion worker started")

    def submit(self, domain: str, source: str, notes: Optional[str] = None):
        if not self.running:
            self.start()
        self._queue.put(PromotionRequest(domain=domain, source=source, notes=notes))

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued request was processed. False on timeout."""
        done = self._queue.all_tasks_done
        with done:
            return done.wait_for(lambda: not self._queue.unfinished_tasks, timeout)

    def stop(self, timeout: Optional[float] = 5.0):
        with self._lifecycle_lock:
            if not self.running:
                return
            self.drain(timeout)
            self._queue.put(None)
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("⚠️ Promotion worker did not stop in time")
                return
            self._thread = None
        logger.info("✓ Promotion worker stopped")

    def _run(self):
        while True:
            request = self._queue.get()
            try:
                if request is None:
                    return
                self._process(request)
            finally:
                self._queue.task_done()

    def _process(self, request: PromotionRequest):
        try:
            result = self.store.upsert_scam(request.domain, request.source, request.notes)
        except Exception as e:
            logger.error(f"❌ Promotion of {request.domain} crashed: {e}")
            result = UpsertResult.FAILED

        with self._results_lock:
            if result is UpsertResult.FAILED:
                self.failures.append((request, result))
            else:
                self.completed.append((request, result))

        if result is UpsertResult.FAILED:
            logger.warning(f"⚠️ Could not add {request.domain} to database (detected by {request.source})")
