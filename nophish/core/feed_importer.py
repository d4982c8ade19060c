import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import requests

from nophish.config import settings
from nophish.core.domain_store import DomainStore
from nophish.core.exceptions import ImportFailure, StorageError
from nophish.core.normalizer import normalize_domain

logger = logging.getLogger(__name__)

FEED_SOURCE = "GitHub Repository"
FEED_LOG_SOURCE = "Discord-AntiScam GitHub"
FEED_NOTES = "Imported from Discord-AntiScam repository"
COMMENT_MARKER = "#"


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    unique: int = 0


@dataclass
class FeedUpdate:
    previous_count: int
    new_count: int
    result: ImportResult
    duration: float

    @property
    def difference(self) -> int:
        return self.new_count - self.previous_count


class FeedImporter:
    """
    Bulk loader for the plaintext scam-link feed.

    The feed is parsed and de-duplicated before storage is touched, diffed
    against what is already stored, then written in bounded batches.
    """

    def __init__(self, store: DomainStore, feed_url: Optional[str] = None,
                 http_session: Optional[requests.Session] = None,
                 batch_size: Optional[int] = None, timeout: Optional[float] = None):
        self.store = store
        self.feed_url = feed_url or settings.SCAM_FEED_URL
        self.http_session = http_session or requests.Session()
        self.batch_size = batch_size or settings.IMPORT_BATCH_SIZE
        self.timeout = timeout or settings.FEED_TIMEOUT

    @staticmethod
    def parse_feed(content: str) -> Tuple[List[str], int]:
        """Unique normalized domains in feed order, plus the count of ignored lines"""
        unique = {}
        ignored = 0
        for line in content.split("\n"):
            entry = line.strip()
            if not entry or entry.startswith(COMMENT_MARKER):
                ignored += 1
                continue
            domain = normalize_domain(entry)
            if domain:
                unique[domain] = None
        return list(unique), ignored

    def import_feed(self, content: str, source: str = FEED_LOG_SOURCE) -> ImportResult:
        if not content or not content.strip():
            return ImportResult()

        domains, skipped = self.parse_feed(content)
        known = self.store.known_domains()

        # Active rows are already covered; inactive ones were removed on purpose
        fresh = [d for d in domains if d not in known]
        skipped += len(domains) - len(fresh)

        imported = 0
        for start in range(0, len(fresh), self.batch_size):
            batch = fresh[start:start + self.batch_size]
            try:
                inserted = self.store.insert_new_scams(batch, FEED_SOURCE, FEED_NOTES)
            except StorageError as e:
                logger.error(f"❌ Import stopped after {imported} domains: {e}")
                raise ImportFailure(str(e)) from e
            imported += len(inserted)
            skipped += len(batch) - len(inserted)

        result = ImportResult(imported=imported, skipped=skipped, unique=len(domains))

        if imported > 0:
            self.store.log_import(
                source=source,
                imported=imported,
                skipped=skipped,
                notes="Automated import from GitHub repository"
            )

        logger.info(
            f"✓ Feed import complete: {imported} new domains imported, {skipped} skipped "
            f"(processed {len(domains)} unique domains)"
        )
        return result

    def fetch_feed(self) -> str:
        logger.info("🔄 Fetching latest scam links feed...")
        try:
            response = self.http_session.get(self.feed_url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ImportFailure(f"Feed request failed: {e}") from e

        if response.status_code != 200:
            raise ImportFailure(f"Feed returned status code {response.status_code}")

        content = response.text
        if not content or not content.strip():
            raise ImportFailure("Feed response was empty")
        return content

    def update_from_feed(self) -> FeedUpdate:
        """Fetch, import and resync the cache. Raises ImportFailure."""
        started = time.monotonic()
        previous = self.store.count_active_scams()

        content = self.fetch_feed()
        result = self.import_feed(content)

        try:
            self.store.reload_cache()
        except StorageError as e:
            logger.warning(f"⚠️ Cache not reloaded after import: {e}")
        new_count = self.store.count_active_scams()

        return FeedUpdate(
            previous_count=previous,
            new_count=new_count,
            result=result,
            duration=time.monotonic() - started
        )
