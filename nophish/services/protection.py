import logging
from typing import Callable, Optional

import requests
from sqlalchemy.orm import Session

from nophish.config import settings
from nophish.core.checker import ThreeTierChecker
from nophish.core.domain_store import DomainStore
from nophish.core.exceptions import ImportFailure, StorageError
from nophish.core.feed_importer import FeedImporter
from nophish.core.promotion import PromotionWorker
from nophish.core.reputation_cache import ReputationCache
from nophish.core.reputation_clients import (
    AnalysisClient, CommunityListClient, ReputationClient, build_http_session
)
from nophish.services.admin_service import AdminService
from nophish.services.guild_settings import GuildSettingsService
from nophish.services.message_scanner import MessageScanner
from nophish.services.report_service import DeveloperNotifier, ReportService
from nophish.services.reveal_store import RevealStore

logger = logging.getLogger(__name__)


class ProtectionEngine:
    """
    Owns every piece of shared state (cache, store, clients, worker) and
    wires the services on top of them. One engine per process.
    """

    def __init__(self, cache: ReputationCache, store: DomainStore,
                 community_client: ReputationClient, analysis_client: ReputationClient,
                 importer: FeedImporter, guild_settings: GuildSettingsService,
                 reveals: Optional[RevealStore] = None, notifier: Optional[DeveloperNotifier] = None,
                 import_feed_on_startup: Optional[bool] = None, owner_id: Optional[int] = None):
        self.cache = cache
        self.store = store
        self.community_client = community_client
        self.analysis_client = analysis_client
        self.importer = importer
        self.guild_settings = guild_settings
        self.reveals = reveals or RevealStore()
        self.import_feed_on_startup = (
            settings.IMPORT_FEED_ON_STARTUP if import_feed_on_startup is None else import_feed_on_startup
        )
        self.owner_id = settings.DEVELOPER_USER_ID if owner_id is None else owner_id

        self.promotions = PromotionWorker(store)
        self.checker = ThreeTierChecker(store, cache, community_client, analysis_client, self.promotions)
        self.scanner = MessageScanner(self.checker, store, guild_settings, self.reveals)
        self.reports = ReportService(store, notifier or DeveloperNotifier(self.owner_id))
        self.admin = AdminService(store)

    def startup(self):
        logger.info("🚀 Starting protection engine...")
        try:
            self.store.reload_cache()
        except StorageError as e:
            logger.error(f"❌ Starting with an empty cache: {e}")

        if self.import_feed_on_startup:
            try:
                update = self.importer.update_from_feed()
                logger.info(
                    f"✓ Feed import: {update.result.imported} new, {update.result.skipped} skipped "
                    f"({update.new_count} active domains)"
                )
            except ImportFailure as e:
                logger.error(f"❌ Feed import failed, keeping existing domains: {e}")

        self.promotions.start()
        logger.info(f"✓ Protection engine ready ({len(self.cache)} cached scam domains)")

    def shutdown(self):
        self.promotions.stop()
        logger.info("👋 Protection engine stopped")

    def is_owner(self, user_id: int) -> bool:
        return self.owner_id is not None and user_id == self.owner_id


def build_protection_engine(session_factory: Callable[[], Session],
                            http_session: Optional[requests.Session] = None,
                            **kwargs) -> ProtectionEngine:
    """Default wiring: real HTTP clients sharing one pooled session"""
    http_session = http_session or build_http_session()
    cache = ReputationCache()
    store = DomainStore(session_factory, cache)

    return ProtectionEngine(
        cache=cache,
        store=store,
        community_client=CommunityListClient(http_session=http_session),
        analysis_client=AnalysisClient(http_session=http_session),
        importer=FeedImporter(store, http_session=http_session),
        guild_settings=GuildSettingsService(session_factory),
        **kwargs
    )
