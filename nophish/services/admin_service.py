import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from nophish.config import settings
from nophish.core.domain_store import DomainStore, UpsertResult, WhitelistResult, MANUAL_SOURCE
from nophish.core.exceptions import HistoryRangeError
from nophish.core.normalizer import normalize_domain
from nophish.models import DetectionLog, ScamDomain, WhitelistDomain

logger = logging.getLogger(__name__)


class AdminService:
    """Blacklist, whitelist, history and statistics commands"""

    def __init__(self, store: DomainStore, list_limit: Optional[int] = None,
                 max_history_days: Optional[int] = None):
        self.store = store
        self.list_limit = list_limit or settings.LIST_LIMIT
        self.max_history_days = max_history_days or settings.HISTORY_MAX_DAYS

    # ===== Blacklist =====

    def blacklist_add(self, domain: str, username: str, reason: Optional[str] = None) -> UpsertResult:
        clean = normalize_domain(domain)
        result = self.store.upsert_scam(clean, MANUAL_SOURCE, reason or f"Manually added by {username}")
        if result.succeeded and result is not UpsertResult.ALREADY_ACTIVE:
            logger.info(f"Domain {clean} manually added to blacklist by {username}")
        return result

    def blacklist_remove(self, domain: str, username: str) -> bool:
        clean = normalize_domain(domain)
        removed = self.store.deactivate(clean)
        if removed:
            logger.info(f"Domain {clean} manually removed from blacklist by {username}")
        return removed

    def blacklist_list(self) -> List[ScamDomain]:
        return self.store.list_manual_blacklist(self.list_limit)

    # ===== Whitelist =====

    def whitelist_add(self, domain: str, guild_id: int, user_id: int, username: str,
                      reason: Optional[str] = None, guild_name: Optional[str] = None) -> WhitelistResult:
        clean = normalize_domain(domain)
        result = self.store.add_whitelist(clean, guild_id, user_id, username, reason, guild_name)
        if result in (WhitelistResult.ADDED, WhitelistResult.REACTIVATED):
            logger.info(f"Domain {clean} added to whitelist by {username} in guild {guild_id}")
        return result

    def whitelist_remove(self, domain: str, guild_id: int, username: str) -> bool:
        clean = normalize_domain(domain)
        removed = self.store.remove_whitelist(clean, guild_id)
        if removed:
            logger.info(f"Domain {clean} removed from whitelist by {username} in guild {guild_id}")
        return removed

    def whitelist_list(self, guild_id: int) -> List[WhitelistDomain]:
        return self.store.list_whitelist(guild_id, self.list_limit)

    # ===== History & stats =====

    def validate_history_days(self, days: int) -> int:
        if days is None:
            return 7
        if days < 1 or days > self.max_history_days:
            raise HistoryRangeError(f"History period must be between 1 and {self.max_history_days} days.")
        return days

    def history(self, guild_id: int, days: int = 7, domain: Optional[str] = None) -> List[DetectionLog]:
        """Most recent detections in the window. The window is checked before any query."""
        days = self.validate_history_days(days)
        since = datetime.utcnow() - timedelta(days=days)
        return self.store.detection_history(guild_id, since, domain=domain, limit=self.list_limit)

    def stats(self, guild_id: int) -> Dict:
        return self.store.guild_stats(guild_id)
