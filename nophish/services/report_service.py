import logging
from datetime import datetime
from typing import Optional, Tuple

from nophish.config import settings
from nophish.core.domain_store import DomainStore
from nophish.core.normalizer import normalize_domain

logger = logging.getLogger(__name__)


class DeveloperNotifier:
    """
    Delivers a report to the deployment owner. The chat gateway plugs in a
    real implementation (a DM); this one only logs it.
    """

    def __init__(self, developer_user_id: Optional[int] = None):
        self.developer_user_id = developer_user_id if developer_user_id is not None else settings.DEVELOPER_USER_ID

    def notify(self, domain: str, reason: Optional[str], reporter: str, reporter_id: int,
               guild_id: Optional[int], guild_name: Optional[str]) -> bool:
        if not self.developer_user_id:
            logger.warning("⚠️ Developer user ID not configured. Report saved to database only.")
            return False

        where = f"{guild_name} ({guild_id})" if guild_id else "Direct Message"
        logger.warning(
            f"🚨 New domain report for {self.developer_user_id}: {domain} by {reporter} ({reporter_id}) "
            f"in {where} at {datetime.utcnow():%Y-%m-%d %H:%M:%S} UTC - reason: {reason or 'Not specified'}"
        )
        return True


class ReportService:
    def __init__(self, store: DomainStore, notifier: Optional[DeveloperNotifier] = None):
        self.store = store
        self.notifier = notifier or DeveloperNotifier()

    def submit_report(self, domain: str, reason: Optional[str], user_id: int, username: str,
                      guild_id: Optional[int] = None, guild_name: Optional[str] = None,
                      details: Optional[str] = None) -> Tuple[bool, str, bool]:
        """
        Save a user report and forward it to the developer.

        Returns (saved, message, developer_notified). A report that cannot be
        saved is still forwarded.
        """
        clean = normalize_domain(domain)
        if details:
            reason = f"{reason}\n\n{details}" if reason else details

        report_id = self.store.add_report(
            domain=clean,
            reason=reason[:500] if reason else None,
            reported_by_user_id=user_id,
            reported_by_username=username,
            guild_id=guild_id,
            guild_name=guild_name,
            is_processed=False
        )

        notified = self._notify(clean, reason, username, user_id, guild_id, guild_name)

        if report_id is not None:
            logger.info(f"✓ Domain report {report_id} saved. Developer notification: {'Sent' if notified else 'Failed'}")
            return True, "Report saved successfully", notified

        if notified:
            return False, "Database error occurred, but report was sent to developer", notified
        return False, "Both database save and developer notification failed", notified

    def _notify(self, domain, reason, username, user_id, guild_id, guild_name) -> bool:
        try:
            return self.notifier.notify(domain, reason, username, user_id, guild_id, guild_name)
        except Exception as e:
            logger.error(f"❌ Developer notification failed: {e}")
            return False
