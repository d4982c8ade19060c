import enum
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import func, desc, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nophish.core.exceptions import StorageError
from nophish.core.normalizer import normalize_domain
from nophish.core.reputation_cache import ReputationCache
from nophish.models import (
    ScamDomain, WhitelistDomain, DetectionLog, DomainReport, DomainImportLog
)

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "Manual"


class UpsertResult(enum.Enum):
    INSERTED = "inserted"
    REACTIVATED = "reactivated"
    ALREADY_ACTIVE = "already_active"
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        return self is not UpsertResult.FAILED


class WhitelistResult(enum.Enum):
    ADDED = "added"
    REACTIVATED = "reactivated"
    ALREADY_LISTED = "already_listed"
    FAILED = "failed"


class DomainStore:
    """
    Durable source of truth for scam domains, whitelist entries and the
    append-only logs.

    Every operation opens its own session. Reads that fail are logged and
    answered as "unknown" (False / empty). Writes are retried once; the cache
    is only touched after a commit went through.
    """

    def __init__(self, session_factory: Callable[[], Session], cache: ReputationCache):
        self.session_factory = session_factory
        self.cache = cache
        # Serializes "does the domain exist? else insert/reactivate"
        self._write_lock = threading.Lock()

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def _write(self, label: str, operation: Callable[[Session], object], default=None):
        """Run a write in its own session, retrying once on a storage error"""
        for attempt in (1, 2):
            with self._session() as db:
                try:
                    result = operation(db)
                    db.commit()
                    return result
                except SQLAlchemyError as e:
                    db.rollback()
                    if attempt == 1:
                        logger.error(f"❌ Database error during {label}, retrying: {e}")
                    else:
                        logger.warning(f"⚠️ Giving up on {label} after retry: {e}")
        return default

    # ===== Scam domains =====

    def is_active_scam(self, domain: str) -> bool:
        domain = normalize_domain(domain)
        try:
            with self._session() as db:
                row = db.query(ScamDomain.id).filter(
                    func.lower(ScamDomain.domain) == domain,
                    ScamDomain.is_active.is_(True)
                ).first()
                return row is not None
        except SQLAlchemyError as e:
            logger.error(f"❌ Error checking domain in database: {e}")
            return False

    def cache_if_active(self, domain: str) -> bool:
        """
        Tier-1 store lookup that also warms the cache. Runs under the write
        lock so a concurrent deactivate cannot be undone by a stale read.
        """
        clean = normalize_domain(domain)
        with self._write_lock:
            if not self.is_active_scam(clean):
                return False
            self.cache.add(clean)
        return True

    def upsert_scam(self, domain: str, source: str, notes: Optional[str] = None) -> UpsertResult:
        """
        Insert a scam domain, reactivate it if it was removed, or leave an
        active row alone. Concurrent calls for the same domain end with one row.
        """
        clean = normalize_domain(domain)
        if not clean:
            return UpsertResult.FAILED

        def operation(db: Session) -> UpsertResult:
            existing = db.query(ScamDomain).filter(
                func.lower(ScamDomain.domain) == clean
            ).first()

            if existing is not None:
                if existing.is_active:
                    return UpsertResult.ALREADY_ACTIVE
                existing.is_active = True
                existing.date_added = datetime.utcnow()
                existing.detection_source = source
                existing.notes = notes
                return UpsertResult.REACTIVATED

            db.add(ScamDomain(
                domain=clean,
                detection_source=source,
                date_added=datetime.utcnow(),
                notes=notes,
                is_active=True
            ))
            return UpsertResult.INSERTED

        with self._write_lock:
            result = self._write(f"upsert of {clean}", operation, default=UpsertResult.FAILED)
            if result.succeeded:
                self.cache.add(clean)

        if result is UpsertResult.INSERTED:
            logger.info(f"✓ Added new scam domain: {clean} (detected by {source})")
        elif result is UpsertResult.REACTIVATED:
            logger.info(f"✓ Reactivated scam domain: {clean}")
        return result

    def deactivate(self, domain: str) -> bool:
        """Soft-delete an active domain. False if it was not active."""
        clean = normalize_domain(domain)

        def operation(db: Session) -> bool:
            row = db.query(ScamDomain).filter(
                func.lower(ScamDomain.domain) == clean,
                ScamDomain.is_active.is_(True)
            ).first()
            if row is None:
                return False
            row.is_active = False
            return True

        with self._write_lock:
            changed = self._write(f"deactivation of {clean}", operation, default=False)
            if changed:
                self.cache.remove(clean)
        return bool(changed)

    def reactivate(self, domain: str) -> bool:
        """Restore a soft-deleted domain. False if there was nothing to restore."""
        clean = normalize_domain(domain)

        def operation(db: Session) -> bool:
            row = db.query(ScamDomain).filter(
                func.lower(ScamDomain.domain) == clean,
                ScamDomain.is_active.is_(False)
            ).first()
            if row is None:
                return False
            row.is_active = True
            row.date_added = datetime.utcnow()
            return True

        with self._write_lock:
            changed = self._write(f"reactivation of {clean}", operation, default=False)
            if changed:
                self.cache.add(clean)
        return bool(changed)

    def count_active_scams(self) -> int:
        try:
            with self._session() as db:
                return db.query(func.count(ScamDomain.id)).filter(
                    ScamDomain.is_active.is_(True)
                ).scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"❌ Error getting domain count: {e}")
            return len(self.cache)

    def known_domains(self) -> Dict[str, bool]:
        """Every stored domain mapped to its active flag"""
        try:
            with self._session() as db:
                rows = db.query(func.lower(ScamDomain.domain), ScamDomain.is_active).all()
                return {domain: bool(active) for domain, active in rows}
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading stored domains: {e}")
            return {}

    def reload_cache(self) -> int:
        """Rebuild the cache from active rows. Raises StorageError; the cache is kept on failure."""
        try:
            with self._session() as db:
                rows = db.query(func.lower(ScamDomain.domain)).filter(
                    ScamDomain.is_active.is_(True)
                ).all()
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading scam domains from database: {e}")
            raise StorageError(f"Could not load scam domains: {e}") from e

        self.cache.reload(row[0] for row in rows)
        logger.info(f"✓ Loaded {len(rows)} scam domains from database")
        return len(rows)

    def get_scam(self, domain: str) -> Optional[ScamDomain]:
        clean = normalize_domain(domain)
        try:
            with self._session() as db:
                return db.query(ScamDomain).filter(
                    func.lower(ScamDomain.domain) == clean
                ).first()
        except SQLAlchemyError as e:
            logger.error(f"❌ Error reading domain {clean}: {e}")
            return None

    def insert_new_scams(self, domains: Iterable[str], source: str, notes: Optional[str] = None) -> List[str]:
        """
        Insert one batch of domains that have no row yet, in one transaction.
        Returns the domains actually inserted; those are cached after commit.
        """
        batch = list(dict.fromkeys(domains))
        if not batch:
            return []

        def operation(db: Session) -> List[str]:
            present = {
                row[0] for row in db.query(func.lower(ScamDomain.domain)).filter(
                    func.lower(ScamDomain.domain).in_(batch)
                ).all()
            }
            fresh = [d for d in batch if d not in present]
            now = datetime.utcnow()
            db.add_all([
                ScamDomain(domain=d, detection_source=source, date_added=now, notes=notes, is_active=True)
                for d in fresh
            ])
            return fresh

        with self._write_lock:
            inserted = self._write(f"batch insert of {len(batch)} domains", operation, default=None)
            if inserted is None:
                raise StorageError(f"Could not insert batch of {len(batch)} domains")
            self.cache.add_many(inserted)
        return inserted

    def list_manual_blacklist(self, limit: int = 25) -> List[ScamDomain]:
        try:
            with self._session() as db:
                return db.query(ScamDomain).filter(
                    ScamDomain.is_active.is_(True),
                    ScamDomain.detection_source == MANUAL_SOURCE
                ).order_by(ScamDomain.domain).limit(limit).all()
        except SQLAlchemyError as e:
            logger.error(f"❌ Error listing blacklist: {e}")
            return []

    # ===== Whitelist =====

    def is_whitelisted(self, domain: str, guild_id: Optional[int]) -> bool:
        clean = normalize_domain(domain)
        try:
            with self._session() as db:
                row = db.query(WhitelistDomain.id).filter(
                    WhitelistDomain.domain == clean,
                    WhitelistDomain.is_active.is_(True),
                    or_(WhitelistDomain.guild_id == guild_id, WhitelistDomain.guild_id.is_(None))
                ).first()
                return row is not None
        except SQLAlchemyError as e:
            logger.error(f"❌ Error checking whitelist: {e}")
            return False

    def add_whitelist(self, domain: str, guild_id: Optional[int], added_by_user_id: int,
                      added_by_username: str, reason: Optional[str] = None,
                      guild_name: Optional[str] = None) -> WhitelistResult:
        clean = normalize_domain(domain)

        def operation(db: Session) -> WhitelistResult:
            scope = WhitelistDomain.guild_id.is_(None) if guild_id is None else WhitelistDomain.guild_id == guild_id
            existing = db.query(WhitelistDomain).filter(WhitelistDomain.domain == clean, scope).first()
            if existing is not None:
                if existing.is_active:
                    return WhitelistResult.ALREADY_LISTED
                existing.is_active = True
                existing.date_added = datetime.utcnow()
                existing.added_by_user_id = added_by_user_id
                existing.added_by_username = added_by_username
                existing.reason = reason
                return WhitelistResult.REACTIVATED

            db.add(WhitelistDomain(
                domain=clean,
                guild_id=guild_id,
                guild_name=guild_name,
                added_by_user_id=added_by_user_id,
                added_by_username=added_by_username,
                reason=reason,
                date_added=datetime.utcnow(),
                is_active=True
            ))
            return WhitelistResult.ADDED

        return self._write(f"whitelist add of {clean}", operation, default=WhitelistResult.FAILED)

    def remove_whitelist(self, domain: str, guild_id: Optional[int]) -> bool:
        clean = normalize_domain(domain)

        def operation(db: Session) -> bool:
            scope = WhitelistDomain.guild_id.is_(None) if guild_id is None else WhitelistDomain.guild_id == guild_id
            row = db.query(WhitelistDomain).filter(
                WhitelistDomain.domain == clean,
                WhitelistDomain.is_active.is_(True),
                scope
            ).first()
            if row is None:
                return False
            row.is_active = False
            return True

        return bool(self._write(f"whitelist removal of {clean}", operation, default=False))

    def list_whitelist(self, guild_id: int, limit: int = 25) -> List[WhitelistDomain]:
        try:
            with self._session() as db:
                return db.query(WhitelistDomain).filter(
                    WhitelistDomain.guild_id == guild_id,
                    WhitelistDomain.is_active.is_(True)
                ).order_by(WhitelistDomain.domain).limit(limit).all()
        except SQLAlchemyError as e:
            logger.error(f"❌ Error listing whitelist: {e}")
            return []

    # ===== Append-only logs =====

    def log_detection(self, **fields) -> bool:
        content = fields.get("message_content")
        if content and len(content) > 2000:
            fields["message_content"] = content[:2000]
        fields.setdefault("detection_date", datetime.utcnow())

        def operation(db: Session) -> bool:
            db.add(DetectionLog(**fields))
            return True

        return bool(self._write("detection log", operation, default=False))

    def add_report(self, **fields) -> Optional[int]:
        fields.setdefault("report_date", datetime.utcnow())

        def operation(db: Session) -> int:
            report = DomainReport(**fields)
            db.add(report)
            db.flush()
            return report.id

        return self._write("domain report", operation, default=None)

    def log_import(self, source: str, imported: int, skipped: int, notes: Optional[str] = None) -> bool:
        def operation(db: Session) -> bool:
            db.add(DomainImportLog(
                source=source,
                import_date=datetime.utcnow(),
                domains_imported=imported,
                domains_skipped=skipped,
                notes=notes
            ))
            return True

        return bool(self._write("import log", operation, default=False))

    # ===== Reporting reads =====

    def detection_history(self, guild_id: int, since: datetime, domain: Optional[str] = None,
                          limit: int = 25) -> List[DetectionLog]:
        try:
            with self._session() as db:
                query = db.query(DetectionLog).filter(
                    DetectionLog.guild_id == guild_id,
                    DetectionLog.detection_date >= since
                )
                if domain:
                    query = query.filter(DetectionLog.domain == normalize_domain(domain))
                return query.order_by(desc(DetectionLog.detection_date)).limit(limit).all()
        except SQLAlchemyError as e:
            logger.error(f"❌ Error reading detection history: {e}")
            return []

    def guild_stats(self, guild_id: int) -> Dict:
        now = datetime.utcnow()
        thirty_days_ago = now - timedelta(days=30)
        seven_days_ago = now - timedelta(days=7)
        try:
            with self._session() as db:
                detections = db.query(func.count(DetectionLog.id)).filter(DetectionLog.guild_id == guild_id)
                reports = db.query(func.count(DomainReport.id)).filter(DomainReport.guild_id == guild_id)
                top_domains = db.query(
                    DetectionLog.domain, func.count(DetectionLog.id).label("hits")
                ).filter(
                    DetectionLog.guild_id == guild_id,
                    DetectionLog.detection_date >= thirty_days_ago
                ).group_by(DetectionLog.domain).order_by(desc("hits")).limit(5).all()

                return {
                    "total_detections": detections.scalar() or 0,
                    "recent_detections": detections.filter(DetectionLog.detection_date >= thirty_days_ago).scalar() or 0,
                    "weekly_detections": detections.filter(DetectionLog.detection_date >= seven_days_ago).scalar() or 0,
                    "total_reports": reports.scalar() or 0,
                    "recent_reports": reports.filter(DomainReport.report_date >= thirty_days_ago).scalar() or 0,
                    "whitelist_count": db.query(func.count(WhitelistDomain.id)).filter(
                        WhitelistDomain.guild_id == guild_id,
                        WhitelistDomain.is_active.is_(True)
                    ).scalar() or 0,
                    "total_scam_domains": db.query(func.count(ScamDomain.id)).filter(
                        ScamDomain.is_active.is_(True)
                    ).scalar() or 0,
                    "top_domains": [{"domain": d, "count": c} for d, c in top_domains]
                }
        except SQLAlchemyError as e:
            logger.error(f"❌ Error getting guild stats: {e}")
            return {
                "total_detections": 0,
                "recent_detections": 0,
                "weekly_detections": 0,
                "total_reports": 0,
                "recent_reports": 0,
                "whitelist_count": 0,
                "total_scam_domains": len(self.cache),
                "top_domains": []
            }
