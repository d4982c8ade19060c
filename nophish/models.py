from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, JSON, Text, Boolean, UniqueConstraint
)
from datetime import datetime
from nophish.database import Base

class ScamDomain(Base):
    __tablename__ = "scam_domains"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(255), unique=True, index=True, nullable=False)

    detection_source = Column(String(100))
    date_added = Column(DateTime, default=datetime.utcnow)
    notes = Column(String(500), nullable=True)

    # Soft delete: a removed domain keeps its row
    is_active = Column(Boolean, default=True, index=True)


class WhitelistDomain(Base):
    __tablename__ = "whitelist_domains"
    __table_args__ = (
        UniqueConstraint("domain", "guild_id", name="uq_whitelist_domain_guild"),
    )

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(255), index=True, nullable=False)

    # NULL = global whitelist
    guild_id = Column(BigInteger, index=True, nullable=True)
    guild_name = Column(String(200), nullable=True)

    added_by_user_id = Column(BigInteger)
    added_by_username = Column(String(100), nullable=False, default="")

    date_added = Column(DateTime, default=datetime.utcnow)
    reason = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True)


class DetectionLog(Base):
    __tablename__ = "detection_logs"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(255), index=True, nullable=False)

    guild_id = Column(BigInteger, index=True)
    guild_name = Column(String(200), nullable=True)

    user_id = Column(BigInteger)
    username = Column(String(100), nullable=False, default="")

    channel_id = Column(BigInteger)
    channel_name = Column(String(100), nullable=False, default="")

    message_id = Column(BigInteger)
    message_content = Column(String(2000), nullable=True)

    # Ordered list of tier names that matched
    detection_sources = Column(JSON, default=list)

    detection_date = Column(DateTime, default=datetime.utcnow, index=True)
    was_deleted = Column(Boolean, default=False)
    was_warned = Column(Boolean, default=False)
    action_taken = Column(String(500), nullable=True)


class DomainReport(Base):
    __tablename__ = "domain_reports"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(255), index=True, nullable=False)
    reason = Column(String(500), nullable=True)

    reported_by_user_id = Column(BigInteger)
    reported_by_username = Column(String(100), nullable=False, default="")

    guild_id = Column(BigInteger, nullable=True)
    guild_name = Column(String(200), nullable=True)

    report_date = Column(DateTime, default=datetime.utcnow, index=True)
    is_processed = Column(Boolean, default=False)
    processing_notes = Column(Text, nullable=True)


class DomainImportLog(Base):
    __tablename__ = "domain_import_logs"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(100), nullable=False)
    import_date = Column(DateTime, default=datetime.utcnow)

    domains_imported = Column(Integer, default=0)
    domains_skipped = Column(Integer, default=0)
    notes = Column(String(1000), nullable=True)


class ServerConfig(Base):
    __tablename__ = "server_configs"

    id = Column(Integer, primary_key=True, index=True)
    guild_id = Column(BigInteger, unique=True, index=True, nullable=False)
    guild_name = Column(String(200), nullable=True)

    # Defending mode (message scanning on/off)
    defending_mode_active = Column(Boolean, default=False)
    activated_by = Column(String(100), nullable=True)
    last_activated = Column(DateTime, nullable=True)

    auto_delete_scam_messages = Column(Boolean, default=True)
    send_warning_messages = Column(Boolean, default=True)
    log_detections = Column(Boolean, default=True)
    log_channel_id = Column(BigInteger, nullable=True)
    require_manual_review = Column(Boolean, default=False)

    # How many tiers must match before acting (1-3)
    scam_threshold = Column(Integer, default=1)

    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by_user_id = Column(BigInteger, nullable=True)
    updated_by_username = Column(String(100), nullable=True)
