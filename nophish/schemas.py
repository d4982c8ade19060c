from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

# ==========================================
# 🧱 SHARED MODELS
# ==========================================

class Invoker(BaseModel):
    """Who ran a command (guild-scoped authorization context)"""
    user_id: int
    username: str = ""
    guild_name: Optional[str] = None


class DomainCheckResponse(BaseModel):
    domain: str
    is_scam: bool = False
    sources: List[str] = []
    details: List[str] = []


class Detection(BaseModel):
    url: str
    domain: str
    sources: List[str] = []
    source_names: List[str] = []
    details: List[str] = []

# ==========================================
# 📥 INPUT MODELS
# ==========================================

class MessageEvent(BaseModel):
    """One inbound chat message as delivered by the gateway"""
    content: str = ""
    guild_id: int
    guild_name: Optional[str] = None
    user_id: int
    username: str = ""
    channel_id: int
    channel_name: str = ""
    message_id: int
    author_is_bot: bool = False


class BlacklistRequest(BaseModel):
    domain: str = Field(..., min_length=1, max_length=255)
    reason: Optional[str] = Field(None, max_length=500)
    invoker: Invoker


class WhitelistRequest(BaseModel):
    domain: str = Field(..., min_length=1, max_length=255)
    reason: Optional[str] = Field(None, max_length=500)
    invoker: Invoker


class ConfigUpdate(BaseModel):
    setting: str
    value: Optional[str] = None
    invoker: Invoker


class DefendingModeRequest(BaseModel):
    invoker: Invoker


class ReportSubmission(BaseModel):
    domain: str = Field(..., min_length=1, max_length=200)
    reason: Optional[str] = Field(None, max_length=1000)
    details: Optional[str] = Field(None, max_length=500)
    guild_id: Optional[int] = None
    invoker: Invoker


class FeedUpdateRequest(BaseModel):
    invoker: Invoker

# ==========================================
# 📤 RESPONSE MODELS
# ==========================================

class ScanOutcome(BaseModel):
    message_id: int
    guild_id: int
    is_scam: bool = False
    skipped_reason: Optional[str] = None
    whitelisted: List[str] = []
    detections: List[Detection] = []

    # Moderation requests for the gateway
    delete_message: bool = False
    post_warning: bool = False
    log_channel_id: Optional[int] = None
    reveal_token: Optional[str] = None
    action_taken: Optional[str] = None


class RevealResponse(BaseModel):
    token: str
    urls: List[Dict[str, str]]


class ScamDomainResponse(BaseModel):
    domain: str
    detection_source: Optional[str] = None
    date_added: Optional[datetime] = None
    notes: Optional[str] = None
    is_active: bool = True

    class Config:
        from_attributes = True


class WhitelistEntryResponse(BaseModel):
    domain: str
    guild_id: Optional[int] = None
    added_by_username: Optional[str] = None
    date_added: Optional[datetime] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class DetectionLogResponse(BaseModel):
    domain: str
    username: Optional[str] = None
    channel_name: Optional[str] = None
    detection_sources: List[str] = []
    detection_date: Optional[datetime] = None
    action_taken: Optional[str] = None

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    guild_id: int
    days: int
    domain: Optional[str] = None
    total: int
    unique_domains: int
    detections: List[DetectionLogResponse]


class ServerConfigResponse(BaseModel):
    guild_id: int
    guild_name: Optional[str] = None
    defending_mode_active: bool = False
    activated_by: Optional[str] = None
    last_activated: Optional[datetime] = None
    auto_delete_scam_messages: bool = True
    send_warning_messages: bool = True
    log_detections: bool = True
    log_channel_id: Optional[int] = None
    require_manual_review: bool = False
    scam_threshold: int = 1
    last_updated: Optional[datetime] = None
    updated_by_username: Optional[str] = None


class StatusResponse(BaseModel):
    guild_id: int
    defending_mode_active: bool
    activated_by: Optional[str] = None
    last_activated: Optional[datetime] = None
    scam_domains: int


class StatsResponse(BaseModel):
    guild_id: int
    defending_mode_active: bool
    total_detections: int
    recent_detections: int
    weekly_detections: int
    total_reports: int
    recent_reports: int
    whitelist_count: int
    total_scam_domains: int
    top_domains: List[Dict[str, Any]] = []


class ReportResponse(BaseModel):
    success: bool
    message: str
    developer_notified: bool = False


class FeedUpdateResponse(BaseModel):
    previous_count: int
    new_count: int
    difference: int
    imported: int
    skipped: int
    duration: float
