import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from nophish.core.domain_store import UpsertResult, WhitelistResult
from nophish.core.exceptions import ImportFailure, StorageError
from nophish.core.normalizer import normalize_domain
from nophish.schemas import (
    BlacklistRequest, ConfigUpdate, DefendingModeRequest, DetectionLogResponse,
    DomainCheckResponse, FeedUpdateRequest, FeedUpdateResponse, HistoryResponse,
    MessageEvent, ReportResponse, ReportSubmission, RevealResponse, ScamDomainResponse,
    ScanOutcome, ServerConfigResponse, StatsResponse, StatusResponse,
    WhitelistEntryResponse, WhitelistRequest
)
from nophish.services.guild_settings import config_to_dict
from nophish.services.protection import ProtectionEngine

logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine(request: Request) -> ProtectionEngine:
    """Dependency for FastAPI routes"""
    return request.app.state.engine


def require_guild(guild_id: Optional[int]) -> int:
    if not guild_id:
        raise HTTPException(status_code=400, detail="This command can only be used in a server.")
    return guild_id

# ============================================================================
# MESSAGE ENDPOINTS
# ============================================================================

@router.post("/messages/scan", response_model=ScanOutcome)
def scan_message(event: MessageEvent, engine: ProtectionEngine = Depends(get_engine)):
    """Scan one inbound message and return the moderation actions to take"""
    try:
        return engine.scanner.scan_message(event)
    except Exception as e:
        logger.error(f"❌ Error in /messages/scan: {e}")
        raise HTTPException(status_code=500, detail="Message scan failed")


@router.post("/reveals/{token}", response_model=RevealResponse)
def reveal_links(token: str, engine: ProtectionEngine = Depends(get_engine)):
    urls = engine.reveals.reveal(token)
    if urls is None:
        raise HTTPException(status_code=404, detail="These links are no longer available.")
    return {
        "token": token,
        "urls": [{"url": url, "source": source} for url, source in urls]
    }

# ============================================================================
# DOMAIN CHECK & REPORT ENDPOINTS
# ============================================================================

@router.get("/check", response_model=DomainCheckResponse)
def check_domain(domain: str, engine: ProtectionEngine = Depends(get_engine)):
    """Run every tier against one domain or URL"""
    if not domain.strip():
        raise HTTPException(status_code=400, detail="Domain is required")
    try:
        result = engine.checker.check(domain)
    except Exception as e:
        logger.error(f"❌ Error in /check: {e}")
        raise HTTPException(status_code=500, detail="An error occurred while checking the domain.")

    return {
        "domain": result.domain,
        "is_scam": result.is_scam,
        "sources": result.sources,
        "details": result.details
    }


@router.post("/reports", response_model=ReportResponse)
def submit_report(report: ReportSubmission, engine: ProtectionEngine = Depends(get_engine)):
    success, message, notified = engine.reports.submit_report(
        domain=report.domain,
        reason=report.reason,
        details=report.details,
        user_id=report.invoker.user_id,
        username=report.invoker.username,
        guild_id=report.guild_id,
        guild_name=report.invoker.guild_name
    )
    return {"success": success, "message": message, "developer_notified": notified}

# ============================================================================
# BLACKLIST ENDPOINTS
# ============================================================================

@router.get("/blacklist", response_model=List[ScamDomainResponse])
def list_blacklist(engine: ProtectionEngine = Depends(get_engine)):
    return engine.admin.blacklist_list()


@router.post("/blacklist")
def add_blacklist(request: BlacklistRequest, engine: ProtectionEngine = Depends(get_engine)):
    result = engine.admin.blacklist_add(request.domain, request.invoker.username, request.reason)
    domain = normalize_domain(request.domain)

    if result is UpsertResult.FAILED:
        raise HTTPException(status_code=500, detail=f"Failed to add {domain} to blacklist")
    if result is UpsertResult.ALREADY_ACTIVE:
        return {"status": "unchanged", "message": f"{domain} is already blacklisted"}
    return {"status": "success", "message": f"{domain} added to blacklist", "result": result.value}


@router.delete("/blacklist/{domain}")
def remove_blacklist(domain: str, username: str = "", engine: ProtectionEngine = Depends(get_engine)):
    if not engine.admin.blacklist_remove(domain, username):
        raise HTTPException(status_code=404, detail=f"{normalize_domain(domain)} was not found in blacklist")
    return {"status": "success", "message": f"{normalize_domain(domain)} removed from blacklist"}

# ============================================================================
# WHITELIST ENDPOINTS
# ============================================================================

@router.get("/guilds/{guild_id}/whitelist", response_model=List[WhitelistEntryResponse])
def list_whitelist(guild_id: int, engine: ProtectionEngine = Depends(get_engine)):
    return engine.admin.whitelist_list(require_guild(guild_id))


@router.post("/guilds/{guild_id}/whitelist")
def add_whitelist(guild_id: int, request: WhitelistRequest, engine: ProtectionEngine = Depends(get_engine)):
    result = engine.admin.whitelist_add(
        request.domain,
        require_guild(guild_id),
        request.invoker.user_id,
        request.invoker.username,
        reason=request.reason,
        guild_name=request.invoker.guild_name
    )
    domain = normalize_domain(request.domain)

    if result is WhitelistResult.FAILED:
        raise HTTPException(status_code=500, detail=f"Failed to add {domain} to whitelist")
    if result is WhitelistResult.ALREADY_LISTED:
        return {"status": "unchanged", "message": f"{domain} is already whitelisted"}
    return {"status": "success", "message": f"{domain} added to whitelist", "result": result.value}


@router.delete("/guilds/{guild_id}/whitelist/{domain}")
def remove_whitelist(guild_id: int, domain: str, username: str = "",
                     engine: ProtectionEngine = Depends(get_engine)):
    if not engine.admin.whitelist_remove(domain, require_guild(guild_id), username):
        raise HTTPException(status_code=404, detail=f"{normalize_domain(domain)} was not found in whitelist")
    return {"status": "success", "message": f"{normalize_domain(domain)} removed from whitelist"}

# ============================================================================
# GUILD CONFIGURATION ENDPOINTS
# ============================================================================

@router.get("/guilds/{guild_id}/config", response_model=ServerConfigResponse)
def get_config(guild_id: int, engine: ProtectionEngine = Depends(get_engine)):
    return config_to_dict(engine.guild_settings.get_config(require_guild(guild_id)))


@router.patch("/guilds/{guild_id}/config", response_model=ServerConfigResponse)
def update_config(guild_id: int, update: ConfigUpdate, engine: ProtectionEngine = Depends(get_engine)):
    try:
        config = engine.guild_settings.update_setting(
            require_guild(guild_id),
            update.setting,
            update.value,
            user_id=update.invoker.user_id,
            username=update.invoker.username,
            guild_name=update.invoker.guild_name
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to update configuration")
    return config_to_dict(config)


@router.post("/guilds/{guild_id}/activate", response_model=StatusResponse)
def activate(guild_id: int, request: DefendingModeRequest, engine: ProtectionEngine = Depends(get_engine)):
    return _set_defending_mode(engine, require_guild(guild_id), True, request)


@router.post("/guilds/{guild_id}/deactivate", response_model=StatusResponse)
def deactivate(guild_id: int, request: DefendingModeRequest, engine: ProtectionEngine = Depends(get_engine)):
    return _set_defending_mode(engine, require_guild(guild_id), False, request)


def _set_defending_mode(engine: ProtectionEngine, guild_id: int, active: bool, request: DefendingModeRequest):
    try:
        config = engine.guild_settings.set_defending_mode(
            guild_id, active,
            activated_by=request.invoker.username,
            guild_name=request.invoker.guild_name
        )
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to change defending mode")

    return {
        "guild_id": guild_id,
        "defending_mode_active": bool(config.defending_mode_active),
        "activated_by": config.activated_by,
        "last_activated": config.last_activated,
        "scam_domains": engine.store.count_active_scams()
    }


@router.get("/guilds/{guild_id}/status", response_model=StatusResponse)
def get_status(guild_id: int, engine: ProtectionEngine = Depends(get_engine)):
    config = engine.guild_settings.get_config(require_guild(guild_id))
    return {
        "guild_id": guild_id,
        "defending_mode_active": bool(config.defending_mode_active),
        "activated_by": config.activated_by,
        "last_activated": config.last_activated,
        "scam_domains": engine.store.count_active_scams()
    }

# ============================================================================
# STATISTICS & HISTORY ENDPOINTS
# ============================================================================

@router.get("/guilds/{guild_id}/stats", response_model=StatsResponse)
def get_stats(guild_id: int, engine: ProtectionEngine = Depends(get_engine)):
    stats = engine.admin.stats(require_guild(guild_id))
    return {
        "guild_id": guild_id,
        "defending_mode_active": engine.guild_settings.is_defending(guild_id),
        **stats
    }


@router.get("/guilds/{guild_id}/history", response_model=HistoryResponse)
def get_history(guild_id: int, days: int = 7, domain: Optional[str] = None,
                engine: ProtectionEngine = Depends(get_engine)):
    try:
        detections = engine.admin.history(require_guild(guild_id), days=days, domain=domain)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "guild_id": guild_id,
        "days": days,
        "domain": normalize_domain(domain) if domain else None,
        "total": len(detections),
        "unique_domains": len({d.domain for d in detections}),
        "detections": [DetectionLogResponse.model_validate(d) for d in detections]
    }

# ============================================================================
# FEED & HEALTH ENDPOINTS
# ============================================================================

@router.post("/feed/update", response_model=FeedUpdateResponse)
def update_feed(request: FeedUpdateRequest, engine: ProtectionEngine = Depends(get_engine)):
    """Re-import the scam-link feed. Owner only."""
    if not engine.is_owner(request.invoker.user_id):
        raise HTTPException(status_code=403, detail="This command is restricted to the bot owner.")

    try:
        update = engine.importer.update_from_feed()
    except ImportFailure as e:
        logger.error(f"❌ Error in /feed/update: {e}")
        raise HTTPException(status_code=502, detail=f"Feed update failed: {e}")

    return {
        "previous_count": update.previous_count,
        "new_count": update.new_count,
        "difference": update.difference,
        "imported": update.result.imported,
        "skipped": update.result.skipped,
        "duration": round(update.duration, 2)
    }


@router.get("/health")
def health_check(engine: ProtectionEngine = Depends(get_engine)):
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "service": "NoPhish",
        "cached_domains": len(engine.cache)
    }
