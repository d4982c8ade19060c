import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nophish.core.exceptions import InvalidSettingError, StorageError
from nophish.models import ServerConfig

logger = logging.getLogger(__name__)

BOOLEAN_SETTINGS = {
    "auto_delete": "auto_delete_scam_messages",
    "send_warnings": "send_warning_messages",
    "log_detections": "log_detections",
    "manual_review": "require_manual_review",
}
SETTINGS = tuple(BOOLEAN_SETTINGS) + ("log_channel", "scam_threshold")

MIN_THRESHOLD = 1
MAX_THRESHOLD = 3


def config_to_dict(config: ServerConfig) -> Dict:
    return {
        "guild_id": config.guild_id,
        "guild_name": config.guild_name,
        "defending_mode_active": bool(config.defending_mode_active),
        "activated_by": config.activated_by,
        "last_activated": config.last_activated,
        "auto_delete_scam_messages": bool(config.auto_delete_scam_messages),
        "send_warning_messages": bool(config.send_warning_messages),
        "log_detections": bool(config.log_detections),
        "log_channel_id": config.log_channel_id,
        "require_manual_review": bool(config.require_manual_review),
        "scam_threshold": config.scam_threshold,
        "last_updated": config.last_updated,
        "updated_by_username": config.updated_by_username,
    }


def default_config(guild_id: int) -> ServerConfig:
    return ServerConfig(
        guild_id=guild_id,
        defending_mode_active=False,
        auto_delete_scam_messages=True,
        send_warning_messages=True,
        log_detections=True,
        require_manual_review=False,
        scam_threshold=1,
    )


class GuildSettingsService:
    """
    Per-guild feature toggles. Reads are free; every read-modify-write runs
    inside one lock so concurrent config commands cannot lose updates.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self._lock = threading.Lock()

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def get_config(self, guild_id: int) -> ServerConfig:
        """Stored config, or unsaved defaults when the guild has none"""
        try:
            with self._session() as db:
                config = db.query(ServerConfig).filter(ServerConfig.guild_id == guild_id).first()
                if config is not None:
                    return config
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading config for guild {guild_id}: {e}")
        return default_config(guild_id)

    def is_defending(self, guild_id: int) -> bool:
        return bool(self.get_config(guild_id).defending_mode_active)

    def set_defending_mode(self, guild_id: int, active: bool, activated_by: Optional[str] = None,
                           guild_name: Optional[str] = None) -> ServerConfig:
        def change(config: ServerConfig):
            config.defending_mode_active = active
            config.last_activated = datetime.utcnow()
            config.activated_by = activated_by

        config = self._modify(guild_id, change, guild_name=guild_name)
        state = "activated" if active else "deactivated"
        logger.info(f"✓ Defending mode {state} by {activated_by} in guild {guild_id}")
        return config

    def update_setting(self, guild_id: int, setting: str, value: Optional[str],
                       user_id: Optional[int] = None, username: Optional[str] = None,
                       guild_name: Optional[str] = None) -> ServerConfig:
        """Validate and apply one setting. Raises InvalidSettingError."""
        setting = (setting or "").strip().lower()
        apply = self._parse(setting, value)

        def change(config: ServerConfig):
            apply(config)
            config.last_updated = datetime.utcnow()
            config.updated_by_user_id = user_id
            config.updated_by_username = username

        config = self._modify(guild_id, change, guild_name=guild_name)
        logger.info(f"✓ Config setting {setting} updated to '{value}' by {username} in guild {guild_id}")
        return config

    def _parse(self, setting: str, value: Optional[str]) -> Callable[[ServerConfig], None]:
        if setting in BOOLEAN_SETTINGS:
            if value is None or not str(value).strip():
                raise InvalidSettingError("Value is required. Use `true` or `false`.")
            flag = str(value).strip().lower() == "true"
            column = BOOLEAN_SETTINGS[setting]
            return lambda config: setattr(config, column, flag)

        if setting == "log_channel":
            raw = (value or "").strip()
            if not raw:
                return lambda config: setattr(config, "log_channel_id", None)
            raw = raw.replace("<#", "").replace(">", "")
            if not raw.isdigit():
                raise InvalidSettingError("Invalid channel ID. Use a channel mention or ID.")
            channel_id = int(raw)
            return lambda config: setattr(config, "log_channel_id", channel_id)

        if setting == "scam_threshold":
            try:
                threshold = int(str(value).strip())
            except (TypeError, ValueError):
                threshold = None
            if threshold is None or not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
                raise InvalidSettingError("Scam threshold must be a number between 1 and 3.")
            return lambda config: setattr(config, "scam_threshold", threshold)

        raise InvalidSettingError(f"Invalid setting '{setting}'. Use one of: {', '.join(SETTINGS)}")

    def _modify(self, guild_id: int, change: Callable[[ServerConfig], None],
                guild_name: Optional[str] = None) -> ServerConfig:
        with self._lock:
            with self._session() as db:
                try:
                    config = db.query(ServerConfig).filter(ServerConfig.guild_id == guild_id).first()
                    if config is None:
                        config = default_config(guild_id)
                        db.add(config)
                    if guild_name:
                        config.guild_name = guild_name
                    change(config)
                    db.commit()
                    return config
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"❌ Error saving settings for guild {guild_id}: {e}")
                    raise StorageError(f"Could not save settings for guild {guild_id}") from e
