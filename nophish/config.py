from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from typing import Optional

load_dotenv()

class Settings(BaseSettings):
    # API Configuration
    APP_NAME: str = "NoPhish"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # SQLite by default, any SQLAlchemy URL works
    DATABASE_URL: str = "sqlite:///./nophishing.db"

    # Reputation sources
    USER_AGENT: str = "NoPhishing-Bot/1.0"
    SCAM_FEED_URL: str = "https://raw.githubusercontent.com/Discord-AntiScam/scam-links/main/list.txt"
    COMMUNITY_LIST_API_URL: str = "https://phish.sinking.yachts/v2/all"
    ANALYSIS_API_URL: str = "https://anti-fish.bitflow.dev/check"

    # Timeouts (seconds)
    CHECK_TIMEOUT: float = 30.0
    SCAN_TIMEOUT: float = 10.0
    FEED_TIMEOUT: float = 30.0
    COMMUNITY_LIST_SNAPSHOT_TTL: int = 300

    # Import / housekeeping
    IMPORT_BATCH_SIZE: int = 1000
    IMPORT_FEED_ON_STARTUP: bool = True
    REVEAL_TOKEN_TTL: int = 600
    HISTORY_MAX_DAYS: int = 90
    LIST_LIMIT: int = 25

    # Owner of the deployment (receives reports, may run feed updates)
    DEVELOPER_USER_ID: Optional[int] = None

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
