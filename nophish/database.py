import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from nophish.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str):
    """Create an engine; SQLite connections are shared across worker threads."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            pool_pre_ping=True
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


def build_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# 1. Default engine from settings
engine = build_engine(settings.DATABASE_URL)

SessionLocal = build_session_factory(engine)

def init_db(bind=None):
    """Initialize database tables"""
    # Models must be imported so they register with 'Base'
    import nophish.models  # noqa: F401

    bind = bind or engine
    logger.info("🔄 Creating tables...")
    Base.metadata.create_all(bind=bind)
    logger.info("✓ Tables created successfully")
