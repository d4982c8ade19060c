import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from nophish.config import settings
from nophish.database import SessionLocal, init_db
from nophish.api import routes
from nophish.services.protection import ProtectionEngine, build_protection_engine

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(engine: Optional[ProtectionEngine] = None, bind=None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"🚀 Starting {settings.APP_NAME}...")
        init_db(bind)
        logger.info("✓ Database initialized")

        app.state.engine = engine or build_protection_engine(SessionLocal)
        app.state.engine.startup()
        yield
        # Shutdown
        logger.info(f"👋 Shutting down {settings.APP_NAME}...")
        app.state.engine.shutdown()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan
    )

    # Include routers
    app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Protection"])

    @app.get("/")
    def root():
        return {
            "message": "NoPhish API",
            "version": settings.VERSION,
            "docs": "/docs"
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("nophish.main:app", host="0.0.0.0", port=8000, reload=False)
