"""
Master Data Hunter API - FastAPI Main Entry

LOCAL:
    cd backend
    python -m uvicorn datahunter.main:app --reload --host 0.0.0.0 --port 8000

TEST:
    curl -i http://127.0.0.1:8000/health
    curl -i "http://127.0.0.1:8000/api/search?identifier=5000112345678&market=UK"
    curl -i "http://127.0.0.1:8000/api/search?identifier=5000112345678&market=UK&variant=grounded"

PRODUCTION (Render):
    Build Command:
        pip install .

    Start Command:
        python -m uvicorn datahunter.main:app --host 0.0.0.0 --port $PORT
"""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from datahunter.api.routes_search import router as search_router
from datahunter.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.has_gemini_key:
        logger.warning("GEMINI_API_KEY is not set; every search will report 'Missing GEMINI_API_KEY'")
    if not settings.has_serpapi_key:
        logger.warning("SERPAPI_API_KEY is not set; image and page evidence are disabled")

    app = FastAPI(
        title="Master Data Hunter API",
        version=settings.APP_VERSION,
        description="GTIN/EAN + market -> normalized nutrition & product record",
    )

    # The batch UI runs in a browser, possibly from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {
            "name": "Master Data Hunter API",
            "status": "ok",
            "docs": "/docs",
            "search": "/api/search?identifier=<GTIN>&market=<CODE>",
            "markets": "/api/markets",
            # Callers should send one identifier at a time and wait this long in between
            "cooldown_seconds": settings.REQUEST_COOLDOWN_SECONDS,
        }

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/version")
    def version():
        return {"version": settings.APP_VERSION, "build": settings.BUILD_ID}

    app.dependency_overrides[get_settings] = lambda: settings
    app.include_router(search_router)

    return app


app = create_app()
