"""
gallerysync.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn gallerysync.api.main:app --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from gallerysync.api.deps import build_store, get_config  # noqa: E402
from gallerysync.api.routes.gallery import router as gallery_router  # noqa: E402
from gallerysync.services.gallery_service import GallerySynchronizer  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide synchronizer and start the sync timer."""
    cfg = get_config()
    missing = cfg.missing_settings()
    if missing:
        # Requests still serve whatever snapshot exists, flagged with an error.
        logger.error("Gallery sync is not configured: missing %s", ", ".join(missing))

    store = build_store(cfg)
    transport = httpx.AsyncHTTPTransport(retries=1)
    http = httpx.AsyncClient(transport=transport, headers={"User-Agent": "gallerysync"})

    synchronizer = GallerySynchronizer.from_config(cfg, http, store)
    app.state.store = store
    app.state.synchronizer = synchronizer
    synchronizer.start_timer(cfg.sync_interval)
    logger.info("gallerysync API started — channel %s, %s store", cfg.channel_id, cfg.storage_backend)
    yield
    logger.info("gallerysync API shutting down")
    await synchronizer.stop_timer()
    await http.aclose()
    await store.aclose()


app = FastAPI(
    title="gallerysync API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(gallery_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
