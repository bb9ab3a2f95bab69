"""
nossence.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn nossence.api.main:app --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from nossence.api.deps import get_engine  # noqa: E402
from nossence.api.routes.feed import router as feed_router  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    logger.info("nossence API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("nossence API shutting down")


app = FastAPI(
    title="nossence Feed API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(feed_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
