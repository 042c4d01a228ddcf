"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from sqlalchemy import text

from notifier.core.config import settings
from notifier.db.session import engine

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Work Item Notifier",
    description="Watch management and notification fan-out for work items",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# ============================================================================
# Routers
# ============================================================================

from notifier.routers import unsubscribe, watches

app.include_router(watches.router)
app.include_router(unsubscribe.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
