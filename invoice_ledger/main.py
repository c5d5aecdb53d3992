"""
Invoice Financing Ledger — application entry-point.

Initializes the FastAPI application, registers middleware, exception handlers,
routers, and manages the application lifecycle (table creation on startup).
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy import text

from invoice_ledger.api.v1.api import api_router
from invoice_ledger.core.cache import cache
from invoice_ledger.core.config import settings
from invoice_ledger.core.exceptions import add_exception_handlers
from invoice_ledger.core.locks import invoice_locks
from invoice_ledger.core.logging import setup_logging
from invoice_ledger.core.resilience import db_circuit_breaker
from invoice_ledger.db.session import AsyncSessionLocal, create_tables, engine
from invoice_ledger.middleware import RequestIDMiddleware, RequestTimingMiddleware
from invoice_ledger.seed import seed

setup_logging()
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ────────────────────────────────────────────────────────────────────────────
# Application lifespan
# ────────────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: create the ledger tables.  The in-memory SQLite ledger always
    succeeds on the first attempt; PostgreSQL gets a few attempts with
    back-off, after which the app starts in degraded mode (``/health``
    reports ``database: false``).

    Shutdown: dispose of the engine.
    """
    max_attempts = 1 if settings.USE_SQLITE else 5
    retry_delay = 2  # seconds, doubled after each failure

    for attempt in range(1, max_attempts + 1):
        try:
            logger.info("Preparing ledger storage (attempt %d/%d)", attempt, max_attempts)
            await create_tables(engine)
            logger.info(
                "Ledger tables ready (%s)",
                "in-memory SQLite" if settings.USE_SQLITE else "PostgreSQL",
            )
            if settings.SEED_DEMO_DATA:
                await seed()
            break
        except Exception as exc:
            if attempt < max_attempts:
                logger.warning(
                    "Database connection failed (attempt %d/%d): %s; retrying in %ds",
                    attempt,
                    max_attempts,
                    exc,
                    retry_delay,
                )
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.error(
                    "Could not prepare the database after %d attempt(s). "
                    "Starting in DEGRADED mode; ledger endpoints will fail "
                    "until the database is reachable. Last error: %s",
                    max_attempts,
                    exc,
                )

    yield

    logger.info("Shutting down, disposing engine")
    await engine.dispose()


# ────────────────────────────────────────────────────────────────────────────
# FastAPI application instance
# ────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=VERSION,
    description=(
        "Off-chain ledger for invoice financing: MSMEs register invoices, "
        "investors finance them, and settlement distributes the returns."
    ),
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)


# ── Middleware (order matters: outermost = first to execute) ──
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Global error handlers ──
add_exception_handlers(app)

# ── API routers ──
app.include_router(api_router, prefix=settings.API_V1_STR)


# ── Health check ──


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness / readiness probe.

    Runs ``SELECT 1`` against the ledger database and reports the circuit
    breaker, the read cache and the number of invoices currently locked.
    """
    db_healthy = True
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database unreachable")
        db_healthy = False

    return {
        "status": "ok" if db_healthy else "degraded",
        "version": VERSION,
        "database": db_healthy,
        "storage": "sqlite-memory" if settings.USE_SQLITE else "postgresql",
        "circuit_breaker": db_circuit_breaker.get_status(),
        "cache": cache.get_stats(),
        "locked_invoices": len(invoice_locks),
    }
