"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure

from compliance.core.cache import EphemeralCache
from compliance.core.config import settings
from compliance.core.deps import get_db
from compliance.core.structured_logging import configure_logging
from compliance.db.mongo import create_client, get_database

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.pymongo import PyMongoIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            PyMongoIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Don't send PII to Sentry
    )
    logger.info("Sentry initialized for error tracking")


# ============================================================================
# Lifespan: store client and reference cache
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = create_client(settings)
    app.state.db = get_database(client, settings)
    app.state.cache = EphemeralCache(default_ttl=settings.CACHE_TTL_SECONDS)
    try:
        yield
    finally:
        await client.close()


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Compliance API",
    description="Compliance application intake, hearings and closure",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-User-Id",
        "X-User-Roles",
        "X-User-District",
        "X-User-Email",
        "X-User-Cnic",
    ],
)


@app.exception_handler(ConnectionFailure)
async def store_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error("Document store unavailable: %s", exc.__class__.__name__)
    return JSONResponse(status_code=503, content={"detail": "Document store unavailable"})


# ============================================================================
# Routers
# ============================================================================

from compliance.routers import applications, public, reference

app.include_router(applications.router, prefix="/applications", tags=["applications"])
app.include_router(public.router, prefix="/public", tags=["public"])
app.include_router(reference.router, tags=["reference"])


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health")
async def health(db=Depends(get_db)):
    """
    Health check endpoint.

    Verifies store connectivity and returns environment info.
    """
    await db.command("ping")
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
