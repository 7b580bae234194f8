"""
Marketplace FastAPI Application

Main entry point for the marketplace credential, OTP and fraud API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Common library imports
from common.database import MongoDB
from common.utils import success_response
from common.utils.cache import TTLCache
from common.utils.log_config import configure_logging

# App-specific imports
from marketplace.config import settings
from marketplace.database import ensure_indexes, seed_roles
from marketplace.dependencies import (
    get_credential_store,
    get_task_runner,
    init_all_services,
)
from marketplace.error_handlers import register_error_handlers
from marketplace.middleware import MaintenanceModeMiddleware
from marketplace.middleware.maintenance import MAINTENANCE_CONFIG_KEY

# Import routers
from marketplace.routers import auth_router, fraud_router, otp_router

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# =============================================================================
# Database Instances
# =============================================================================
main_db = MongoDB()

maintenance_cache = TTLCache(ttl_seconds=settings.MAINTENANCE_CACHE_TTL_SECONDS)


async def load_maintenance_flag() -> bool:
    """Read the maintenance flag from systemConfig, defaulting to MAINTENANCE_MODE."""
    value = await get_credential_store().get_system_config(MAINTENANCE_CONFIG_KEY)
    if value is None:
        return settings.MAINTENANCE_MODE
    return bool(value)


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Validates settings, connects to MongoDB, prepares indexes and wires
    services. On shutdown, waits for background tasks before disconnecting.
    """
    # Startup
    configure_logging(settings.LOG_LEVEL)
    settings.validate_required()
    logger.info(f"Starting {settings.APP_NAME} API...")

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
    )

    await ensure_indexes(main_db.db)
    await seed_roles(main_db.db)

    init_all_services(db=main_db.db, settings=settings)
    logger.info("All services initialized")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME} API...")
    await get_task_runner().drain()
    await main_db.disconnect()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Credentials, session tokens, OTP verification and fraud risk scoring",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

register_error_handlers(app)

# =============================================================================
# Middleware
# =============================================================================
app.add_middleware(
    MaintenanceModeMiddleware,
    flag_loader=load_maintenance_flag,
    cache=maintenance_cache,
    default_enabled=settings.MAINTENANCE_MODE,
    bypass_prefixes=("/health", "/admin", "/docs", "/redoc", "/openapi.json"),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Include Routers (all under /api/v1 prefix)
# =============================================================================
API_PREFIX = "/api/v1"

app.include_router(auth_router, prefix=API_PREFIX, tags=["Authentication"])
app.include_router(otp_router, prefix=API_PREFIX, tags=["OTP"])
app.include_router(fraud_router, prefix=API_PREFIX, tags=["Fraud"])


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """
    Health check endpoint.

    Returns the status of the API and database connection.
    """
    return success_response({
        "status": "ok",
        "version": API_VERSION,
        "database": await main_db.ping(),
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )
