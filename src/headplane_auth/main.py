"""Headplane Auth

Main FastAPI application entry point.
OIDC login for the Headplane admin UI.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from headplane_auth.config.settings import get_settings
from headplane_auth.api.routes import oidc
from headplane_auth.domain.errors import OIDCError
from headplane_auth.infrastructure.redis.client import get_redis_client, close_redis_client

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    oidc_config = settings.oidc_config()
    if oidc_config is None:
        logger.warning("OIDC_ISSUER not set, OIDC login is disabled")
    else:
        logger.info(f"OIDC login enabled: issuer={oidc_config.issuer}")

    try:
        await get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down Headplane Auth")
    await close_redis_client()
    logger.info("Redis connection closed")


app = FastAPI(
    title="Headplane Auth",
    version=settings.service_version,
    description="OpenID Connect login for the Headplane admin UI",
    lifespan=lifespan
)


@app.get("/health")
async def root_health_check():
    """Root health check endpoint"""
    redis_client = await get_redis_client()
    redis_ok = await redis_client.health_check()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": "connected" if redis_ok else "disconnected",
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
        "oidc_enabled": bool(settings.oidc_issuer)
    }


app.include_router(oidc.router, tags=["oidc"])


@app.exception_handler(OIDCError)
async def oidc_exception_handler(request: Request, exc: OIDCError):
    """Login flow failures are fatal; report them to the user"""
    logger.warning(f"OIDC login failed on {request.url.path}: {exc.code}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": str(exc)
        }
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "headplane_auth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
