"""FastAPI application entry point"""
import asyncio
import uvicorn
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from mailrelay import __version__
from mailrelay.core.config import settings
from mailrelay.core.logging import setup_logging
from mailrelay.core.middleware import (
    setup_cors_middleware, security_middleware, http_exception_handler,
    validation_exception_handler, global_exception_handler
)
from mailrelay.core.otel import (
    initialize_otel, setup_otel_logging, instrument_fastapi, instrument_httpx, instrument_sqlalchemy
)
from mailrelay.db.redis import get_redis_client, close_redis_client
from mailrelay.db.session import SessionLocal, engine, init_db, close_db
from mailrelay.services.auth_service import create_default_admin
from mailrelay.services.digitalocean_service import close_dns_service

# Import routers
from mailrelay.api import auth, setup, domains, api_keys, emails, webhooks, monitoring

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if initialize_otel():
        if setup_otel_logging():
            logger.info(f"OpenTelemetry fully initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("OpenTelemetry metrics/traces initialized but logging setup failed")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    instrument_sqlalchemy(engine)

    db = SessionLocal()
    try:
        create_default_admin(db)
    finally:
        db.close()

    verifier = None
    if settings.DOMAIN_VERIFICATION_ENABLED:
        from mailrelay.tasks.domain_verifier import domain_verifier_task
        verifier = asyncio.create_task(domain_verifier_task())
        logger.info(f"Domain verifier started (every {settings.DOMAIN_VERIFICATION_INTERVAL}s)")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if verifier is not None:
        verifier.cancel()
        try:
            await verifier
        except asyncio.CancelledError:
            pass
    close_dns_service()
    close_db()
    close_redis_client()


# Create FastAPI app
app = FastAPI(
    title="mailrelay",
    description="Resend-compatible transactional email relay on top of Amazon SES",
    version=__version__,
    lifespan=lifespan
)

# Instrument FastAPI and HTTPX with OpenTelemetry
instrument_fastapi(app)
instrument_httpx()

# CORS middleware
setup_cors_middleware(app)

# Security middleware (outermost: answers preflight, rate limits, logs access)
app.middleware("http")(security_middleware)

# Exception handlers
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Include routers
app.include_router(auth.router)
app.include_router(setup.router)
app.include_router(domains.router)
app.include_router(api_keys.router)
app.include_router(emails.router)
app.include_router(webhooks.router)
app.include_router(monitoring.router)


if __name__ == "__main__":
    # Reload needs the import string instead of the app object
    if settings.ENVIRONMENT == "development":
        uvicorn.run("mailrelay.main:app", host=settings.HOST, port=settings.PORT, reload=True)
    else:
        uvicorn.run(app, host=settings.HOST, port=settings.PORT, timeout_graceful_shutdown=30)
