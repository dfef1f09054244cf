"""Middleware and exception handlers for the FastAPI application"""
import logging
import time
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mailrelay.core.config import settings
from mailrelay.core.logging import security_logger
from mailrelay.core.security import get_client_identifier, log_api_access
from mailrelay.db.redis import check_rate_limit

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

# Paths that are never rate limited
RATE_LIMIT_EXEMPT_PATHS = ("/api/webhooks/ses", "/health", "/metrics")


def setup_cors_middleware(app):
    """Setup CORS middleware for FastAPI app"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


async def security_middleware(request: Request, call_next):
    """Middleware for preflight handling, rate limiting and API access logging"""
    # Preflight requests are answered here for every path
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)

    status_code = 500
    error = None
    started = time.perf_counter()

    try:
        path = request.url.path
        if path not in RATE_LIMIT_EXEMPT_PATHS:
            identifier = get_client_identifier(request)
            if not check_rate_limit(identifier):
                status_code = 429
                error = "Rate limit exceeded"
                security_logger.warning(f"Rate limit exceeded - Identifier: {identifier}, Path: {path}")
                return JSONResponse(
                    status_code=429,
                    content={"error": "Rate limit exceeded. Please try again later."},
                    headers=CORS_HEADERS
                )

        response = await call_next(request)
        status_code = response.status_code
        return response

    except Exception as e:
        error = str(e)
        security_logger.error(f"Security middleware error: {error}", exc_info=True)
        raise
    finally:
        log_api_access(request, status_code, (time.perf_counter() - started) * 1000, error)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTPException as {"error": ...}"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body/query validation failures are 400s"""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request data", "details": jsonable_encoder(exc.errors())}
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    content = {"error": "Internal server error"}
    if not settings.is_production:
        content["message"] = str(exc)
    return JSONResponse(status_code=500, content=content)
