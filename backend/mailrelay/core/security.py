"""Security dependencies, client identification, and access logging"""
import json
from datetime import datetime, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from mailrelay.core.config import settings
from mailrelay.core.logging import security_logger, api_access_logger
from mailrelay.db.redis import get_session
from mailrelay.db.session import get_db
from mailrelay.models.api_key import ApiKey
from mailrelay.services.api_key_service import verify_api_key


def get_bearer_token(request: Request) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header, if any"""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_api_key_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(f"{settings.API_KEY_PREFIX}_")


def require_auth(request: Request) -> str:
    """Dependency: Require a user session token, return user_id"""
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(token)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def require_api_key(request: Request, db: Session = Depends(get_db)) -> ApiKey:
    """Dependency: Require a valid API key, return the key record"""
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(401, "Missing or invalid authorization header")

    api_key = verify_api_key(token, db)
    if not api_key:
        security_logger.warning(
            f"Invalid API key - Prefix: {token[:12]}, "
            f"IP: {request.client.host if request.client else 'unknown'}, "
            f"Path: {request.url.path}"
        )
        raise HTTPException(401, "Invalid API key")

    return api_key


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for rate limiting"""
    token = get_bearer_token(request)
    if token:
        # Never put a full credential into a Redis key
        return f"token:{token[:16]}"

    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


def log_api_access(
    request: Request,
    status_code: int = 200,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"

    token = get_bearer_token(request)

    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "query": str(request.url.query) if request.url.query else None,
        "credential": token[:12] + "..." if token else None,
        "client_ip": client_ip,
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "origin": request.headers.get("Origin", "none"),
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2) if duration_ms is not None else None,
        "error": error
    }

    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")
