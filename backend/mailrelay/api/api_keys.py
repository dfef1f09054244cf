"""API key management routes"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mailrelay.schemas.api_keys import (
    CreateApiKeyRequest, UpdateApiKeyRequest, ApiKeyCreateResult,
    ApiKeyListResponse, ApiKeyUpdateResult
)
from mailrelay.core.security import require_auth
from mailrelay.db.session import get_db
from mailrelay.services.api_key_service import (
    generate_api_key, get_user_api_keys, update_api_key_permissions,
    delete_api_key, serialize_api_key
)

router = APIRouter(prefix="/api/api-keys", tags=["api-keys"])
logger = logging.getLogger(__name__)


@router.get("", response_model=ApiKeyListResponse)
def list_api_keys(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """List the user's API keys (never the secrets)"""
    return {"apiKeys": [serialize_api_key(k) for k in get_user_api_keys(user_id, db)]}


@router.post("", response_model=ApiKeyCreateResult)
def create_api_key(
    request_data: CreateApiKeyRequest,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Create an API key; the plaintext key is only returned here"""
    try:
        api_key = generate_api_key(
            user_id, request_data.domainId, request_data.keyName, request_data.permissions, db
        )
    except ValueError as e:
        error_msg = str(e)
        if "Domain not found" in error_msg:
            raise HTTPException(404, error_msg)
        raise HTTPException(400, error_msg)
    return {"apiKey": api_key}


@router.put("/{key_id}", response_model=ApiKeyUpdateResult)
def update_api_key(
    key_id: str,
    request_data: UpdateApiKeyRequest,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Replace an API key's permissions"""
    try:
        api_key = update_api_key_permissions(key_id, user_id, request_data.permissions, db)
    except ValueError as e:
        raise HTTPException(404, str(e))
    return {"apiKey": serialize_api_key(api_key)}


@router.delete("/{key_id}")
def remove_api_key(key_id: str, user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Delete an API key"""
    try:
        delete_api_key(key_id, user_id, db)
    except ValueError as e:
        raise HTTPException(404, str(e))
    return {"message": "API key deleted successfully"}
