"""Email sending and log routes"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from mailrelay.schemas.emails import (
    SendEmailRequest, SendEmailResponse, EmailLogListResponse, EmailDetailResponse
)
from mailrelay.core.security import require_auth, require_api_key, get_bearer_token, is_api_key_token
from mailrelay.db.redis import get_session
from mailrelay.db.session import get_db
from mailrelay.models.api_key import ApiKey
from mailrelay.models.domain import Domain
from mailrelay.services.api_key_service import verify_api_key
from mailrelay.services.email_service import (
    EmailSendError, send_email, list_email_logs, get_email_log_for_user, serialize_email_log
)
from mailrelay.services.ses_service import SESService, get_ses_service

router = APIRouter(prefix="/api/emails", tags=["emails"])
logger = logging.getLogger(__name__)


def require_log_access(request: Request, db: Session = Depends(get_db)) -> List[str]:
    """Dependency: resolve either credential to the domain ids whose logs are visible.

    An API key sees its own domain; a user session sees every domain it owns.
    """
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(401, "Not authenticated")

    if is_api_key_token(token):
        api_key = verify_api_key(token, db)
        if not api_key:
            raise HTTPException(401, "Invalid API key")
        return [api_key.domain_id]

    user_id = get_session(token)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")
    return [row.id for row in db.query(Domain.id).filter(Domain.user_id == user_id).all()]


@router.post("", response_model=SendEmailResponse, response_model_by_alias=True)
def send(
    request_data: SendEmailRequest,
    api_key: ApiKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    ses: SESService = Depends(get_ses_service)
):
    """Send an email (Resend-compatible)"""
    try:
        result = send_email(api_key, request_data, db, ses)
    except EmailSendError as e:
        raise HTTPException(e.status_code, str(e))
    return SendEmailResponse(
        id=result["id"],
        from_=result["from"],
        to=result["to"],
        created_at=result["created_at"]
    )


@router.get("/logs", response_model=EmailLogListResponse)
def get_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    domain_id: Optional[str] = None,
    status: Optional[str] = None,
    domain_ids: List[str] = Depends(require_log_access),
    db: Session = Depends(get_db)
):
    """Page through email logs (at most 100 per page)"""
    return list_email_logs(db, domain_ids, page=page, limit=limit, domain_id=domain_id, status=status)


@router.get("/{email_id}", response_model=EmailDetailResponse)
def get_email(email_id: str, user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Get one email log with its webhook events"""
    email_log = get_email_log_for_user(email_id, user_id, db)
    if not email_log:
        raise HTTPException(404, "Email not found")
    return {"email": serialize_email_log(email_log, include_events=True)}
