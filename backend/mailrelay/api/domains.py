"""Domain management API routes"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mailrelay.schemas.domains import (
    CreateDomainRequest, DomainSetupResponse, DomainListResponse,
    DomainDetailResponse, DomainVerifyResponse
)
from mailrelay.core.security import require_auth
from mailrelay.db.session import get_db
from mailrelay.services.digitalocean_service import DigitalOceanService, get_dns_service
from mailrelay.services.domain_service import (
    ProviderError, add_domain, check_domain_verification, delete_domain,
    get_domain_for_user, get_user_domains, serialize_domain
)
from mailrelay.services.ses_service import SESService, get_ses_service

router = APIRouter(prefix="/api/domains", tags=["domains"])
logger = logging.getLogger(__name__)

VERIFY_MESSAGES = {
    "verified": "Domain verified successfully",
    "failed": "Domain verification failed. Please check your DNS records.",
    "pending": "Domain verification is still pending. DNS changes can take up to 72 hours to propagate.",
}


@router.get("", response_model=DomainListResponse)
def list_domains(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """List the user's domains, newest first"""
    return {"domains": [serialize_domain(d) for d in get_user_domains(user_id, db)]}


@router.post("", response_model=DomainSetupResponse)
def create_domain(
    request_data: CreateDomainRequest,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db),
    ses: SESService = Depends(get_ses_service),
    dns: Optional[DigitalOceanService] = Depends(get_dns_service)
):
    """Add a sending domain and set up its DNS records"""
    try:
        return add_domain(user_id, request_data.domain, db, ses, dns)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except ProviderError as e:
        logger.error(f"Domain provisioning failed for {request_data.domain}: {e}")
        raise HTTPException(502, str(e))


@router.get("/{domain_id}", response_model=DomainDetailResponse)
def get_domain(domain_id: str, user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Get a single domain"""
    domain = get_domain_for_user(domain_id, user_id, db)
    if not domain:
        raise HTTPException(404, "Domain not found")
    return {"domain": serialize_domain(domain)}


@router.delete("/{domain_id}")
def remove_domain(domain_id: str, user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Delete a domain with its API keys and email logs"""
    try:
        delete_domain(domain_id, user_id, db)
    except ValueError as e:
        raise HTTPException(404, str(e))
    return {"message": "Domain deleted successfully"}


@router.post("/{domain_id}/verify", response_model=DomainVerifyResponse)
def verify_domain(
    domain_id: str,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db),
    ses: SESService = Depends(get_ses_service)
):
    """Check the domain's verification status with SES now"""
    if not get_domain_for_user(domain_id, user_id, db):
        raise HTTPException(404, "Domain not found")

    status = check_domain_verification(domain_id, db, ses)
    return {
        "status": status,
        "verified": status == "verified",
        "message": VERIFY_MESSAGES[status]
    }
