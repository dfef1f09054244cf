"""Domain service - validation, provisioning, and verification of sending domains"""
import logging
import re
import time
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mailrelay.core.config import settings
from mailrelay.core.logging import provisioning_logger, verifier_logger
from mailrelay.core.metrics import domain_provisioning_counter, domain_verification_checks_counter
from mailrelay.models.domain import Domain
from mailrelay.services.digitalocean_service import DigitalOceanService
from mailrelay.services.dns_records import generate_dns_records, format_dns_instructions
from mailrelay.services.ses_service import SESService, SESError

logger = logging.getLogger(__name__)

_LABEL = r"[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
_DOMAIN_RE = re.compile(rf"^{_LABEL}(\.{_LABEL})*$")

MAX_DOMAIN_LENGTH = 253


class ProviderError(Exception):
    """Raised when the delivery provider refuses a provisioning step"""


def is_valid_domain(domain: str) -> bool:
    """Check a domain name: dot-separated labels of 1-63 letters, digits or
    hyphens (no leading or trailing hyphen), 253 characters at most."""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    return _DOMAIN_RE.fullmatch(domain) is not None


def extract_domain_from_email(email: str) -> str:
    parts = email.split("@")
    return parts[1].lower() if len(parts) == 2 else ""


def serialize_domain(domain: Domain) -> Dict:
    return {
        "id": domain.id,
        "domain": domain.domain,
        "status": domain.status,
        "ses_identity_arn": domain.ses_identity_arn,
        "ses_configuration_set": domain.ses_configuration_set,
        "do_domain_id": domain.do_domain_id,
        "dns_records": domain.dns_records or [],
        "verification_token": domain.verification_token,
        "created_at": domain.created_at,
        "updated_at": domain.updated_at
    }


def get_domain_by_name(domain_name: str, db: Session) -> Optional[Domain]:
    return db.query(Domain).filter(Domain.domain == domain_name).first()


def get_domain_for_user(domain_id: str, user_id: str, db: Session) -> Optional[Domain]:
    """Fetch a domain only if it belongs to the user"""
    return db.query(Domain).filter(Domain.id == domain_id, Domain.user_id == user_id).first()


def get_user_domains(user_id: str, db: Session) -> List[Domain]:
    return db.query(Domain).filter(Domain.user_id == user_id).order_by(Domain.created_at.desc()).all()


def _setup_dns(domain_name: str, records: List[Dict], dns: Optional[DigitalOceanService]) -> Dict:
    """Run DNS automation when possible, otherwise fall back to manual instructions"""
    result = {
        "automated": False,
        "digitalOceanRecords": [],
        "dnsConflicts": [],
        "setupInstructions": format_dns_instructions(records)
    }

    if dns is None:
        return result

    try:
        if not dns.domain_exists(domain_name):
            result["setupInstructions"] = (
                "Domain not found in DigitalOcean. Please create the DNS records manually or add the "
                "domain to your DigitalOcean account first.\n\n" + format_dns_instructions(records)
            )
            return result

        created, conflicts = dns.setup_domain_dns(domain_name, records, check_zone=False)
    except Exception as e:
        provisioning_logger.warning(f"DigitalOcean setup failed for {domain_name}: {e}")
        result["setupInstructions"] = (
            "DNS records need to be created manually. Please add the following records to your DNS "
            "provider:\n\n" + format_dns_instructions(records)
        )
        return result

    result["automated"] = True
    result["digitalOceanRecords"] = created
    result["dnsConflicts"] = conflicts
    if conflicts:
        result["setupInstructions"] = (
            "DNS records have been automatically created in DigitalOcean, but some existing records "
            "conflict and must be fixed manually:\n\n" + format_dns_instructions(conflicts)
        )
    else:
        result["setupInstructions"] = "DNS records have been automatically created in DigitalOcean."
    return result


def add_domain(user_id: str, domain_name: str, db: Session, ses: SESService,
               dns: Optional[DigitalOceanService] = None) -> Dict:
    """Register a sending domain with SES and (optionally) create its DNS records.

    Raises:
        ValueError: If the name is invalid or already registered
        ProviderError: If SES refuses the domain identity or configuration set
    """
    domain_name = (domain_name or "").strip().lower()
    if not is_valid_domain(domain_name):
        raise ValueError("Invalid domain format")

    if get_domain_by_name(domain_name, db):
        raise ValueError("Domain already exists")

    try:
        verification_token = ses.verify_domain(domain_name)
    except SESError as e:
        domain_provisioning_counter.labels(status="failed").inc()
        raise ProviderError(f"Failed to add domain: {e}") from e

    identity_arn = None
    try:
        identity_arn = ses.identity_arn(domain_name)
    except SESError as e:
        provisioning_logger.warning(f"Could not build SES identity ARN for {domain_name}: {e}")

    dkim_tokens = []
    try:
        dkim_tokens = ses.enable_dkim(domain_name)
        provisioning_logger.info(f"DKIM enabled for {domain_name} with {len(dkim_tokens)} tokens")
    except SESError as e:
        provisioning_logger.warning(f"DKIM setup failed for {domain_name}, continuing without DKIM: {e}")

    try:
        configuration_set = ses.create_configuration_set(domain_name)
    except SESError as e:
        domain_provisioning_counter.labels(status="failed").inc()
        raise ProviderError(f"Failed to add domain: {e}") from e

    records = generate_dns_records(domain_name, verification_token, dkim_tokens)
    dns_result = _setup_dns(domain_name, records, dns)

    domain = Domain(
        user_id=user_id,
        domain=domain_name,
        status="pending",
        ses_identity_arn=identity_arn,
        ses_configuration_set=configuration_set,
        do_domain_id=domain_name if dns_result["automated"] else None,
        dns_records=records,
        verification_token=verification_token
    )
    db.add(domain)
    try:
        db.commit()
    except IntegrityError as e:
        # Another request registered the same name while the providers were being set up
        db.rollback()
        domain_provisioning_counter.labels(status="failed").inc()
        raise ValueError("Domain already exists") from e
    db.refresh(domain)

    domain_provisioning_counter.labels(status="automated" if dns_result["automated"] else "manual").inc()
    provisioning_logger.info(
        f"Domain {domain_name} added for user {user_id} "
        f"({len(records)} records, automated={dns_result['automated']})"
    )

    return {
        "domain": serialize_domain(domain),
        "dnsRecords": records,
        "sesConfigurationSet": configuration_set,
        **dns_result
    }


def check_domain_verification(domain_id: str, db: Session, ses: SESService) -> str:
    """Pull the verification status from SES and persist it if it changed.

    Raises:
        ValueError: If the domain does not exist
    """
    domain = db.query(Domain).filter(Domain.id == domain_id).first()
    if not domain:
        raise ValueError("Domain not found")

    try:
        ses_status = ses.get_verification_status(domain.domain)
    except SESError as e:
        verifier_logger.error(f"Failed to check domain verification for {domain.domain}: {e}")
        domain_verification_checks_counter.labels(result="error").inc()
        return domain.status

    if ses_status == "Success":
        new_status = "verified"
    elif ses_status == "Failed":
        new_status = "failed"
    else:
        new_status = "pending"

    domain_verification_checks_counter.labels(result=new_status).inc()

    if new_status != domain.status:
        verifier_logger.info(f"Domain {domain.domain} status changed: {domain.status} -> {new_status}")
        domain.status = new_status
        db.commit()

    return new_status


def refresh_pending_domains(db: Session, ses: SESService, delay: Optional[float] = None) -> Dict[str, int]:
    """Check every pending domain once, isolating failures per domain"""
    if delay is None:
        delay = settings.DOMAIN_VERIFICATION_DELAY

    summary = {"checked": 0, "verified": 0, "failed": 0, "errors": 0}
    pending = db.query(Domain.id, Domain.domain).filter(Domain.status == "pending").all()

    for index, (domain_id, domain_name) in enumerate(pending):
        if index and delay:
            time.sleep(delay)
        try:
            status = check_domain_verification(domain_id, db, ses)
            summary["checked"] += 1
            if status in ("verified", "failed"):
                summary[status] += 1
        except Exception as e:
            db.rollback()
            summary["errors"] += 1
            verifier_logger.error(f"Failed to check verification for domain {domain_name}: {e}", exc_info=True)

    return summary


def delete_domain(domain_id: str, user_id: str, db: Session) -> None:
    """Delete a domain together with its API keys and email logs.

    Raises:
        ValueError: If the domain does not exist or belongs to someone else
    """
    domain = get_domain_for_user(domain_id, user_id, db)
    if not domain:
        raise ValueError("Domain not found")

    db.delete(domain)
    db.commit()
    logger.info(f"Domain {domain.domain} deleted by user {user_id}")
