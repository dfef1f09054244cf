"""Email service - the send workflow and email log queries"""
import base64
import binascii
import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from mailrelay.core.metrics import emails_sent_counter
from mailrelay.models.api_key import ApiKey
from mailrelay.models.domain import Domain
from mailrelay.models.email_log import EmailLog
from mailrelay.schemas.emails import SendEmailRequest
from mailrelay.services.domain_service import extract_domain_from_email
from mailrelay.services.ses_service import SESService, SESError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class EmailSendError(ValueError):
    """A send that was refused or failed, with the HTTP status it maps to"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def decode_attachments(request: SendEmailRequest) -> Tuple[List[Tuple[str, str, bytes]], List[Dict]]:
    """Decode base64 attachments.

    Returns:
        Tuple of (MIME parts as (filename, content_type, bytes), metadata to persist)

    Raises:
        EmailSendError: If an attachment is not valid base64
    """
    parts = []
    metadata = []
    for attachment in request.attachments or []:
        try:
            content = base64.b64decode(attachment.content, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EmailSendError(f"Invalid attachment content: {attachment.filename}", 400) from e
        content_type = attachment.contentType or "application/octet-stream"
        parts.append((attachment.filename, content_type, content))
        metadata.append({"filename": attachment.filename, "content_type": content_type, "size": len(content)})
    return parts, metadata


def _attachment_metadata(request: SendEmailRequest) -> List[Dict]:
    # Used for failed sends where the content may not decode
    return [
        {"filename": a.filename, "content_type": a.contentType or "application/octet-stream"}
        for a in request.attachments or []
    ]


def _new_log(api_key: ApiKey, request: SendEmailRequest, status: str, attachments: List[Dict],
             ses_message_id: Optional[str] = None, error_message: Optional[str] = None) -> EmailLog:
    return EmailLog(
        api_key_id=api_key.id,
        domain_id=api_key.domain_id,
        from_email=str(request.from_),
        to_emails=[str(a) for a in request.to],
        cc_emails=[str(a) for a in request.cc or []],
        bcc_emails=[str(a) for a in request.bcc or []],
        subject=request.subject,
        html_content=request.html,
        text_content=request.text,
        attachments=attachments,
        status=status,
        ses_message_id=ses_message_id,
        message_id=ses_message_id,
        error_message=error_message
    )


def _authorize(api_key: ApiKey, request: SendEmailRequest, db: Session) -> Domain:
    """Run the send checks in order; the first failing one wins"""
    domain = db.query(Domain).filter(Domain.id == api_key.domain_id).first()
    if not domain:
        raise EmailSendError("Domain not found", 404)

    if domain.status != "verified":
        raise EmailSendError("Domain not verified", 400)

    if extract_domain_from_email(str(request.from_)) != domain.domain:
        raise EmailSendError(f"From email must be from domain: {domain.domain}", 400)

    if "send" not in (api_key.permissions or []):
        raise EmailSendError("API key does not have send permission", 403)

    return domain


def send_email(api_key: ApiKey, request: SendEmailRequest, db: Session, ses: SESService) -> Dict:
    """Send an email on behalf of an API key and record the attempt.

    Raises:
        EmailSendError: If a check fails (404/400/403), an attachment or header is invalid (400)
            or SES rejects the message (502)
    """
    domain = _authorize(api_key, request, db)

    try:
        parts, attachment_metadata = decode_attachments(request)
        message_id = ses.send_email(
            from_email=str(request.from_),
            to=[str(a) for a in request.to],
            subject=request.subject,
            html=request.html,
            text=request.text,
            cc=[str(a) for a in request.cc or []],
            bcc=[str(a) for a in request.bcc or []],
            reply_to=[str(a) for a in request.reply_to or []],
            attachments=parts,
            configuration_set=domain.ses_configuration_set,
            tags=request.tags
        )
    except (SESError, ValueError) as e:
        # ValueError covers EmailSendError and headers the MIME builder refuses (CR/LF)
        emails_sent_counter.labels(status="failed").inc()
        _record_failure(api_key, request, str(e), db)
        if isinstance(e, EmailSendError):
            raise
        if isinstance(e, SESError):
            raise EmailSendError(str(e), 502) from e
        raise EmailSendError(f"Invalid email content: {e}", 400) from e

    emails_sent_counter.labels(status="sent").inc()
    log_id = None
    try:
        email_log = _new_log(api_key, request, "sent", attachment_metadata, ses_message_id=message_id)
        db.add(email_log)
        db.commit()
        log_id = email_log.id
    except Exception as e:
        # The message has already left; a missing log must not turn this into an error
        db.rollback()
        logger.warning(f"Failed to log sent email {message_id}: {e}")

    logger.info(f"Email sent from {request.from_} via key {api_key.key_prefix} (SES id: {message_id})")
    return {
        "id": log_id or message_id,
        "from": str(request.from_),
        "to": [str(a) for a in request.to],
        "created_at": datetime.now(timezone.utc)
    }


def _record_failure(api_key: ApiKey, request: SendEmailRequest, error_message: str, db: Session) -> None:
    try:
        db.add(_new_log(api_key, request, "failed", _attachment_metadata(request), error_message=error_message))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to log failed email: {e}")


def serialize_email_log(email_log: EmailLog, include_events: bool = False) -> Dict:
    data = {
        "id": email_log.id,
        "api_key_id": email_log.api_key_id,
        "domain_id": email_log.domain_id,
        "domain": email_log.domain.domain if email_log.domain else None,
        "key_name": email_log.api_key.key_name if email_log.api_key else None,
        "from_email": email_log.from_email,
        "to_emails": email_log.to_emails or [],
        "cc_emails": email_log.cc_emails or [],
        "bcc_emails": email_log.bcc_emails or [],
        "subject": email_log.subject,
        "html_content": email_log.html_content,
        "text_content": email_log.text_content,
        "attachments": email_log.attachments or [],
        "status": email_log.status,
        "ses_message_id": email_log.ses_message_id,
        "error_message": email_log.error_message,
        "created_at": email_log.created_at,
        "updated_at": email_log.updated_at
    }
    if include_events:
        data["webhook_data"] = email_log.webhook_data
        data["webhook_events"] = [
            {
                "id": event.id,
                "event_type": event.event_type,
                "event_data": event.event_data,
                "processed": event.processed,
                "created_at": event.created_at
            }
            for event in email_log.webhook_events
        ]
    return data


def list_email_logs(db: Session, domain_ids: List[str], page: int = 1, limit: int = 50,
                    domain_id: Optional[str] = None, status: Optional[str] = None) -> Dict:
    """Page through logs of the given domains, newest first"""
    page = max(page, 1)
    limit = max(min(limit, MAX_PAGE_SIZE), 1)

    if domain_id is not None:
        domain_ids = [d for d in domain_ids if d == domain_id]

    query = db.query(EmailLog).filter(EmailLog.domain_id.in_(domain_ids))
    if status:
        query = query.filter(EmailLog.status == status)

    total = query.count()
    email_logs = (
        query.options(joinedload(EmailLog.domain), joinedload(EmailLog.api_key))
        .order_by(EmailLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "emails": [serialize_email_log(e) for e in email_logs],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit)
        }
    }


def get_email_log_for_user(log_id: str, user_id: str, db: Session) -> Optional[EmailLog]:
    """Fetch a log only if its domain belongs to the user"""
    return (
        db.query(EmailLog)
        .join(Domain, EmailLog.domain_id == Domain.id)
        .filter(EmailLog.id == log_id, Domain.user_id == user_id)
        .first()
    )
