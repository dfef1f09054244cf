"""Webhook service - applies SES delivery notifications (via SNS) to email logs"""
import json
from typing import Dict, Optional

from sqlalchemy.orm import Session

from mailrelay.core.logging import webhook_logger
from mailrelay.core.metrics import webhook_events_counter
from mailrelay.models.email_log import EmailLog
from mailrelay.models.webhook_event import WebhookEvent

# Event type -> resulting email log status
STATUS_BY_EVENT = {
    "delivery": "delivered",
    "bounce": "bounced",
    "complaint": "complained",
    "reject": "failed",
}


def get_event_type(message: Dict) -> str:
    """Event publishing uses eventType, identity notifications use notificationType"""
    return str(message.get("eventType") or message.get("notificationType") or "").lower()


def describe_event(event_type: str, message: Dict) -> Optional[str]:
    """Error text stored on the log for a given event (None for deliveries)"""
    if event_type == "bounce":
        recipients = (message.get("bounce") or {}).get("bouncedRecipients") or []
        return "; ".join(f"{r.get('emailAddress')}: {r.get('diagnosticCode')}" for r in recipients)
    if event_type == "complaint":
        recipients = (message.get("complaint") or {}).get("complainedRecipients") or []
        return f"Complaint from: {', '.join(r.get('emailAddress', '') for r in recipients)}"
    if event_type == "reject":
        return "Email rejected by SES"
    return None


def _record_event(db: Session, event_type: str, message: Dict, email_log_id: Optional[str], processed: bool) -> None:
    db.add(WebhookEvent(
        email_log_id=email_log_id,
        event_type=event_type or "unknown",
        event_data=message,
        processed=processed
    ))
    db.commit()


def process_ses_event(message: Dict, db: Session) -> Dict:
    """Apply one SES event to its email log.

    Replays are applied again (last write wins). Events that match no log are
    kept unprocessed for manual review. Processing failures are logged and
    recorded, never raised.
    """
    event_type = get_event_type(message)
    if event_type not in STATUS_BY_EVENT:
        webhook_logger.info(f"Ignoring SES event type: {event_type or 'unknown'}")
        return {"status": "ignored", "event_type": event_type}

    message_id = (message.get("mail") or {}).get("messageId")

    try:
        email_log = None
        if message_id:
            email_log = db.query(EmailLog).filter(EmailLog.ses_message_id == message_id).first()

        if not email_log:
            webhook_logger.warning(f"Email log not found for message ID: {message_id}")
            webhook_events_counter.labels(event_type=event_type, matched="false").inc()
            _record_event(db, event_type, message, None, False)
            return {"status": "unmatched", "event_type": event_type}

        email_log.status = STATUS_BY_EVENT[event_type]
        email_log.error_message = describe_event(event_type, message)
        email_log.webhook_data = message
        db.add(WebhookEvent(
            email_log_id=email_log.id,
            event_type=event_type,
            event_data=message,
            processed=True
        ))
        db.commit()

        webhook_events_counter.labels(event_type=event_type, matched="true").inc()
        webhook_logger.info(f"Processed {event_type} event for email {email_log.id}")
        return {"status": "processed", "event_type": event_type, "email_log_id": email_log.id}
    except Exception as e:
        db.rollback()
        webhook_logger.error(f"Failed to process SES event: {e}", exc_info=True)
        try:
            _record_event(db, event_type, message, None, False)
        except Exception as insert_error:
            db.rollback()
            webhook_logger.error(f"Failed to create webhook event record: {insert_error}")
        return {"status": "error", "event_type": event_type}


def process_sns_envelope(envelope: Dict, db: Session) -> Dict:
    """Dispatch an SNS envelope and return the response message"""
    message_type = envelope.get("Type")

    if message_type == "SubscriptionConfirmation":
        webhook_logger.info(f"SNS subscription confirmation received for {envelope.get('TopicArn')}")
        return {"message": "Subscription confirmed"}

    if message_type == "Notification":
        raw_message = envelope.get("Message")
        try:
            message = json.loads(raw_message) if isinstance(raw_message, str) else raw_message
        except json.JSONDecodeError:
            message = None
        if not isinstance(message, dict):
            webhook_logger.error(f"SNS notification {envelope.get('MessageId')} has a non-JSON message")
            return {"message": "Invalid notification message"}

        process_ses_event(message, db)
        return {"message": "Event processed"}

    webhook_logger.warning(f"Unknown SNS message type: {message_type}")
    return {"message": "Unknown event type"}
