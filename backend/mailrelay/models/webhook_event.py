"""WebhookEvent model"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from mailrelay.models.base import Base, generate_uuid, utcnow


class WebhookEvent(Base):
    """Append-only record of one delivery-provider notification.

    email_log_id is NULL (and processed False) when the notification could not
    be matched to a log; those rows are kept for manual triage.
    """
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email_log_id = Column(String(36), ForeignKey("email_logs.id", ondelete="CASCADE"), nullable=True, index=True)
    event_type = Column(String(50), nullable=False)
    event_data = Column(JSON, nullable=False)
    processed = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationship
    email_log = relationship("EmailLog", back_populates="webhook_events")
