"""EmailLog model"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from mailrelay.models.base import Base, generate_uuid, utcnow

EMAIL_STATUSES = ("pending", "sent", "failed", "delivered", "bounced", "complained")


class EmailLog(Base):
    """One row per send attempt, updated by delivery-status webhooks"""
    __tablename__ = "email_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    api_key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="SET NULL"), nullable=True, index=True)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True)
    message_id = Column(String(255), nullable=True, index=True)
    from_email = Column(String(255), nullable=False)
    to_emails = Column(JSON, nullable=False)
    cc_emails = Column(JSON, default=list, nullable=False)
    bcc_emails = Column(JSON, default=list, nullable=False)
    subject = Column(String(500))
    html_content = Column(Text)
    text_content = Column(Text)
    attachments = Column(JSON, default=list, nullable=False)  # Metadata only: filename, content_type, size
    status = Column(String(50), default="pending", nullable=False)  # pending, sent, failed, delivered, bounced, complained
    ses_message_id = Column(String(255), nullable=True, index=True)
    error_message = Column(Text)
    webhook_data = Column(JSON, nullable=True)  # Raw payload of the last webhook applied
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    api_key = relationship("ApiKey", back_populates="email_logs")
    domain = relationship("Domain", back_populates="email_logs")
    webhook_events = relationship(
        "WebhookEvent",
        back_populates="email_log",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WebhookEvent.created_at"
    )

    __table_args__ = (
        Index('ix_email_logs_domain_status', 'domain_id', 'status'),
    )
