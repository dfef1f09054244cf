"""Domain model"""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from mailrelay.models.base import Base, generate_uuid, utcnow

DOMAIN_STATUSES = ("pending", "verified", "failed")


class Domain(Base):
    """Sending domain registered with the delivery provider"""
    __tablename__ = "domains"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    domain = Column(String(255), unique=True, nullable=False, index=True)  # Unique across all users
    status = Column(String(50), default="pending", nullable=False)  # pending, verified, failed
    ses_identity_arn = Column(String(255), nullable=True)
    ses_configuration_set = Column(String(255), nullable=True)
    do_domain_id = Column(String(255), nullable=True)  # DigitalOcean zone name when records were automated
    dns_records = Column(JSON, default=list, nullable=False)  # Ordered list of records to create
    verification_token = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="domains")
    api_keys = relationship("ApiKey", back_populates="domain", cascade="all, delete-orphan", passive_deletes=True)
    email_logs = relationship("EmailLog", back_populates="domain", cascade="all, delete-orphan", passive_deletes=True)
