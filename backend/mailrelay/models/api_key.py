"""ApiKey model"""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from mailrelay.models.base import Base, generate_uuid, utcnow


class ApiKey(Base):
    """Domain-scoped API key. Only the hash and the lookup prefix are stored."""
    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True)
    key_name = Column(String(255), nullable=False)
    key_hash = Column(String(255), nullable=False)
    key_prefix = Column(String(20), nullable=False, index=True)  # e.g. "frs_AbC123xY"
    permissions = Column(JSON, default=lambda: ["send"], nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="api_keys")
    domain = relationship("Domain", back_populates="api_keys")
    # No delete cascade: logs outlive their key with api_key_id set to NULL
    email_logs = relationship("EmailLog", back_populates="api_key")

    __table_args__ = (
        UniqueConstraint('user_id', 'key_name', name='uq_api_keys_user_key_name'),
    )
