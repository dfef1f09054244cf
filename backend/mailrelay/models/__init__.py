"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from mailrelay.models.base import Base
from mailrelay.models.user import User
from mailrelay.models.domain import Domain
from mailrelay.models.api_key import ApiKey
from mailrelay.models.email_log import EmailLog
from mailrelay.models.webhook_event import WebhookEvent

# Export all for convenience
__all__ = ["Base", "User", "Domain", "ApiKey", "EmailLog", "WebhookEvent"]
