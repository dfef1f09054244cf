"""Amazon SES service - domain identities, configuration sets, and raw sends"""
import logging
import re
from email.message import EmailMessage
from typing import Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from mailrelay.core.config import settings

logger = logging.getLogger(__name__)

# Event types published to SNS for every configuration set
SES_EVENT_TYPES = ["send", "reject", "bounce", "complaint", "delivery"]

# SES only accepts these characters in message tag names and values
_TAG_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class SESError(Exception):
    """Raised when an SES API call fails"""


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message") or str(error)
    return str(error)


def _client_kwargs() -> Dict:
    client_kwargs = {"region_name": settings.AWS_REGION}
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        client_kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        client_kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    return client_kwargs


def configuration_set_name(domain: str) -> str:
    return f"{settings.SES_CONFIGURATION_SET_PREFIX}-{domain.replace('.', '-')}"


def sanitize_tag(value: str) -> str:
    return _TAG_INVALID_CHARS.sub("_", str(value))[:256]


class SESService:
    """Service for interacting with Amazon SES (v1 API)"""

    def __init__(self, client=None, sts_client=None):
        if client is None:
            client = boto3.client("ses", **_client_kwargs())
        self.client = client
        self._sts_client = sts_client
        self._account_id = settings.AWS_ACCOUNT_ID or None
        self.region = settings.AWS_REGION
        logger.info(f"SESService initialized for region: {self.region}")

    def verify_domain(self, domain: str) -> str:
        """Register the domain identity and return its TXT verification token"""
        try:
            response = self.client.verify_domain_identity(Domain=domain)
        except (ClientError, BotoCoreError) as e:
            raise SESError(f"Failed to verify domain: {_error_message(e)}") from e
        return response["VerificationToken"]

    def enable_dkim(self, domain: str) -> List[str]:
        """Turn on Easy DKIM and return the CNAME tokens"""
        try:
            response = self.client.verify_domain_dkim(Domain=domain)
        except (ClientError, BotoCoreError) as e:
            raise SESError(f"Failed to enable DKIM: {_error_message(e)}") from e
        return response.get("DkimTokens", [])

    def create_configuration_set(self, domain: str) -> str:
        """Create (or reuse) the domain's configuration set and return its name"""
        name = configuration_set_name(domain)

        try:
            self.client.create_configuration_set(ConfigurationSet={"Name": name})
            logger.info(f"Created SES configuration set: {name}")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConfigurationSetAlreadyExists":
                raise SESError(f"Failed to create configuration set: {_error_message(e)}") from e
            logger.info(f"SES configuration set already exists: {name}")
        except BotoCoreError as e:
            raise SESError(f"Failed to create configuration set: {_error_message(e)}") from e

        if settings.SES_EVENTS_SNS_TOPIC_ARN:
            self._attach_sns_destination(name)

        return name

    def _attach_sns_destination(self, configuration_set: str) -> None:
        try:
            self.client.create_configuration_set_event_destination(
                ConfigurationSetName=configuration_set,
                EventDestination={
                    "Name": f"{configuration_set}-sns",
                    "Enabled": True,
                    "MatchingEventTypes": SES_EVENT_TYPES,
                    "SNSDestination": {"TopicARN": settings.SES_EVENTS_SNS_TOPIC_ARN}
                }
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "EventDestinationAlreadyExists":
                raise SESError(f"Failed to attach SNS event destination: {_error_message(e)}") from e
        except BotoCoreError as e:
            raise SESError(f"Failed to attach SNS event destination: {_error_message(e)}") from e

    def get_verification_status(self, domain: str) -> str:
        """Return SES's verification status (Pending, Success, Failed, TemporaryFailure, NotStarted)"""
        try:
            response = self.client.get_identity_verification_attributes(Identities=[domain])
        except (ClientError, BotoCoreError) as e:
            raise SESError(f"Failed to get verification status: {_error_message(e)}") from e
        attributes = response.get("VerificationAttributes", {}).get(domain, {})
        return attributes.get("VerificationStatus", "NotStarted")

    def identity_arn(self, domain: str) -> str:
        """ARN of the domain identity; the account id comes from STS unless configured"""
        if self._account_id is None:
            if self._sts_client is None:
                self._sts_client = boto3.client("sts", **_client_kwargs())
            try:
                self._account_id = self._sts_client.get_caller_identity()["Account"]
            except (ClientError, BotoCoreError) as e:
                raise SESError(f"Failed to resolve AWS account: {_error_message(e)}") from e
        return f"arn:aws:ses:{self.region}:{self._account_id}:identity/{domain}"

    def send_email(
        self,
        from_email: str,
        to: List[str],
        subject: str,
        html: Optional[str] = None,
        text: Optional[str] = None,
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
        reply_to: Optional[List[str]] = None,
        attachments: Optional[List[Tuple[str, str, bytes]]] = None,
        configuration_set: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None
    ) -> str:
        """Send a MIME message and return the SES message id.

        Args:
            attachments: (filename, content_type, content bytes) tuples
        """
        message = build_mime_message(
            from_email, to, subject, html=html, text=text, cc=cc,
            reply_to=reply_to, attachments=attachments
        )

        kwargs = {
            "Source": from_email,
            "Destinations": list(to) + list(cc or []) + list(bcc or []),
            "RawMessage": {"Data": message.as_bytes()}
        }
        if configuration_set:
            kwargs["ConfigurationSetName"] = configuration_set
        if tags:
            kwargs["Tags"] = [{"Name": sanitize_tag(k), "Value": sanitize_tag(v)} for k, v in tags.items()]

        try:
            response = self.client.send_raw_email(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise SESError(f"Failed to send email: {_error_message(e)}") from e

        return response["MessageId"]


def build_mime_message(
    from_email: str,
    to: List[str],
    subject: str,
    html: Optional[str] = None,
    text: Optional[str] = None,
    cc: Optional[List[str]] = None,
    reply_to: Optional[List[str]] = None,
    attachments: Optional[List[Tuple[str, str, bytes]]] = None
) -> EmailMessage:
    """Build the message SES will relay. Bcc recipients only go in the envelope."""
    message = EmailMessage()
    message["From"] = from_email
    message["To"] = ", ".join(to)
    if cc:
        message["Cc"] = ", ".join(cc)
    if reply_to:
        message["Reply-To"] = ", ".join(reply_to)
    message["Subject"] = subject

    if text:
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")
    else:
        message.set_content(html, subtype="html")

    for filename, content_type, content in attachments or []:
        maintype, _, subtype = (content_type or "application/octet-stream").partition("/")
        message.add_attachment(
            content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=filename
        )

    return message


# Lazily created, shared by all requests
_ses_service = None


def get_ses_service() -> SESService:
    """Get or create SES service instance (lazy initialization)"""
    global _ses_service
    if _ses_service is None:
        _ses_service = SESService()
    return _ses_service
