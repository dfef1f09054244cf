"""Tests for the SES service using botocore's Stubber"""
import base64
import boto3
import pytest
from botocore.stub import Stubber, ANY

from mailrelay.core.config import settings
from mailrelay.services.ses_service import SESService, SESError, build_mime_message, configuration_set_name


@pytest.fixture
def ses_client():
    return boto3.client(
        "ses",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing"
    )


@pytest.fixture
def stubber(ses_client):
    with Stubber(ses_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def service(ses_client):
    return SESService(client=ses_client)


@pytest.mark.critical
class TestDomainIdentity:
    """Test identity, DKIM and verification calls"""

    def test_verify_domain_returns_token(self, service, stubber):
        stubber.add_response("verify_domain_identity", {"VerificationToken": "abc123"}, {"Domain": "example.com"})
        assert service.verify_domain("example.com") == "abc123"

    def test_verify_domain_error(self, service, stubber):
        stubber.add_client_error(
            "verify_domain_identity",
            service_error_code="AccessDenied",
            service_message="User is not authorized",
            http_status_code=403
        )
        with pytest.raises(SESError, match="User is not authorized"):
            service.verify_domain("example.com")

    def test_enable_dkim(self, service, stubber):
        stubber.add_response("verify_domain_dkim", {"DkimTokens": ["t1", "t2", "t3"]}, {"Domain": "example.com"})
        assert service.enable_dkim("example.com") == ["t1", "t2", "t3"]

    @pytest.mark.parametrize("attributes,expected", [
        ({"example.com": {"VerificationStatus": "Success"}}, "Success"),
        ({"example.com": {"VerificationStatus": "Pending"}}, "Pending"),
        ({}, "NotStarted"),
    ])
    def test_verification_status(self, service, stubber, attributes, expected):
        stubber.add_response(
            "get_identity_verification_attributes",
            {"VerificationAttributes": attributes},
            {"Identities": ["example.com"]}
        )
        assert service.get_verification_status("example.com") == expected

    def test_identity_arn_looks_up_account_once(self, ses_client, monkeypatch):
        monkeypatch.setattr(settings, "AWS_ACCOUNT_ID", "")
        sts_client = boto3.client(
            "sts", region_name="us-east-1", aws_access_key_id="testing", aws_secret_access_key="testing"
        )
        service = SESService(client=ses_client, sts_client=sts_client)

        with Stubber(sts_client) as sts_stub:
            sts_stub.add_response(
                "get_caller_identity",
                {"UserId": "AIDEXAMPLE", "Account": "123456789012", "Arn": "arn:aws:iam::123456789012:user/relay"},
                {}
            )
            first = service.identity_arn("example.com")
            second = service.identity_arn("example.org")
            sts_stub.assert_no_pending_responses()

        assert first == f"arn:aws:ses:{service.region}:123456789012:identity/example.com"
        assert second.endswith(":123456789012:identity/example.org")

    def test_identity_arn_uses_configured_account(self, ses_client, monkeypatch):
        monkeypatch.setattr(settings, "AWS_ACCOUNT_ID", "999999999999")
        service = SESService(client=ses_client)

        assert service.identity_arn("example.com") == f"arn:aws:ses:{service.region}:999999999999:identity/example.com"


@pytest.mark.high
class TestConfigurationSets:
    """Test configuration set creation and reuse"""

    def test_name_from_domain(self):
        assert configuration_set_name("mail.example.com") == f"{settings.SES_CONFIGURATION_SET_PREFIX}-mail-example-com"

    def test_creates_set(self, service, stubber, monkeypatch):
        monkeypatch.setattr(settings, "SES_EVENTS_SNS_TOPIC_ARN", "")
        name = configuration_set_name("example.com")
        stubber.add_response("create_configuration_set", {}, {"ConfigurationSet": {"Name": name}})
        assert service.create_configuration_set("example.com") == name

    def test_existing_set_is_reused(self, service, stubber, monkeypatch):
        monkeypatch.setattr(settings, "SES_EVENTS_SNS_TOPIC_ARN", "")
        stubber.add_client_error(
            "create_configuration_set",
            service_error_code="ConfigurationSetAlreadyExists",
            http_status_code=400
        )
        assert service.create_configuration_set("example.com") == configuration_set_name("example.com")

    def test_attaches_sns_destination(self, service, stubber, monkeypatch):
        topic = "arn:aws:sns:us-east-1:123456789012:ses-events"
        monkeypatch.setattr(settings, "SES_EVENTS_SNS_TOPIC_ARN", topic)
        name = configuration_set_name("example.com")
        stubber.add_response("create_configuration_set", {}, {"ConfigurationSet": {"Name": name}})
        stubber.add_response(
            "create_configuration_set_event_destination",
            {},
            {
                "ConfigurationSetName": name,
                "EventDestination": {
                    "Name": f"{name}-sns",
                    "Enabled": True,
                    "MatchingEventTypes": ["send", "reject", "bounce", "complaint", "delivery"],
                    "SNSDestination": {"TopicARN": topic}
                }
            }
        )
        assert service.create_configuration_set("example.com") == name


@pytest.mark.critical
class TestSendEmail:
    """Test raw sends"""

    def test_send_raw_email(self, service, stubber):
        stubber.add_response(
            "send_raw_email",
            {"MessageId": "0100018c-abc"},
            {
                "Source": "hello@example.com",
                "Destinations": ["to@example.org", "cc@example.org", "bcc@example.org"],
                "RawMessage": {"Data": ANY},
                "ConfigurationSetName": "mailrelay-example-com",
                "Tags": [{"Name": "campaign", "Value": "spring_sale"}]
            }
        )

        message_id = service.send_email(
            from_email="hello@example.com",
            to=["to@example.org"],
            cc=["cc@example.org"],
            bcc=["bcc@example.org"],
            subject="Hi",
            text="Hello",
            configuration_set="mailrelay-example-com",
            tags={"campaign": "spring sale"}
        )

        assert message_id == "0100018c-abc"

    def test_send_error(self, service, stubber):
        stubber.add_client_error(
            "send_raw_email",
            service_error_code="MessageRejected",
            service_message="Email address is not verified.",
            http_status_code=400
        )
        with pytest.raises(SESError, match="Email address is not verified"):
            service.send_email(from_email="hello@example.com", to=["to@example.org"], subject="Hi", text="x")


@pytest.mark.medium
class TestMimeMessage:
    """Test the MIME message handed to SES"""

    def test_bcc_is_not_a_header(self):
        message = build_mime_message("a@example.com", ["b@example.org"], "Subject", text="t", cc=["c@example.org"])
        assert message["To"] == "b@example.org"
        assert message["Cc"] == "c@example.org"
        assert message["Bcc"] is None

    def test_html_and_text_alternatives(self):
        message = build_mime_message("a@example.com", ["b@example.org"], "S", html="<p>hi</p>", text="hi")
        content_types = [part.get_content_type() for part in message.walk()]
        assert "text/plain" in content_types
        assert "text/html" in content_types

    def test_attachment_and_reply_to(self):
        content = b"%PDF-1.4 test"
        message = build_mime_message(
            "a@example.com", ["b@example.org"], "S", html="<p>hi</p>",
            reply_to=["support@example.com"],
            attachments=[("invoice.pdf", "application/pdf", content)]
        )
        attachments = list(message.iter_attachments())

        assert message["Reply-To"] == "support@example.com"
        assert len(attachments) == 1
        assert attachments[0].get_filename() == "invoice.pdf"
        assert attachments[0].get_content_type() == "application/pdf"
        assert attachments[0].get_content() == content
        assert base64.b64encode(content).decode() in message.as_string()
