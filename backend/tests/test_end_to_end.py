"""End-to-end flow: provision a domain, issue a key, send, and track delivery"""
import base64
import json
import pytest
from fastapi import status

from mailrelay.models.email_log import EmailLog

from conftest import FakeDigitalOcean, make_do_service


@pytest.fixture
def do_fake() -> FakeDigitalOcean:
    return FakeDigitalOcean(domains=("example.com",))


@pytest.fixture
def fake_dns(do_fake):
    """Route tests in this module run with DNS automation configured"""
    service = make_do_service(do_fake)
    yield service
    service.close()


def _notification(event: dict) -> dict:
    return {"Type": "Notification", "MessageId": "sns-e2e", "Message": json.dumps(event)}


@pytest.mark.critical
class TestSendingLifecycle:
    """Test the full relay lifecycle through the HTTP API"""

    def test_full_flow(self, client, auth_headers, fake_ses, do_fake, db_session):
        # 1. Add the domain; records are created in the DNS provider
        response = client.post("/api/domains", json={"domain": "Example.COM"}, headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        setup = response.json()
        domain_id = setup["domain"]["id"]
        assert setup["domain"]["domain"] == "example.com"
        assert setup["automated"] is True
        assert len(setup["digitalOceanRecords"]) == len(setup["dnsRecords"]) == 7
        assert setup["dnsConflicts"] == []
        assert len(do_fake.created) == 7

        # 2. Keys cannot be issued before verification
        response = client.post(
            "/api/api-keys", json={"domainId": domain_id, "keyName": "Production"}, headers=auth_headers
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        # 3. SES reports success
        fake_ses.verification_status = "Success"
        response = client.post(f"/api/domains/{domain_id}/verify", headers=auth_headers)
        assert response.json()["status"] == "verified"

        # 4. Issue a key
        response = client.post(
            "/api/api-keys", json={"domainId": domain_id, "keyName": "Production"}, headers=auth_headers
        )
        assert response.status_code == status.HTTP_200_OK
        key_headers = {"Authorization": f"Bearer {response.json()['apiKey']['key']}"}

        # 5. Send with an attachment
        response = client.post(
            "/api/emails",
            json={
                "from": "hello@example.com",
                "to": ["customer@example.org"],
                "bcc": ["audit@example.org"],
                "subject": "Your receipt",
                "html": "<p>Thanks!</p>",
                "attachments": [{
                    "filename": "receipt.txt",
                    "content": base64.b64encode(b"total: 10").decode(),
                    "contentType": "text/plain"
                }],
                "tags": {"category": "receipt"}
            },
            headers=key_headers
        )
        assert response.status_code == status.HTTP_200_OK
        email_id = response.json()["id"]
        assert len(fake_ses.sent) == 1

        email_log = db_session.get(EmailLog, email_id)
        assert email_log.status == "sent"
        assert email_log.ses_message_id == "ses-message-1"
        assert email_log.attachments[0]["filename"] == "receipt.txt"

        # 6. SNS delivers a Delivery event
        response = client.post(
            "/api/webhooks/ses",
            content=json.dumps(_notification({
                "eventType": "Delivery",
                "mail": {"messageId": "ses-message-1"},
                "delivery": {"recipients": ["customer@example.org"]}
            })),
            headers={"Content-Type": "text/plain; charset=UTF-8"}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Event processed"

        # 7. The log reflects delivery for both kinds of credential
        for headers in (auth_headers, key_headers):
            logs = client.get("/api/emails/logs", headers=headers).json()
            assert logs["pagination"]["total"] == 1
            assert logs["emails"][0]["status"] == "delivered"

        detail = client.get(f"/api/emails/{email_id}", headers=auth_headers).json()["email"]
        assert [e["event_type"] for e in detail["webhook_events"]] == ["delivery"]

    def test_re_adding_domain_is_idempotent_in_dns(self, client, auth_headers, do_fake):
        first = client.post("/api/domains", json={"domain": "example.com"}, headers=auth_headers)
        domain_id = first.json()["domain"]["id"]
        client.delete(f"/api/domains/{domain_id}", headers=auth_headers)

        second = client.post("/api/domains", json={"domain": "example.com"}, headers=auth_headers)

        assert second.status_code == status.HTTP_200_OK
        assert second.json()["digitalOceanRecords"] == []
        assert len(do_fake.created) == 7

    def test_zone_missing_falls_back_to_manual(self, client, auth_headers):
        response = client.post("/api/domains", json={"domain": "elsewhere.com"}, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["automated"] is False
        assert body["setupInstructions"].startswith("Domain not found in DigitalOcean")
