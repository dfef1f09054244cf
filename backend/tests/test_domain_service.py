"""Tests for domain provisioning and verification"""
import pytest

from mailrelay.models.domain import Domain
from mailrelay.services.domain_service import (
    ProviderError, add_domain, check_domain_verification, refresh_pending_domains, delete_domain
)

from conftest import FakeDigitalOcean, make_do_service, make_domain


@pytest.mark.critical
class TestAddDomain:
    """Test the provisioning workflow"""

    def test_manual_setup_without_dns_provider(self, db_session, test_user, fake_ses):
        result = add_domain(test_user.id, "example.com", db_session, fake_ses, None)

        assert result["automated"] is False
        assert result["digitalOceanRecords"] == []
        assert len(result["dnsRecords"]) == 7
        assert result["sesConfigurationSet"].endswith("-example-com")
        assert "_amazonses.example.com" in result["setupInstructions"]

        domain = db_session.query(Domain).filter(Domain.domain == "example.com").one()
        assert domain.status == "pending"
        assert domain.verification_token == "verify-example.com"
        assert domain.dns_records == result["dnsRecords"]
        assert domain.do_domain_id is None

    def test_invalid_domain_rejected_before_provider_calls(self, db_session, test_user, fake_ses):
        fake_ses.fail_verify = True  # would raise ProviderError if reached
        with pytest.raises(ValueError, match="Invalid domain format"):
            add_domain(test_user.id, "not_a_domain", db_session, fake_ses, None)

    def test_duplicate_domain_rejected(self, db_session, two_users, fake_ses):
        user1, user2 = two_users
        add_domain(user1.id, "example.com", db_session, fake_ses, None)
        with pytest.raises(ValueError, match="Domain already exists"):
            add_domain(user2.id, "example.com", db_session, fake_ses, None)

    def test_verification_failure_persists_nothing(self, db_session, test_user, fake_ses):
        fake_ses.fail_verify = True
        with pytest.raises(ProviderError, match="Failed to add domain"):
            add_domain(test_user.id, "example.com", db_session, fake_ses, None)
        assert db_session.query(Domain).count() == 0

    def test_dkim_failure_is_not_fatal(self, db_session, test_user, fake_ses):
        fake_ses.fail_dkim = True
        result = add_domain(test_user.id, "example.com", db_session, fake_ses, None)
        assert len(result["dnsRecords"]) == 4
        assert all(r["type"] != "CNAME" for r in result["dnsRecords"])

    def test_identity_arn_is_stored(self, db_session, test_user, fake_ses):
        result = add_domain(test_user.id, "example.com", db_session, fake_ses, None)

        assert result["domain"]["ses_identity_arn"] == "arn:aws:ses:us-east-1:123456789012:identity/example.com"

    def test_identity_arn_failure_is_not_fatal(self, db_session, test_user, fake_ses):
        fake_ses.fail_arn = True
        result = add_domain(test_user.id, "example.com", db_session, fake_ses, None)

        assert result["domain"]["ses_identity_arn"] is None
        assert result["domain"]["status"] == "pending"

    def test_name_taken_during_provisioning(self, db_session, two_users, fake_ses, monkeypatch):
        user1, user2 = two_users
        verify = fake_ses.verify_domain

        def register_first(domain):
            # A concurrent request wins the insert while SES is being called
            make_domain(db_session, user1, name=domain, status="pending")
            return verify(domain)

        monkeypatch.setattr(fake_ses, "verify_domain", register_first)

        with pytest.raises(ValueError, match="Domain already exists"):
            add_domain(user2.id, "race.com", db_session, fake_ses, None)

        owners = [d.user_id for d in db_session.query(Domain).filter(Domain.domain == "race.com")]
        assert owners == [user1.id]

    def test_automated_dns_setup(self, db_session, test_user, fake_ses):
        fake = FakeDigitalOcean(domains=["example.com"])
        result = add_domain(test_user.id, "example.com", db_session, fake_ses, make_do_service(fake))

        assert result["automated"] is True
        assert len(result["digitalOceanRecords"]) == 7
        assert result["dnsConflicts"] == []
        assert "automatically created" in result["setupInstructions"]
        assert result["domain"]["do_domain_id"] == "example.com"

    def test_zone_is_listed_once(self, db_session, test_user, fake_ses):
        fake = FakeDigitalOcean(domains=["example.com"])
        add_domain(test_user.id, "example.com", db_session, fake_ses, make_do_service(fake))

        zone_listings = [r for r in fake.requests if r.method == "GET" and r.url.path == "/v2/domains"]
        assert len(zone_listings) == 1

    def test_zone_missing_from_dns_provider(self, db_session, test_user, fake_ses):
        fake = FakeDigitalOcean(domains=["other.com"])
        result = add_domain(test_user.id, "example.com", db_session, fake_ses, make_do_service(fake))

        assert result["automated"] is False
        assert "Domain not found in DigitalOcean" in result["setupInstructions"]
        assert fake.created == []

    def test_dns_provider_outage_falls_back_to_manual(self, db_session, test_user, fake_ses):
        class BrokenDNS:
            def domain_exists(self, domain):
                raise RuntimeError("connection reset")

        result = add_domain(test_user.id, "example.com", db_session, fake_ses, BrokenDNS())

        assert result["automated"] is False
        assert "need to be created manually" in result["setupInstructions"]
        assert db_session.query(Domain).count() == 1


@pytest.mark.critical
class TestVerification:
    """Test the verification checker and the sweep"""

    @pytest.mark.parametrize("ses_status,expected", [
        ("Success", "verified"),
        ("Failed", "failed"),
        ("Pending", "pending"),
        ("TemporaryFailure", "pending"),
        ("NotStarted", "pending"),
    ])
    def test_status_mapping(self, db_session, test_user, fake_ses, ses_status, expected):
        domain = make_domain(db_session, test_user, status="pending")
        fake_ses.verification_status = ses_status

        assert check_domain_verification(domain.id, db_session, fake_ses) == expected
        db_session.refresh(domain)
        assert domain.status == expected

    def test_provider_error_keeps_status(self, db_session, test_user, fake_ses):
        domain = make_domain(db_session, test_user, status="pending")
        fake_ses.fail_status = True

        assert check_domain_verification(domain.id, db_session, fake_ses) == "pending"

    def test_unknown_domain(self, db_session, fake_ses):
        with pytest.raises(ValueError, match="Domain not found"):
            check_domain_verification("missing", db_session, fake_ses)

    def test_sweep_only_checks_pending(self, db_session, test_user, fake_ses):
        make_domain(db_session, test_user, name="a.example.com", status="pending")
        make_domain(db_session, test_user, name="b.example.com", status="pending")
        make_domain(db_session, test_user, name="c.example.com", status="verified")
        fake_ses.verification_status = "Success"

        summary = refresh_pending_domains(db_session, fake_ses, delay=0)

        assert summary == {"checked": 2, "verified": 2, "failed": 0, "errors": 0}
        assert db_session.query(Domain).filter(Domain.status == "verified").count() == 3


@pytest.mark.high
class TestDeleteDomain:
    """Test ownership-scoped deletion"""

    def test_other_users_domain_is_not_found(self, db_session, two_users):
        user1, user2 = two_users
        domain = make_domain(db_session, user1)

        with pytest.raises(ValueError, match="Domain not found"):
            delete_domain(domain.id, user2.id, db_session)
        assert db_session.query(Domain).count() == 1

    def test_owner_can_delete(self, db_session, test_user):
        domain = make_domain(db_session, test_user)
        delete_domain(domain.id, test_user.id, db_session)
        assert db_session.query(Domain).count() == 0
