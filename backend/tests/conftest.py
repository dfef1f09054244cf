"""Shared pytest fixtures for test suite"""
import json
import os
import pytest
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import fakeredis
import httpx

# Settings are read at import time, so configure them before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DOMAIN_VERIFICATION_ENABLED"] = "false"
os.environ["DO_API_TOKEN"] = ""
os.environ["ADMIN_EMAIL"] = ""
os.environ["ADMIN_PASSWORD"] = ""
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["API_KEY_HASH_ROUNDS"] = "4"
os.environ["DNS_RECORD_CREATE_DELAY"] = "0"
os.environ["DOMAIN_VERIFICATION_DELAY"] = "0"

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from mailrelay.main import app
from mailrelay.db.session import get_db, enable_sqlite_foreign_keys
from mailrelay.db import redis as redis_module
from mailrelay.models import Base
from mailrelay.models.domain import Domain
from mailrelay.models.user import User
from mailrelay.services.api_key_service import generate_api_key
from mailrelay.services.auth_service import create_user
from mailrelay.services.digitalocean_service import DigitalOceanService, get_dns_service
from mailrelay.services.ses_service import SESError, build_mime_message, configuration_set_name, get_ses_service


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(test_engine)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_PASSWORD = "TestPassword123!"


class FakeSESService:
    """Stand-in for SESService that records calls instead of talking to AWS"""

    def __init__(self):
        self.verification_status = "Pending"
        self.dkim_tokens = ["dkimtoken1", "dkimtoken2", "dkimtoken3"]
        self.fail_verify = False
        self.fail_dkim = False
        self.fail_send = False
        self.fail_status = False
        self.fail_arn = False
        self.sent = []

    def verify_domain(self, domain):
        if self.fail_verify:
            raise SESError("Failed to verify domain: Access denied")
        return f"verify-{domain}"

    def identity_arn(self, domain):
        if self.fail_arn:
            raise SESError("Failed to resolve AWS account: Access denied")
        return f"arn:aws:ses:us-east-1:123456789012:identity/{domain}"

    def enable_dkim(self, domain):
        if self.fail_dkim:
            raise SESError("Failed to enable DKIM: Throttling")
        return list(self.dkim_tokens)

    def create_configuration_set(self, domain):
        return configuration_set_name(domain)

    def get_verification_status(self, domain):
        if self.fail_status:
            raise SESError("Failed to get verification status: Throttling")
        return self.verification_status

    def send_email(self, **kwargs):
        if self.fail_send:
            raise SESError("Failed to send email: Email address is not verified.")
        build_mime_message(
            kwargs["from_email"], kwargs["to"], kwargs["subject"], html=kwargs.get("html"),
            text=kwargs.get("text"), cc=kwargs.get("cc"), reply_to=kwargs.get("reply_to"),
            attachments=kwargs.get("attachments")
        )
        self.sent.append(kwargs)
        return f"ses-message-{len(self.sent)}"


class FakeDigitalOcean:
    """In-memory DigitalOcean domains API served through httpx.MockTransport"""

    def __init__(self, domains=("example.com",), records=None, page_size=200):
        self.domains = list(domains)
        self.records = list(records or [])
        self.page_size = page_size
        self.fail_names = set()
        self.requests = []
        self._next_id = 1000

    def _page(self, request, items, key):
        page = int(request.url.params.get("page", "1"))
        start = (page - 1) * self.page_size
        chunk = items[start:start + self.page_size]
        links = {}
        if start + self.page_size < len(items):
            links = {"pages": {"next": f"https://api.digitalocean.com/v2{request.url.path}?page={page + 1}"}}
        return httpx.Response(200, json={key: chunk, "links": links, "meta": {"total": len(items)}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v2/domains" and request.method == "GET":
            return self._page(request, [{"name": d, "ttl": 1800, "zone_file": ""} for d in self.domains], "domains")

        if path.endswith("/records"):
            zone = path.split("/")[3]
            if zone not in self.domains:
                return httpx.Response(404, json={"id": "not_found", "message": "The resource you were accessing could not be found."})
            if request.method == "GET":
                return self._page(request, self.records, "domain_records")
            if request.method == "POST":
                payload = json.loads(request.content)
                if payload["name"] in self.fail_names:
                    return httpx.Response(422, json={"id": "unprocessable_entity", "message": "Record is invalid"})
                self._next_id += 1
                record = {**payload, "id": self._next_id}
                self.records.append(record)
                return httpx.Response(201, json={"domain_record": record})

        if "/records/" in path:
            record_id = int(path.rsplit("/", 1)[1])
            record = next((r for r in self.records if r.get("id") == record_id), None)
            if record is None:
                return httpx.Response(404, json={"id": "not_found", "message": "The resource you were accessing could not be found."})
            if request.method == "PUT":
                record.update(json.loads(request.content))
                return httpx.Response(200, json={"domain_record": record})
            if request.method == "DELETE":
                self.records.remove(record)
                return httpx.Response(204)

        return httpx.Response(404, json={"id": "not_found", "message": "The resource you were accessing could not be found."})

    @property
    def created(self):
        return [r for r in self.requests if r.method == "POST"]


def make_do_service(fake: FakeDigitalOcean) -> DigitalOceanService:
    return DigitalOceanService(
        api_token="test-token",
        base_url="https://api.digitalocean.com/v2",
        transport=httpx.MockTransport(fake.handler)
    )


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def mock_redis():
    """Mock Redis client using fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, '_client', fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def fake_ses() -> FakeSESService:
    return FakeSESService()


@pytest.fixture(scope="function")
def fake_dns():
    """DNS provider used by route tests (None = DNS automation not configured)"""
    return None


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis, fake_ses, fake_dns) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, mocked Redis and fake providers"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ses_service] = lambda: fake_ses
    app.dependency_overrides[get_dns_service] = lambda: fake_dns

    try:
        # Disable OpenTelemetry in tests
        with patch('mailrelay.main.initialize_otel', return_value=False):
            with patch('mailrelay.main.setup_otel_logging', return_value=False):
                with patch('mailrelay.main.instrument_sqlalchemy'):
                    with TestClient(app) as test_client:
                        yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    return create_user(email="owner@example.com", password=TEST_PASSWORD, name="Owner", db=db_session)


@pytest.fixture(scope="function")
def two_users(db_session: Session) -> tuple[User, User]:
    """Create two users for ownership tests"""
    user1 = create_user(email="user1@example.com", password=TEST_PASSWORD, db=db_session)
    user2 = create_user(email="user2@example.com", password=TEST_PASSWORD, db=db_session)
    return user1, user2


@pytest.fixture(scope="function")
def auth_headers(client: TestClient, test_user: User) -> dict:
    """Bearer headers for test_user obtained through the login endpoint"""
    response = client.post("/api/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def make_domain(db_session: Session, user: User, name: str = "example.com", status: str = "verified") -> Domain:
    domain = Domain(
        user_id=user.id,
        domain=name,
        status=status,
        ses_configuration_set=configuration_set_name(name),
        dns_records=[],
        verification_token=f"verify-{name}"
    )
    db_session.add(domain)
    db_session.commit()
    db_session.refresh(domain)
    return domain


@pytest.fixture(scope="function")
def verified_domain(db_session: Session, test_user: User) -> Domain:
    return make_domain(db_session, test_user)


@pytest.fixture(scope="function")
def api_key(db_session: Session, test_user: User, verified_domain: Domain) -> dict:
    """A send-enabled key for verified_domain; includes the plaintext under "key" """
    return generate_api_key(test_user.id, verified_domain.id, "Production", ["send"], db_session)


@pytest.fixture(scope="function")
def api_key_headers(api_key: dict) -> dict:
    return {"Authorization": f"Bearer {api_key['key']}"}
