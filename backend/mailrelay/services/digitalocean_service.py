"""DigitalOcean DNS service - creates the records a sending domain needs"""
import logging
import time
from typing import Dict, List, Optional, Tuple

import httpx

from mailrelay.core.config import settings
from mailrelay.core.metrics import dns_records_created_counter
from mailrelay.services.dns_records import plan_dns_changes, relative_record_name, to_provider_payload

logger = logging.getLogger(__name__)

# Page size for list endpoints (DigitalOcean maximum is 200)
PER_PAGE = 200


class DigitalOceanError(Exception):
    """Raised when the DigitalOcean API call fails"""


class DigitalOceanService:
    """Thin client over the DigitalOcean domains API"""

    def __init__(self, api_token: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        api_token = api_token or settings.DO_API_TOKEN
        if not api_token:
            raise ValueError("DigitalOcean API token not configured. Set DO_API_TOKEN environment variable.")

        self.client = httpx.Client(
            base_url=base_url or settings.DO_API_BASE,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json"
            },
            timeout=settings.DO_API_TIMEOUT,
            transport=transport
        )
        logger.info("DigitalOceanService initialized")

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, action: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            try:
                message = e.response.json().get("message", e.response.text)
            except ValueError:
                message = e.response.text
            raise DigitalOceanError(f"Failed to {action}: {message}") from e
        except httpx.HTTPError as e:
            raise DigitalOceanError(f"Failed to {action}: {e}") from e

    def _paginate(self, path: str, key: str, action: str) -> List[Dict]:
        items = []
        page = 1
        while True:
            data = self._request("GET", path, action, params={"page": page, "per_page": PER_PAGE}).json()
            items.extend(data.get(key, []))
            if not data.get("links", {}).get("pages", {}).get("next"):
                return items
            page += 1

    def list_domains(self) -> List[Dict]:
        return self._paginate("/domains", "domains", "fetch domains")

    def domain_exists(self, domain: str) -> bool:
        """Check whether the zone is managed in this DigitalOcean account"""
        return any(d.get("name") == domain for d in self.list_domains())

    def get_domain_records(self, domain: str) -> List[Dict]:
        return self._paginate(f"/domains/{domain}/records", "domain_records", "fetch domain records")

    def create_record(self, domain: str, record: Dict) -> Dict:
        """Create one generated record (type/name/value/ttl) in the zone"""
        payload = to_provider_payload(record, domain)
        response = self._request("POST", f"/domains/{domain}/records", "create DNS record", json=payload)
        dns_records_created_counter.inc()
        return response.json().get("domain_record", {})

    def update_record(self, domain: str, record_id: int, record: Dict) -> Dict:
        payload = {}
        if record.get("name"):
            payload["name"] = relative_record_name(record["name"], domain)
        if record.get("value"):
            payload["data"] = record["value"]
        if record.get("ttl"):
            payload["ttl"] = record["ttl"]
        if record.get("type"):
            payload["type"] = record["type"]

        response = self._request("PUT", f"/domains/{domain}/records/{record_id}", "update DNS record", json=payload)
        return response.json().get("domain_record", {})

    def delete_record(self, domain: str, record_id: int) -> None:
        self._request("DELETE", f"/domains/{domain}/records/{record_id}", "delete DNS record")

    def setup_domain_dns(self, domain: str, records: List[Dict], delay: Optional[float] = None,
                         check_zone: bool = True) -> Tuple[List[Dict], List[Dict]]:
        """Create every generated record the zone does not already have.

        Safe to run repeatedly: records that already exist are skipped and a CNAME
        whose name points elsewhere is reported back as a conflict, never
        overwritten. A failure on one record is logged and the rest continue.

        Callers that have just checked the zone themselves pass check_zone=False.

        Returns:
            Tuple of (created_records, conflicts)

        Raises:
            DigitalOceanError: If the zone is missing or the existing records cannot be read
        """
        if delay is None:
            delay = settings.DNS_RECORD_CREATE_DELAY

        if check_zone and not self.domain_exists(domain):
            raise DigitalOceanError(f"Domain {domain} not found in DigitalOcean. Please add it first.")

        existing = self.get_domain_records(domain)
        to_create, conflicts = plan_dns_changes(records, existing, domain)

        for record in conflicts:
            logger.warning(
                f"{record['type']} record for {record['name']} exists but points to a different value. "
                f"Expected: {record['value']}"
            )

        created = []
        for index, record in enumerate(to_create):
            if index and delay:
                time.sleep(delay)
            try:
                created.append(self.create_record(domain, record))
                logger.info(f"Created {record['type']} record for {record['name']}")
            except DigitalOceanError as e:
                logger.error(f"Failed to create DNS record for {record['name']}: {e}")

        skipped = len(records) - len(to_create) - len(conflicts)
        logger.info(
            f"DNS setup for {domain}: {len(created)} created, {skipped} already present, "
            f"{len(conflicts)} conflicts"
        )
        return created, conflicts


# Lazily created, shared by all requests
_dns_service = None


def get_dns_service() -> Optional[DigitalOceanService]:
    """Get or create the DigitalOcean service, or None when DNS automation is not configured"""
    global _dns_service
    if not settings.dns_automation_enabled:
        return None
    if _dns_service is None:
        _dns_service = DigitalOceanService()
    return _dns_service


def close_dns_service() -> None:
    global _dns_service
    if _dns_service is not None:
        _dns_service.close()
        _dns_service = None
