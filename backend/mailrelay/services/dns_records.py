"""DNS records required for sending through Amazon SES, and helpers to compare them
against what a DNS provider already serves."""
from typing import Dict, Iterable, List, Optional, Tuple

from mailrelay.core.config import settings

SPF_VALUE = "v=spf1 include:amazonses.com ~all"
MX_PRIORITY = 10


def generate_dns_records(
    domain: str,
    verification_token: str,
    dkim_tokens: Iterable[str] = (),
    region: Optional[str] = None
) -> List[Dict]:
    """Build the ordered record list for a sending domain.

    Order is fixed: SES verification TXT, inbound MX, SPF, DMARC, then one
    CNAME per DKIM token.
    """
    region = region or settings.AWS_REGION
    ttl = settings.DNS_RECORD_TTL

    records = [
        {
            "type": "TXT",
            "name": f"_amazonses.{domain}",
            "value": verification_token,
            "ttl": ttl,
            "description": "SES domain verification"
        },
        {
            "type": "MX",
            "name": domain,
            "value": f"{MX_PRIORITY} inbound-smtp.{region}.amazonaws.com",
            "ttl": ttl,
            "description": "Inbound mail routing"
        },
        {
            "type": "TXT",
            "name": domain,
            "value": SPF_VALUE,
            "ttl": ttl,
            "description": "SPF record for email authentication"
        },
        {
            "type": "TXT",
            "name": f"_dmarc.{domain}",
            "value": f"v=DMARC1; p=none; rua=mailto:dmarc@{domain}",
            "ttl": ttl,
            "description": "DMARC policy"
        },
    ]

    for token in dkim_tokens:
        records.append({
            "type": "CNAME",
            "name": f"{token}._domainkey.{domain}",
            "value": f"{token}.dkim.amazonses.com",
            "ttl": ttl,
            "description": "DKIM signing key"
        })

    return records


def format_dns_instructions(records: List[Dict]) -> str:
    """Render records as numbered manual-setup instructions"""
    instructions = "Please create the following DNS records in your domain provider:\n\n"

    for index, record in enumerate(records, start=1):
        instructions += f"{index}. {record['type']} Record:\n"
        instructions += f"   Name: {record['name']}\n"
        instructions += f"   Value: {record['value']}\n"
        instructions += f"   TTL: {record['ttl']}\n"
        if record.get("description"):
            instructions += f"   Purpose: {record['description']}\n"
        instructions += "\n"

    return instructions


def relative_record_name(name: str, domain: str) -> str:
    """Convert a fully-qualified record name to the zone-relative form ("@" for the apex)"""
    name = name.rstrip(".").lower()
    domain = domain.rstrip(".").lower()
    if name == domain:
        return "@"
    suffix = f".{domain}"
    if name.endswith(suffix):
        return name[:-len(suffix)]
    return name


def normalize_value(value: str) -> str:
    return (value or "").strip().rstrip(".").lower()


def split_mx_value(value: str) -> Tuple[Optional[int], str]:
    """Split "10 host.example.com" into (10, "host.example.com")"""
    parts = value.split()
    if len(parts) >= 2 and parts[0].isdigit():
        return int(parts[0]), " ".join(parts[1:])
    return None, value


def to_provider_payload(record: Dict, domain: str) -> Dict:
    """Translate a generated record into a DigitalOcean domain-record payload"""
    payload = {
        "type": record["type"],
        "name": relative_record_name(record["name"], domain),
        "data": record["value"],
        "ttl": record["ttl"],
    }

    if record["type"] == "MX":
        priority, host = split_mx_value(record["value"])
        if priority is not None:
            # DigitalOcean requires a fully-qualified MX host
            payload["data"] = host if host.endswith(".") else f"{host}."
            payload["priority"] = priority
    elif record["type"] == "CNAME" and not record["value"].endswith("."):
        payload["data"] = f"{record['value']}."

    return payload


def record_matches(record: Dict, existing: Dict, domain: str) -> bool:
    """True when an existing provider record already satisfies a generated one"""
    name = relative_record_name(record["name"], domain)
    if (existing.get("name") or "").lower() != name:
        return False
    if (existing.get("type") or "").upper() != record["type"]:
        return False

    if record["type"] == "MX":
        priority, host = split_mx_value(record["value"])
        return (
            normalize_value(existing.get("data")) == normalize_value(host)
            and (priority is None or existing.get("priority") == priority)
        )

    return normalize_value(existing.get("data")) == normalize_value(record["value"])


def plan_dns_changes(records: List[Dict], existing_records: List[Dict], domain: str) -> Tuple[List[Dict], List[Dict]]:
    """Decide which generated records must be created.

    CNAMEs are matched by name only: a name that already points elsewhere is a
    conflict and is left untouched. Other types need an exact
    type + name + value match.

    Returns:
        Tuple of (records_to_create, conflicts)
    """
    to_create = []
    conflicts = []

    for record in records:
        if record["type"] == "CNAME":
            name = relative_record_name(record["name"], domain)
            same_name = [r for r in existing_records if (r.get("name") or "").lower() == name]
            if not same_name:
                to_create.append(record)
            elif not any(record_matches(record, r, domain) for r in same_name):
                conflicts.append(record)
        elif not any(record_matches(record, r, domain) for r in existing_records):
            to_create.append(record)

    return to_create, conflicts
