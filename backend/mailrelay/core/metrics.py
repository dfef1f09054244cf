"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name: str, documentation: str, labelnames=()):
    """Create a counter, reusing the registered one if the module is re-imported"""
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Send metrics
emails_sent_counter = _counter(
    'mailrelay_emails_total',
    'Total number of send attempts handled by the relay',
    ['status']
)

# Webhook metrics
webhook_events_counter = _counter(
    'mailrelay_webhook_events_total',
    'Total number of delivery-status notifications received',
    ['event_type', 'matched']
)

# Provisioning metrics
domain_provisioning_counter = _counter(
    'mailrelay_domain_provisioning_total',
    'Total number of domain provisioning attempts',
    ['status']
)

dns_records_created_counter = _counter(
    'mailrelay_dns_records_created_total',
    'Total number of DNS records created through the DNS provider'
)

# Verification metrics
domain_verification_checks_counter = _counter(
    'mailrelay_domain_verification_checks_total',
    'Total number of domain verification checks',
    ['result']
)

# Auth metrics
login_attempts_counter = _counter(
    'mailrelay_login_attempts_total',
    'Total number of login attempts',
    ['status']
)
