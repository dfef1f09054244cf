"""mailrelay - Resend-compatible transactional email relay on top of Amazon SES"""

__version__ = "1.0.0"
