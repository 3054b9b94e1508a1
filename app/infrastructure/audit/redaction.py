"""Target redaction for logs and audit entries.

Audit entries must be useful for debugging without exposing patient contact
details, so only enough of the target survives to tell deliveries apart.
"""

from urllib.parse import urlparse

REDACTED = "***"


def redact_email(address: str) -> str:
    """``jane.doe@example.com`` -> ``j***@example.com``."""
    local, sep, domain = address.strip().rpartition("@")
    if not sep or not local:
        return REDACTED
    return f"{local[0]}{REDACTED}@{domain}"


def redact_phone(number: str) -> str:
    """``+15855550123`` -> ``***0123``."""
    digits = "".join(ch for ch in number if ch.isdigit())
    if len(digits) <= 4:
        return REDACTED
    return f"{REDACTED}{digits[-4:]}"


def redact_url(url: str) -> str:
    """Keep scheme and host; paths and query strings often carry secrets."""
    parsed = urlparse(url.strip())
    if not parsed.scheme or not parsed.hostname:
        return REDACTED
    return f"{parsed.scheme}://{parsed.hostname}"


def redact_target(channel: str, target: str) -> str:
    """Redact ``target`` according to the delivery channel.

    Args:
        channel: 'webhook', 'email' or 'sms' (enum values are accepted)
        target: Raw destination

    Returns:
        Redacted destination, or ``***`` for unknown channels
    """
    channel_name = getattr(channel, "value", channel)
    if channel_name == "email":
        return redact_email(target)
    if channel_name == "sms":
        return redact_phone(target)
    if channel_name == "webhook":
        return redact_url(target)
    return REDACTED
