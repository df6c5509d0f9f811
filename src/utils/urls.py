import ipaddress
from urllib.parse import urlsplit

LOOPBACK_HOSTNAMES = {"localhost", "localhost.localdomain"}


def is_loopback_host(host: str | None) -> bool:
    if not host:
        return False
    host = host.strip("[]").lower()
    if host in LOOPBACK_HOSTNAMES or host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def is_allowed_webhook_url(url: str) -> bool:
    """HTTPS everywhere; plain HTTP only towards a loopback address."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.hostname:
        return False
    if parts.scheme == "https":
        return True
    return parts.scheme == "http" and is_loopback_host(parts.hostname)
