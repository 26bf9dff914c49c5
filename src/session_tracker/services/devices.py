"""Device metadata helpers for session records."""

import hashlib
from ipaddress import IPv4Address, ip_address

from user_agents import parse  # type: ignore[import-untyped]

from session_tracker.domain.sessions import UNKNOWN, DeviceInfo

_UNPARSED_FAMILY = "Other"

DEFAULT_IP_ADDRESS = "127.0.0.1"


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Parse browser, OS and device type from a user agent string."""
    if not user_agent:
        return DeviceInfo()
    ua = parse(user_agent)
    if ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"
    return DeviceInfo(
        browser=_family(ua.browser.family),
        os=_family(ua.os.family),
        device_type=device_type,
    )


def _family(value: str | None) -> str:
    if not value or value == _UNPARSED_FAMILY:
        return UNKNOWN
    return value


def client_ip(forwarded_for: str | None, real_ip: str | None) -> str:
    """Pick the client address from proxy headers."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return DEFAULT_IP_ADDRESS


def ip_prefix(address: str) -> str:
    """Return the network prefix used to group addresses of one device.

    IPv4 keeps the first three octets and IPv6 the first four hextets, so a
    device hopping between addresses in the same subnet keeps its prefix.
    Unparseable values are returned unchanged.
    """
    candidate = address.split(",")[0].strip()
    try:
        parsed = ip_address(candidate)
    except ValueError:
        return candidate
    if isinstance(parsed, IPv4Address):
        return ".".join(str(parsed).split(".")[:3])
    return ":".join(parsed.exploded.split(":")[:4])


def device_fingerprint(user_agent: str | None, address: str | None) -> str:
    """SHA256 of the user agent and IP prefix."""
    components = [user_agent or UNKNOWN, ip_prefix(address or "")]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


def is_local_address(address: str) -> bool:
    """Return true for loopback, private and unparseable addresses."""
    try:
        parsed = ip_address(address.strip())
    except ValueError:
        return True
    return parsed.is_loopback or parsed.is_private or parsed.is_link_local
