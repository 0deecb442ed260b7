"""Build RequestRecord values from transport data."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union
from urllib.parse import urlsplit

from .models import MAX_URL_LENGTH, VISITOR_ROLE, OriginKind, RequestRecord
from .user_agent import parse_user_agent


# Ranges rejected as "private" or "reserved" when choosing a forwarded hop.
# Documentation ranges such as 203.0.113.0/24 are deliberately not listed.
_NON_PUBLIC_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "0.0.0.0/8",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "240.0.0.0/4",
        "fc00::/7",
        "::1/128",
        "::/128",
        "::ffff:0:0/96",
        "fe80::/10",
    )
)

_HOST_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]+")


@dataclass(frozen=True)
class Transport:
    """Read-only snapshot of what the transport layer saw.

    Header names are lower-case.
    """
    method: str = ""
    path: str = ""
    remote_addr: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    form: Mapping[str, str] = field(default_factory=dict)
    status_code: Optional[int] = None

    def header(self, name: str) -> str:
        return clean_text(self.headers.get(name.lower(), ""))

    def form_value(self, name: str) -> str:
        return clean_text(self.form.get(name, ""))


def clean_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return _CONTROL_CHARS.sub(" ", str(value)).strip()


def truncate(value: str, limit: int = MAX_URL_LENGTH) -> str:
    return value[:limit]


def _parse_ip(value: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def is_public_ip(value: str) -> bool:
    address = _parse_ip(value)
    if address is None:
        return False
    return not any(address in network for network in _NON_PUBLIC_NETWORKS if network.version == address.version)


def select_client_ip(remote_addr: str, forwarded_for: str = "") -> str:
    """Pick the best client IP for a direct request.

    Defaults to REMOTE_ADDR (when it is a valid address), then walks the
    X-Forwarded-For chain from the right and takes the first public entry,
    skipping private relay hops appended by our own proxies.
    """
    remote_addr = remote_addr.strip()
    best_ip = remote_addr if _parse_ip(remote_addr) else ""
    hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
    for hop in reversed(hops):
        if is_public_ip(hop):
            return hop
    return best_ip


def validate_host(host: str) -> str:
    """Return the host if it is a syntactically valid hostname, else ''.

    Hostname syntax only: a value carrying a port is rejected.
    """
    host = clean_text(host)
    if not host or len(host) > 253:
        return ""
    labels = host.rstrip(".").split(".")
    if not all(_HOST_LABEL.match(label) for label in labels):
        return ""
    return host


def url_path(url: str) -> str:
    """Reduce a full URL to its path; other values pass through."""
    parts = urlsplit(url)
    if parts.scheme and parts.netloc:
        return parts.path or url
    return url


def extract_record(
    kind: OriginKind,
    transport: Transport,
    actor_role: str = VISITOR_ROLE,
) -> RequestRecord:
    """Build a RequestRecord for either origin."""
    raw_user_agent = transport.header("user-agent")
    ua = parse_user_agent(raw_user_agent)

    common = dict(
        origin_kind=kind,
        referrer=truncate(transport.header("referer")),
        actor_role=actor_role or VISITOR_ROLE,
        host=validate_host(transport.header("host")),
        device_class=ua.device_class,
        platform=ua.platform,
        browser=ua.browser,
        browser_version=ua.browser_version,
        raw_user_agent=raw_user_agent,
        origin_header=transport.header("origin"),
        accept_encoding=transport.header("accept-encoding"),
        accept_language=transport.header("accept-language"),
    )

    if kind is OriginKind.BEACON:
        # The page reporting itself may have come from a cache; the original
        # request's method, headers and status never reached us.
        reported_ip = transport.form_value("ip_address")
        return RequestRecord(
            target_path=truncate(url_path(truncate(transport.form_value("request_url")))),
            http_method="",
            client_ip=reported_ip if _parse_ip(reported_ip) else "",
            **common,
        )

    return RequestRecord(
        target_path=truncate(clean_text(transport.path)),
        http_method=clean_text(transport.method).upper(),
        client_ip=select_client_ip(transport.remote_addr, transport.header("x-forwarded-for")),
        accept=transport.header("accept"),
        content_type=transport.header("content-type"),
        connection=transport.header("connection"),
        cache_control=transport.header("cache-control"),
        status_code=transport.status_code,
        **common,
    )
