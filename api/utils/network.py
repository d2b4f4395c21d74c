"""Network helpers for inbound webhook filtering."""
from __future__ import annotations

import ipaddress
from typing import Iterable, Mapping, Optional


def ip_allowed(remote_ip: Optional[str], allowlist: Iterable[str]) -> bool:
    """Return True when remote_ip matches an entry (exact IP or CIDR).

    An empty allowlist permits everything; an unparsable remote address
    never matches. Malformed entries are skipped.
    """
    entries = [e.strip() for e in allowlist if e and e.strip()]
    if not entries:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in entries:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            continue
    return False


def resolve_client_ip(
    headers: Mapping[str, str],
    peer: Optional[str],
    *,
    trust_proxy_headers: bool = False,
) -> Optional[str]:
    """Client address for logging and allowlisting.

    Forwarding headers are only honoured behind a trusted reverse proxy;
    the left-most X-Forwarded-For entry is the original client.
    """
    if trust_proxy_headers:
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return peer
