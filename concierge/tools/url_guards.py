"""Outbound URL checks for the url and lead-research tools (SSRF protection)."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from collections.abc import Awaitable, Callable, Iterable
from urllib.parse import urlsplit

from ..errors import ToolInputError

ALLOWED_SCHEMES = {"http", "https"}
BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "0.0.0.0"}

Resolver = Callable[[str], Awaitable[list[str]]]


class DomainNotAllowed(ToolInputError):
    status_code = 403
    code = "domain_not_allowed"

    def __init__(self, message: str = "Domain not allowed") -> None:
        super().__init__(message)


async def resolve_host(hostname: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


def _is_public(address: str) -> bool:
    ip = ipaddress.ip_address(address)
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def check_allowed_domain(hostname: str, allowed_domains: Iterable[str]) -> bool:
    """An empty allow-list admits every host; otherwise exact or subdomain match."""
    allowed = [domain.lower().lstrip(".") for domain in allowed_domains if domain]
    if not allowed:
        return True
    host = hostname.lower().rstrip(".")
    return any(host == domain or host.endswith("." + domain) for domain in allowed)


async def validate_outbound_url(
    raw_url: str,
    *,
    allowed_domains: Iterable[str] = (),
    resolver: Resolver = resolve_host,
) -> str:
    """
    Return the normalised URL, or raise ToolInputError / DomainNotAllowed.

    Hostnames are resolved and every address must be public, so a DNS name
    pointing at an internal service is refused as well.
    """
    url = raw_url.strip()
    parts = urlsplit(url)
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ToolInputError(f"Blocked scheme: {parts.scheme or 'none'}")
    hostname = parts.hostname
    if not hostname:
        raise ToolInputError("Invalid URL: no hostname")
    if parts.username or parts.password:
        raise ToolInputError("Credentials in URLs are not allowed")
    if hostname.lower() in BLOCKED_HOSTNAMES:
        raise ToolInputError("Blocked: localhost")
    if not check_allowed_domain(hostname, allowed_domains):
        raise DomainNotAllowed()

    try:
        addresses = [str(ipaddress.ip_address(hostname))]
    except ValueError:
        try:
            addresses = await resolver(hostname)
        except (OSError, UnicodeError) as exc:
            raise ToolInputError(f"Could not resolve host '{hostname}'") from exc
    if not addresses:
        raise ToolInputError(f"Could not resolve host '{hostname}'")
    for address in addresses:
        if not _is_public(address):
            raise ToolInputError("Blocked: private or local address")
    return url


__all__ = [
    "DomainNotAllowed",
    "check_allowed_domain",
    "resolve_host",
    "validate_outbound_url",
]
