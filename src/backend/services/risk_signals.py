"""
Risk signal collection for anonymous verifiers.

Anonymous verifiers are identified only by two weak, spoofable signals:
a client-generated device fingerprint and the public IP address. This module
isolates how those signals are obtained and normalized:

1. RequestRiskSignalProvider - signals sent by the browser, with the IP
   falling back to proxy headers and the peer address
2. PublicIpResolver - public IP lookup over HTTP (primary service, then one
   fallback, then "unknown")
3. normalize_* helpers - canonical forms so formatting tricks cannot bypass
   the uniqueness constraints
"""

import ipaddress
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
import structlog
from fastapi import Request

from core.config import settings

logger = structlog.get_logger(__name__)

UNKNOWN_IP = "unknown"
MAX_FINGERPRINT_LENGTH = 255


# =============================================================================
# Contract
# =============================================================================


class RiskSignalProvider(Protocol):
    """Source of the fraud signature for the current submitter."""

    async def get_device_fingerprint(self) -> Optional[str]: ...

    async def get_public_ip(self) -> str: ...


@dataclass(frozen=True)
class RiskSignals:
    """Raw signals as received, before normalization."""

    device_fingerprint: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.device_fingerprint) and bool(self.ip_address)


async def collect_signals(provider: RiskSignalProvider, user_agent: Optional[str] = None) -> RiskSignals:
    """Ask a provider for both signals."""
    return RiskSignals(
        device_fingerprint=await provider.get_device_fingerprint(),
        ip_address=await provider.get_public_ip(),
        user_agent=user_agent,
    )


# =============================================================================
# Normalization
# =============================================================================


class InvalidSignal(ValueError):
    """A signal is present but malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


def normalize_fingerprint(fingerprint: Optional[str]) -> Optional[str]:
    """Strip whitespace; empty means missing."""
    if fingerprint is None:
        return None
    value = fingerprint.strip()
    if not value:
        return None
    if len(value) > MAX_FINGERPRINT_LENGTH:
        raise InvalidSignal("device_fingerprint", "Device fingerprint is too long.")
    return value


def normalize_ip(ip: Optional[str]) -> Optional[str]:
    """
    Canonicalize an IP address.

    Returns ``None`` when missing, ``"unknown"`` when the client could not
    resolve it, and otherwise the compressed textual form (IPv4-mapped IPv6
    addresses collapse to plain IPv4).
    """
    if ip is None:
        return None
    value = ip.strip()
    if not value:
        return None
    if value.lower() == UNKNOWN_IP:
        return UNKNOWN_IP
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        raise InvalidSignal("ip_address", "IP address is not valid.") from None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return str(address)


def ip_for_storage(normalized_ip: str) -> Optional[str]:
    """Unresolvable IPs are stored as NULL so they never collide with each other."""
    return None if normalized_ip == UNKNOWN_IP else normalized_ip


# =============================================================================
# Request adapter (server side)
# =============================================================================


def get_client_ip(request: Request) -> str:
    """Extract real client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return UNKNOWN_IP


class RequestRiskSignalProvider:
    """
    Signals for a browser submission.

    The fingerprint must come from the client (body, else ``X-Device-Fingerprint``).
    The IP prefers what the client resolved and otherwise uses the connection.
    """

    def __init__(
        self,
        request: Request,
        device_fingerprint: Optional[str] = None,
        ip_address: Optional[str] = None,
    ):
        self.request = request
        self._device_fingerprint = device_fingerprint
        self._ip_address = ip_address

    async def get_device_fingerprint(self) -> Optional[str]:
        return self._device_fingerprint or self.request.headers.get("X-Device-Fingerprint")

    async def get_public_ip(self) -> str:
        return self._ip_address or get_client_ip(self.request)

    def user_agent(self, supplied: Optional[str] = None) -> Optional[str]:
        return supplied or self.request.headers.get("User-Agent")


# =============================================================================
# Public IP lookup (client side)
# =============================================================================


class PublicIpResolver:
    """
    Resolve the caller's own public IP via an HTTP echo service.

    Tries the primary service, then the fallback; any failure on both yields
    ``"unknown"`` rather than an error, since the IP is best-effort.
    """

    def __init__(
        self,
        primary_url: Optional[str] = None,
        fallback_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.urls = [
            url
            for url in (
                primary_url or settings.PUBLIC_IP_LOOKUP_URL,
                fallback_url or settings.PUBLIC_IP_FALLBACK_URL,
            )
            if url
        ]
        self.timeout = timeout or settings.PUBLIC_IP_TIMEOUT_SECONDS
        self._transport = transport

    async def get_public_ip(self) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for url in self.urls:
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                    ip = response.json().get("ip")
                    if ip:
                        return normalize_ip(str(ip)) or UNKNOWN_IP
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("public_ip_lookup_failed", url=url, error=str(e))
        return UNKNOWN_IP


class StaticFingerprintProvider:
    """Provider for non-browser clients that carry their own fingerprint."""

    def __init__(self, device_fingerprint: Optional[str], ip_resolver: Optional[PublicIpResolver] = None):
        self._device_fingerprint = device_fingerprint
        self._ip_resolver = ip_resolver or PublicIpResolver()

    async def get_device_fingerprint(self) -> Optional[str]:
        return self._device_fingerprint

    async def get_public_ip(self) -> str:
        return await self._ip_resolver.get_public_ip()
