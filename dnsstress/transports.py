"""
DNS transport implementations.

Provides transport classes for the two supported destinations:
- UDP (standard DNS, one fresh socket per query)
- DoH (DNS over HTTPS, GET with the query in the ``dns`` parameter)

A transport only reports whether a reply arrived. Replies are not
matched against the query or otherwise validated.
"""

import base64
import logging
import socket
import time
from abc import ABC, abstractmethod
from typing import Optional

import dns.asyncbackend
import dns.asyncquery
import dns.exception
import dns.inet
import dns.message
import httpx

from .models import StressConfig, Transport
from .resolvers import split_address

logger = logging.getLogger(__name__)

DNS_MESSAGE_TYPE = "application/dns-message"


class TransportError(Exception):
    """A query did not get a usable reply, whatever the reason."""


class BaseTransport(ABC):
    """Base class for DNS transports."""

    async def exchange(self, message: dns.message.Message) -> None:
        """
        Send a DNS query and wait for one reply.

        Raises:
            TransportError: If packing, sending or receiving fails
        """
        try:
            wire = message.to_wire()
        except dns.exception.DNSException as e:
            raise TransportError(f"failed to pack DNS query: {e}") from e
        await self.send(wire)

    @abstractmethod
    async def send(self, wire: bytes) -> None:
        """Send an already packed query and wait for one reply."""

    async def close(self) -> None:
        """Release any resources held by the transport."""


class UDPTransport(BaseTransport):
    """Standard DNS over UDP."""

    def __init__(self, resolver: str, timeout: Optional[float] = None):
        """
        Initialize UDP transport.

        Args:
            resolver: Resolver address as ``host:port``
            timeout: Per-query timeout in seconds, None to wait forever
        """
        self.resolver = resolver
        self.timeout = timeout
        self.host, self.port = split_address(resolver)
        self.af = dns.inet.af_for_address(self.host)
        self._backend = dns.asyncbackend.get_default_backend()

    async def send(self, wire: bytes) -> None:
        """Send DNS query over a new connected UDP socket."""
        expiration = None
        if self.timeout is not None:
            expiration = time.time() + self.timeout

        try:
            sock = await self._backend.make_socket(
                self.af,
                socket.SOCK_DGRAM,
                0,
                None,
                (self.host, self.port),
            )
            async with sock:
                await dns.asyncquery.send_udp(sock, wire, None, expiration)
                # No query is passed, so the reply id is not checked
                await dns.asyncquery.receive_udp(sock, None, expiration)
        except dns.exception.Timeout as e:
            raise TransportError(f"timed out after {self.timeout}s") from e
        except (OSError, dns.exception.DNSException) as e:
            raise TransportError(str(e) or type(e).__name__) from e


class DoHTransport(BaseTransport):
    """DNS over HTTPS (DoH)."""

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize DoH transport.

        Args:
            url: DoH endpoint URL (e.g., https://dns.google/dns-query)
            timeout: Request timeout in seconds, None to wait forever
            client: Client to use instead of creating one
        """
        self.url = url
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP/2 client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                http2=True,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    @staticmethod
    def encode_query(wire: bytes) -> str:
        """Encode a packed query for the ``dns`` parameter (RFC 8484)."""
        return base64.urlsafe_b64encode(wire).rstrip(b"=").decode("ascii")

    async def send(self, wire: bytes) -> None:
        """Send DNS query as an HTTPS GET."""
        client = self._get_client()

        try:
            response = await client.get(
                self.url,
                params={"dns": self.encode_query(wire)},
                headers={"Accept": DNS_MESSAGE_TYPE},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"DOH request failed: {e}") from e

        if not response.content:
            raise TransportError("empty DOH response")

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def create_transport(config: StressConfig) -> BaseTransport:
    """
    Create the transport a run should use.

    Args:
        config: Run configuration

    Returns:
        DoH transport when an endpoint is configured, UDP otherwise
    """
    if config.transport == Transport.DOH:
        logger.debug("Using DoH endpoint %s", config.doh_endpoint)
        return DoHTransport(config.doh_endpoint, timeout=config.timeout)
    logger.debug("Using UDP resolver %s", config.resolver)
    return UDPTransport(config.resolver, timeout=config.timeout)
