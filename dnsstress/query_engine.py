"""
Query templates and the pre-flight check.

Builds the DNS question each worker repeats and checks once, before
any worker starts, that the target domains resolve at all.
"""

import logging
import secrets

import dns.flags
import dns.message
import dns.rdatatype

from .models import RecordType, StressConfig
from .transports import BaseTransport, TransportError

logger = logging.getLogger(__name__)

# Query ids are 16 bit
MAX_QUERY_ID = 65536


def build_query(
    domain: str,
    record_type: RecordType = RecordType.A,
    recursive: bool = True,
) -> dns.message.Message:
    """
    Create a DNS query message.

    Args:
        domain: Fully qualified domain name to query
        record_type: Type of DNS record to request
        recursive: Set the recursion-desired flag; clear it for
            iterative queries aimed at authoritative servers

    Returns:
        Query message with a random id
    """
    rdtype = dns.rdatatype.from_text(record_type.value)
    message = dns.message.make_query(domain, rdtype)
    if not recursive:
        message.flags &= ~dns.flags.RD
    return message


def build_query_for(domain: str, config: StressConfig) -> dns.message.Message:
    """Create the query a run sends for ``domain``."""
    return build_query(domain, config.record_type, recursive=not config.iterative)


def random_query_id() -> int:
    """Draw a query id uniformly from [0, 65536)."""
    return secrets.randbelow(MAX_QUERY_ID)


async def check_domains(
    transport: BaseTransport,
    domains: list[str],
    config: StressConfig,
) -> list[str]:
    """
    Send one query per domain and report which ones failed.

    A failure only produces a warning; the run goes ahead regardless.

    Returns:
        The domains whose check failed
    """
    failed = []
    for domain in domains:
        message = build_query_for(domain, config)
        try:
            await transport.exchange(message)
        except TransportError as e:
            logger.warning(
                'Checking "%s" failed: %s (using %s)', domain, e, config.destination
            )
            failed.append(domain)
    return failed
