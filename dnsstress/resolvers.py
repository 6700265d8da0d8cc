"""
Resolver addresses and target domains.

Parses the resolver address given on the command line, normalises
target domains, and provides shortcuts for popular public resolvers
so ``-r cloudflare`` or ``--doh google`` can be used instead of
typing addresses and URLs.
"""

import dns.inet

from .models import ConfigError, ResolverProfile


DEFAULT_PORT = 53

# Pre-configured resolver profiles
RESOLVERS: dict[str, ResolverProfile] = {
    "cloudflare": ResolverProfile(
        name="Cloudflare",
        ipv4="1.1.1.1",
        doh_url="https://cloudflare-dns.com/dns-query"
    ),
    "google": ResolverProfile(
        name="Google",
        ipv4="8.8.8.8",
        doh_url="https://dns.google/dns-query"
    ),
    "quad9": ResolverProfile(
        name="Quad9",
        ipv4="9.9.9.9",
        doh_url="https://dns.quad9.net/dns-query"
    ),
    "opendns": ResolverProfile(
        name="OpenDNS",
        ipv4="208.67.222.222",
        doh_url="https://doh.opendns.com/dns-query"
    ),
    "adguard": ResolverProfile(
        name="AdGuard",
        ipv4="94.140.14.14",
        doh_url="https://dns.adguard-dns.com/dns-query"
    ),
}


def _is_ip(text: str) -> bool:
    try:
        dns.inet.af_for_address(text)
    except ValueError:
        return False
    return True


def _join(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def parse_resolver_address(text: str) -> str:
    """
    Parse a resolver address into a ``host:port`` string.

    Accepts ``ip``, ``ip:port``, a bare IPv6 address or ``[ipv6]:port``.
    The port defaults to 53. Hostnames are not accepted.

    Raises:
        ConfigError: If the address cannot be parsed
    """
    text = text.strip()
    if not text:
        raise ConfigError("empty resolver address")

    # A bare address, IPv6 included, takes the default port
    if _is_ip(text):
        return _join(text, DEFAULT_PORT)

    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ConfigError(f"invalid address: {text!r}")
        port_text = rest[1:]
    else:
        host, sep, port_text = text.rpartition(":")
        if not sep:
            raise ConfigError(f"invalid address: {text!r}")

    if not _is_ip(host):
        raise ConfigError(f"invalid IP address: {host!r}")
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ConfigError(f"invalid port: {port_text!r}")

    return _join(host, int(port_text))


def split_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` string produced by parse_resolver_address."""
    host, _, port = address.rpartition(":")
    return host.strip("[]"), int(port)


def normalize_domain(name: str) -> str:
    """Return the domain as a fully qualified name (trailing dot)."""
    name = name.strip()
    if not name or name == ".":
        raise ConfigError("empty target domain")
    if name.endswith("."):
        return name
    return name + "."


def get_resolver(name: str) -> ResolverProfile:
    """Get a resolver profile by name (case-insensitive)."""
    key = name.lower()
    if key in RESOLVERS:
        return RESOLVERS[key]
    raise ConfigError(f"Unknown resolver: {name}. Available: {list(RESOLVERS.keys())}")


def resolve_resolver_option(value: str) -> str:
    """Turn a ``-r`` value (profile name or address) into ``host:port``."""
    if value.lower() in RESOLVERS:
        return _join(RESOLVERS[value.lower()].ipv4, DEFAULT_PORT)
    return parse_resolver_address(value)


def resolve_doh_option(value: str) -> str:
    """Turn a ``--doh`` value (profile name or URL) into an endpoint URL."""
    if "://" in value:
        return value
    profile = get_resolver(value)
    if not profile.doh_url:
        raise ConfigError(f"{profile.name} has no DNS-over-HTTPS endpoint")
    return profile.doh_url


def list_resolvers() -> list[str]:
    """List all available resolver names."""
    return list(RESOLVERS.keys())
