import ipaddress
import logging
import socket

from canid.records import IPAddress

logger = logging.getLogger("canid.resolver")


class ResolutionError(Exception):
    """A name could not be resolved to any address."""


def resolve_name(name: str) -> list[IPAddress]:
    """Resolve name with the system resolver, keeping the resolver's order."""
    try:
        infos = socket.getaddrinfo(name, None, proto=socket.IPPROTO_TCP)
    except (OSError, UnicodeError) as e:
        raise ResolutionError(f"cannot resolve {name}: {e}") from e

    addresses: list[IPAddress] = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        # IPv6 sockaddrs may carry a zone suffix ("fe80::1%en0")
        addr = ipaddress.ip_address(sockaddr[0].split("%", 1)[0])
        if addr not in addresses:
            addresses.append(addr)

    if not addresses:
        raise ResolutionError(f"no addresses for {name}")
    logger.debug("Resolved %s -> %s", name, addresses)
    return addresses
