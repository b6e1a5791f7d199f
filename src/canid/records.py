import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class PrefixRecord:
    """Routing and location data for one announced prefix."""

    prefix: str = ""
    asn: int = 0
    country_code: str = ""
    cached: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "Prefix": self.prefix,
            "ASN": self.asn,
            "CountryCode": self.country_code,
            "Cached": _format_time(self.cached),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PrefixRecord":
        return cls(
            prefix=str(data.get("Prefix", "")),
            asn=int(data.get("ASN") or 0),
            country_code=str(data.get("CountryCode") or ""),
            cached=_parse_time(data.get("Cached")),
        )


@dataclass(frozen=True, slots=True)
class AddressRecord:
    """Cached resolution of one name. An empty address list is a cached failure."""

    name: str
    addresses: tuple[IPAddress, ...] = field(default_factory=tuple)
    cached: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Addresses": [str(a) for a in self.addresses],
            "Cached": _format_time(self.cached),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AddressRecord":
        return cls(
            name=str(data["Name"]),
            addresses=tuple(ipaddress.ip_address(a) for a in data.get("Addresses") or ()),
            cached=_parse_time(data.get("Cached")),
        )
