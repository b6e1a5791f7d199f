import ipaddress
import json
import logging
from dataclasses import replace
from functools import partial
from typing import Any, Callable

import httpx

from canid.config import DEFAULT_GEOLOC_URL, DEFAULT_PREFIX_URL, Config
from canid.records import IPAddress, PrefixRecord

logger = logging.getLogger("canid.ripestat")


_client: httpx.Client | None = None


class BackendError(Exception):
    """A backend lookup failed. Nothing is cached for it."""


class NetworkError(BackendError):
    """The backend could not be reached, or answered with an HTTP error."""


class StatusError(BackendError):
    """The backend answered but reported a non-ok status."""


class FormatError(BackendError):
    """The backend response could not be parsed into the expected shape."""


def _get_client(timeout: float = 10.0) -> httpx.Client:
    global _client
    if _client is None:
        _client = httpx.Client(timeout=timeout, follow_redirects=True)
    return _client


def close_client() -> None:
    """Close the persistent backend client."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def call_ripestat(url: str, addr: IPAddress | str, timeout: float = 10.0) -> dict[str, Any]:
    """Fetch one RIPEstat data call for addr and return its "data" object."""
    client = _get_client(timeout)
    logger.debug("Calling RIPEstat %s for %s", url, addr)
    try:
        response = client.get(url, params={"resource": str(addr)})
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise NetworkError(f"RIPEstat returned HTTP {e.response.status_code} for {addr}") from e
    except httpx.HTTPError as e:
        raise NetworkError(f"RIPEstat request for {addr} failed: {e}") from e

    try:
        doc = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FormatError(f"RIPEstat response for {addr} is not JSON: {e}") from e
    if not isinstance(doc, dict):
        raise FormatError(f"RIPEstat response for {addr} is not an object")

    # don't even bother if the server told us to go away
    status = doc.get("status")
    if status != "ok":
        raise StatusError(f"RIPEstat request failed with status {status}")

    data = doc.get("data")
    if not isinstance(data, dict):
        raise FormatError(f"RIPEstat response for {addr} has no data object")
    return data


def _first(items: Any, key: str) -> Any:
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get(key):
            return item[key]
    return None


def merge_response(record: PrefixRecord, data: dict[str, Any]) -> PrefixRecord:
    """Fold one RIPEstat data object into record.

    Fields already populated are never overwritten: the first response that
    supplies a prefix, ASN or country code wins.
    """
    updates: dict[str, Any] = {}

    if not record.prefix:
        if data.get("is_less_specific"):
            raw_prefix = data.get("resource")
        else:
            block = data.get("block")
            raw_prefix = block.get("resource") if isinstance(block, dict) else None
            raw_prefix = raw_prefix or data.get("resource")
        if raw_prefix:
            try:
                updates["prefix"] = str(ipaddress.ip_network(str(raw_prefix), strict=False))
            except ValueError as e:
                raise FormatError(f"RIPEstat reported invalid prefix {raw_prefix!r}") from e

    if not record.asn:
        asn = _first(data.get("asns"), "asn")
        if asn is not None:
            try:
                updates["asn"] = int(asn)
            except (TypeError, ValueError) as e:
                raise FormatError(f"RIPEstat reported invalid ASN {asn!r}") from e

    if not record.country_code:
        country = _first(data.get("locations"), "country")
        if country:
            updates["country_code"] = str(country)

    return replace(record, **updates) if updates else record


def query_ripestat(
    addr: IPAddress | str,
    timeout: float = 10.0,
    prefix_url: str = DEFAULT_PREFIX_URL,
    geoloc_url: str = DEFAULT_GEOLOC_URL,
) -> PrefixRecord:
    """Look up the announced prefix, origin AS and country for addr.

    The prefix overview must succeed; the geolocation call is best effort
    and only contributes a country code.
    """
    record = merge_response(PrefixRecord(), call_ripestat(prefix_url, addr, timeout))
    if not record.prefix:
        raise FormatError(f"RIPEstat returned no prefix for {addr}")

    try:
        record = merge_response(record, call_ripestat(geoloc_url, addr, timeout))
    except BackendError as e:
        logger.warning("Geolocation lookup for %s failed: %s", addr, e)

    return record


def backend_from_config(config: Config) -> Callable[[IPAddress | str], PrefixRecord]:
    """Bind the configured endpoints and timeout into a single-argument backend."""
    return partial(
        query_ripestat,
        timeout=config.backend_timeout,
        prefix_url=config.prefix_url,
        geoloc_url=config.geoloc_url,
    )
