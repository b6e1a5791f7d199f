import ipaddress
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterator

from canid.limiter import BackendLimiter
from canid.records import AddressRecord, IPAddress, PrefixRecord
from canid.resolver import ResolutionError, resolve_name
from canid.ripestat import BackendError, FormatError, query_ripestat
from canid.rwlock import RWLock
from canid.stats import Stats

logger = logging.getLogger("canid.cache")

# Most specific prefix lengths worth probing; announcements longer than
# these are filtered on the public internet.
IPV4_START_PREFIX = 24
IPV6_START_PREFIX = 48


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_expired(cached: datetime | None, now: datetime, expiry: int) -> bool:
    if cached is None:
        return True
    return int((now - cached).total_seconds()) > expiry


def parse_address(addr: IPAddress | str) -> IPAddress:
    """Parse addr, unwrapping IPv4-mapped IPv6 addresses. Raises ValueError."""
    if isinstance(addr, str):
        addr = ipaddress.ip_address(addr.strip())
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def candidate_prefixes(addr: IPAddress) -> Iterator[str]:
    """Yield the canonical CIDR strings covering addr, most specific first."""
    start = IPV4_START_PREFIX if addr.version == 4 else IPV6_START_PREFIX
    for length in range(start, 0, -1):
        yield str(ipaddress.ip_network((addr, length), strict=False))


def best_effort(fn: Callable, *args, ignore: tuple[type[Exception], ...] = (BackendError, ValueError)) -> None:
    """Call fn purely for its side effects.

    The return value is discarded, and so is any exception listed in
    ignore. Anything else still propagates.
    """
    try:
        fn(*args)
    except ignore as e:
        logger.debug("Ignoring failed %s%r: %s", getattr(fn, "__name__", "call"), args, e)


class PrefixCache:
    """Thread-safe longest-match cache of prefix records with lazy expiry.

    Records are keyed by the prefix the backend reports. A lookup probes
    every candidate prefix length for the address, most specific first, and
    only calls the backend when none of them holds a fresh record.
    """

    def __init__(
        self,
        expiry: int = 86400,
        concurrency: int = 16,
        backend: Callable[[IPAddress], PrefixRecord] | None = None,
        stats: Stats | None = None,
    ) -> None:
        self.expiry = expiry
        self.limiter = BackendLimiter(concurrency)
        self.backend = backend or query_ripestat
        self.stats = stats
        self._lock = RWLock()
        self._data: dict[str, PrefixRecord] = {}

    def lookup(self, addr: IPAddress | str) -> PrefixRecord:
        """Return the prefix record covering addr, asking the backend on a miss.

        Raises ValueError for an unparseable address and BackendError when
        the backend fails; failures are never cached.
        """
        addr = parse_address(addr)

        for prefix in candidate_prefixes(addr):
            with self._lock.read():
                record = self._data.get(prefix)
            if record is None:
                continue
            if _is_expired(record.cached, _utcnow(), self.expiry):
                # a shorter prefix may still hold a fresh record, keep looking
                logger.info("Entry expired for prefix %s", prefix)
                self._evict(prefix, record)
                continue
            logger.debug("Cache hit for prefix %s (%s)", prefix, addr)
            if self.stats:
                self.stats.record_prefix_hit()
            return record

        try:
            with self.limiter:
                fetched = self.backend(addr)
            if not fetched.prefix:
                raise FormatError(f"backend returned no prefix for {addr}")
        except BackendError:
            if self.stats:
                self.stats.record_prefix_miss(error=True)
            raise
        if self.stats:
            self.stats.record_prefix_miss()

        record = replace(fetched, cached=_utcnow())
        with self._lock.write():
            self._data[record.prefix] = record
        logger.info(
            "Cached prefix %s -> AS%d %s", record.prefix, record.asn, record.country_code or "-"
        )
        return record

    def _evict(self, prefix: str, record: PrefixRecord) -> None:
        with self._lock.write():
            # another lookup may have reinserted a fresh record meanwhile
            if self._data.get(prefix) is record:
                del self._data[prefix]
                if self.stats:
                    self.stats.record_prefix_eviction()

    def snapshot(self) -> dict[str, PrefixRecord]:
        """Return a copy of the cached records, keyed by prefix."""
        with self._lock.read():
            return dict(self._data)

    def restore(self, records: dict[str, PrefixRecord]) -> None:
        """Install records (e.g. from a snapshot), replacing same-keyed entries."""
        with self._lock.write():
            self._data.update(records)

    def clear(self) -> None:
        with self._lock.write():
            self._data.clear()

    @property
    def size(self) -> int:
        with self._lock.read():
            return len(self._data)


class AddressCache:
    """Thread-safe cache of name resolutions with lazy expiry.

    Failed resolutions are cached as empty address lists. Every successful
    resolution warms the shared prefix cache for each resolved address.
    """

    def __init__(
        self,
        prefixes: PrefixCache | None,
        expiry: int = 86400,
        concurrency: int = 16,
        resolver: Callable[[str], list[IPAddress]] | None = None,
        stats: Stats | None = None,
    ) -> None:
        self.prefixes = prefixes
        self.expiry = expiry
        self.limiter = BackendLimiter(concurrency)
        self.resolver = resolver or resolve_name
        self.stats = stats
        self._lock = RWLock()
        self._data: dict[str, AddressRecord] = {}

    def lookup(self, name: str) -> AddressRecord:
        """Return the cached resolution of name, resolving it on a miss.

        Never fails because of the resolver. Raises ValueError for an empty name.
        """
        key = name.strip().lower().rstrip(".")
        if not key:
            raise ValueError("empty name")

        with self._lock.read():
            record = self._data.get(key)
        if record is not None:
            if not _is_expired(record.cached, _utcnow(), self.expiry):
                logger.debug("Cache hit for name %s", key)
                if self.stats:
                    self.stats.record_address_hit()
                return record
            logger.info("Entry expired for name %s", key)
            self._evict(key, record)

        failed = False
        with self.limiter:
            try:
                addresses = tuple(self.resolver(key))
            except ResolutionError as e:
                logger.warning("Error looking up %s: %s", key, e)
                addresses = ()
                failed = True
        if self.stats:
            self.stats.record_address_miss(failed=failed)

        # holds no lock of ours, so the prefix cache's lock is never nested
        if self.prefixes is not None:
            for addr in addresses:
                best_effort(self.prefixes.lookup, addr)

        record = AddressRecord(name=key, addresses=addresses, cached=_utcnow())
        with self._lock.write():
            self._data[key] = record
        logger.info("Cached name %s -> %s", key, [str(a) for a in addresses])
        return record

    def _evict(self, key: str, record: AddressRecord) -> None:
        with self._lock.write():
            if self._data.get(key) is record:
                del self._data[key]
                if self.stats:
                    self.stats.record_address_eviction()

    def snapshot(self) -> dict[str, AddressRecord]:
        """Return a copy of the cached records, keyed by name."""
        with self._lock.read():
            return dict(self._data)

    def restore(self, records: dict[str, AddressRecord]) -> None:
        with self._lock.write():
            self._data.update(records)

    def clear(self) -> None:
        with self._lock.write():
            self._data.clear()

    @property
    def size(self) -> int:
        with self._lock.read():
            return len(self._data)
