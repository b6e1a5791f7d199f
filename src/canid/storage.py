import json
import logging
from pathlib import Path
from typing import Any

from canid.cache import AddressCache, PrefixCache
from canid.records import AddressRecord, PrefixRecord

logger = logging.getLogger("canid.storage")

STORAGE_VERSION = 1


class SnapshotError(Exception):
    """A cache snapshot could not be parsed. Fatal at startup."""


class StorageVersionError(SnapshotError):
    """A cache snapshot was written by an incompatible version."""


def dump(path: Path, prefixes: PrefixCache, addresses: AddressCache) -> None:
    """Write both caches to path as a versioned JSON document."""
    doc = {
        "Version": STORAGE_VERSION,
        "Prefixes": {k: v.to_dict() for k, v in prefixes.snapshot().items()},
        "Addresses": {k: v.to_dict() for k, v in addresses.snapshot().items()},
    }
    path.write_text(json.dumps(doc, indent=1))
    logger.info(
        "Dumped %d prefixes and %d names to %s",
        len(doc["Prefixes"]), len(doc["Addresses"]), path,
    )


def read_snapshot(path: Path) -> dict[str, Any]:
    """Parse and validate a snapshot without installing it.

    Returns {"Version", "Prefixes", "Addresses"} with record objects as
    values. Raises OSError if the file can't be read, SnapshotError if it
    can't be trusted.
    """
    text = path.read_text()
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"cache file {path} is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise SnapshotError(f"cache file {path} is not a JSON object")

    version = doc.get("Version")
    if version != STORAGE_VERSION:
        raise StorageVersionError(
            f"storage version mismatch for cache file {path} "
            f"(found {version}, expected {STORAGE_VERSION}): delete and try again"
        )

    try:
        prefixes = {
            str(k): PrefixRecord.from_dict(v) for k, v in (doc.get("Prefixes") or {}).items()
        }
        addresses = {
            str(k): AddressRecord.from_dict(v) for k, v in (doc.get("Addresses") or {}).items()
        }
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise SnapshotError(f"cache file {path} has malformed records: {e}") from e

    return {"Version": version, "Prefixes": prefixes, "Addresses": addresses}


def load(path: Path, prefixes: PrefixCache, addresses: AddressCache) -> bool:
    """Restore both caches from path.

    A missing or unreadable file leaves the caches empty and returns False.
    A file that can't be trusted raises SnapshotError before either cache
    is touched.
    """
    try:
        doc = read_snapshot(path)
    except OSError as e:
        logger.warning("Unable to read cache file %s: %s", path, e)
        return False
    prefixes.restore(doc["Prefixes"])
    addresses.restore(doc["Addresses"])
    logger.info(
        "Loaded %d prefixes and %d names from %s",
        len(doc["Prefixes"]), len(doc["Addresses"]), path,
    )
    return True
