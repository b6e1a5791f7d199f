import logging
import signal
import threading
from pathlib import Path

from canid import storage
from canid.cache import AddressCache, PrefixCache
from canid.config import Config
from canid.ripestat import close_client
from canid.stats import Stats

logger = logging.getLogger("canid.daemon")

# Set by the SIGINT/SIGTERM handler; the main loop does the actual shutdown
_shutdown_requested = threading.Event()


def setup_signal_handlers() -> None:
    """Set up signal handlers for graceful shutdown."""

    def shutdown_handler(signum, frame):
        # Only set a flag, no I/O in signal context
        _shutdown_requested.set()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)


def request_shutdown() -> None:
    _shutdown_requested.set()


def main_loop(
    prefixes: PrefixCache,
    addresses: AddressCache,
    stats: Stats | None = None,
    interval: float = 3600,
) -> None:
    """Block until shutdown is requested, logging a cache summary every interval."""
    while not _shutdown_requested.wait(interval):
        summary = stats.to_dict() if stats else {}
        logger.info(
            "%d prefixes, %d names cached (prefix hit rate %s%%, %s backend errors)",
            prefixes.size,
            addresses.size,
            summary.get("prefix_hit_rate", "-"),
            summary.get("backend_errors", "-"),
        )
    logger.info("Terminating on interrupt")
    _shutdown_requested.clear()


def cleanup(server, config: Config, prefixes: PrefixCache, addresses: AddressCache) -> None:
    """Stop the server, dump the caches if a cache file is configured."""
    logger.info("Cleaning up...")
    try:
        server.shutdown()
        server.server_close()
    except Exception as e:
        logger.warning("Error stopping server: %s", e)
    if config.cache_file:
        try:
            storage.dump(Path(config.cache_file), prefixes, addresses)
        except OSError as e:
            logger.error("Unable to write cache file %s: %s", config.cache_file, e)
    close_client()
    logger.info("Cleanup complete")
