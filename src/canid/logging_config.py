import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


class LookupLogger:
    """Logs served lookups to a rotating file."""

    def __init__(self, log_path: Path, max_bytes: int = 50 * 1024 * 1024) -> None:
        self.logger = logging.getLogger("canid.lookups")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        # Avoid duplicate handlers on reload
        if not self.logger.handlers:
            handler = RotatingFileHandler(
                log_path, maxBytes=max_bytes, backupCount=3
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
            )
            self.logger.addHandler(handler)

    def log_prefix(self, addr: str, prefix: str | None) -> None:
        self.logger.info("%s %s %s", "PREFIX", addr, prefix or "FAILED")

    def log_address(self, name: str, addresses: list[str]) -> None:
        self.logger.info("%s %s %s", "ADDRESS", name, ",".join(addresses) or "NONE")
