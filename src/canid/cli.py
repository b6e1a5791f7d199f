import json
import logging
import sys
from pathlib import Path

import click

from canid import storage
from canid.cache import AddressCache, PrefixCache
from canid.config import (
    CONFIG_FILE,
    LOG_FILE,
    LOOKUP_LOG_FILE,
    Config,
    ensure_dirs,
    load_config,
)
from canid.daemon import cleanup, main_loop, setup_signal_handlers
from canid.logging_config import LookupLogger
from canid.ripestat import BackendError, backend_from_config, close_client
from canid.server import start_server
from canid.stats import Stats


def _setup_logging(verbose: bool, log_file: Path | None = LOG_FILE) -> None:
    """Configure root logger."""
    log_level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("%(asctime)s [%(name)s] %(levelname)s %(message)s")
    handlers: list[logging.Handler] = []

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    # Keep httpx request lines out of INFO output
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_caches(config: Config, stats: Stats | None = None) -> tuple[PrefixCache, AddressCache]:
    """Allocate the shared prefix cache and the address cache that precaches into it."""
    prefixes = PrefixCache(
        expiry=config.expiry,
        concurrency=config.concurrency,
        backend=backend_from_config(config),
        stats=stats,
    )
    addresses = AddressCache(
        prefixes,
        expiry=config.expiry,
        concurrency=config.concurrency,
        stats=stats,
    )
    return prefixes, addresses


def _emit(ctx, data, human_lines):
    """Output JSON or human-readable text based on mode."""
    if ctx.obj.get("json"):
        click.echo(json.dumps(data))
    else:
        for line in human_lines:
            click.echo(line)


def _fail(ctx, msg):
    if ctx.obj.get("json"):
        click.echo(json.dumps({"status": "error", "message": msg}))
    else:
        click.echo(f"Error: {msg}", err=True)
    ctx.exit(1)


@click.group()
@click.version_option(package_name="canid")
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.pass_context
def main(ctx, json_mode):
    """canid - caching prefix, AS and address lookup daemon."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_mode
    ensure_dirs()


@main.command()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=CONFIG_FILE,
              show_default=True, help="Configuration file (TOML)")
@click.option("--file", "cache_file", default=None, help="Backing store for caches (JSON file)")
@click.option("--expiry", type=int, default=None, help="Expire cache entries after n sec")
@click.option("--concurrency", type=int, default=None, help="Simultaneous backend request limit")
@click.option("--port", type=int, default=None, help="Port to listen on")
@click.option("--listen", "listen_address", default=None, help="Address to listen on")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def serve(ctx, config_path, cache_file, expiry, concurrency, port, listen_address, verbose):
    """Run the lookup server until interrupted."""
    _setup_logging(verbose)
    config = load_config(config_path)
    if cache_file is not None:
        config.cache_file = cache_file
    if expiry is not None:
        config.expiry = expiry
    if concurrency is not None:
        config.concurrency = concurrency
    if port is not None:
        config.listen_port = port
    if listen_address is not None:
        config.listen_address = listen_address

    if config.concurrency < 1:
        _fail(ctx, "concurrency must be at least 1")

    stats = Stats()
    prefixes, addresses = _build_caches(config, stats)

    if config.cache_file:
        try:
            storage.load(Path(config.cache_file), prefixes, addresses)
        except storage.SnapshotError as e:
            _fail(ctx, str(e))

    lookup_logger = None
    if config.log_lookups:
        lookup_logger = LookupLogger(
            LOOKUP_LOG_FILE, max_bytes=config.log_max_size_mb * 1024 * 1024
        )

    setup_signal_handlers()

    try:
        server = start_server(config, prefixes, addresses, stats, lookup_logger)
    except OSError as e:
        _fail(ctx, f"Failed to start server on {config.listen_address}:{config.listen_port}: {e}")

    if not ctx.obj.get("json"):
        click.echo(
            f"canid listening on {config.listen_address}:{server.server_address[1]}. "
            "Press Ctrl+C to stop."
        )

    try:
        main_loop(prefixes, addresses, stats)
    finally:
        cleanup(server, config, prefixes, addresses)


@main.command()
@click.argument("addr")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=CONFIG_FILE,
              help="Configuration file (TOML)")
@click.pass_context
def prefix(ctx, addr, config_path):
    """Look up the prefix, AS and country for ADDR."""
    config = load_config(config_path)
    prefixes, _ = _build_caches(config)
    try:
        record = prefixes.lookup(addr)
    except ValueError:
        _fail(ctx, f"invalid address: {addr}")
    except BackendError as e:
        _fail(ctx, str(e))
    finally:
        close_client()

    _emit(ctx, record.to_dict(), [
        f"Prefix:  {record.prefix}",
        f"ASN:     {record.asn or '-'}",
        f"Country: {record.country_code or '-'}",
    ])


@main.command()
@click.argument("name")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=CONFIG_FILE,
              help="Configuration file (TOML)")
@click.pass_context
def address(ctx, name, config_path):
    """Resolve NAME and look up the prefix of each address."""
    config = load_config(config_path)
    prefixes, addresses = _build_caches(config)
    try:
        record = addresses.lookup(name)
    except ValueError:
        _fail(ctx, "empty name")

    rows = []
    for addr in record.addresses:
        # hits, since the name lookup precached every address
        try:
            rows.append((str(addr), prefixes.lookup(addr)))
        except BackendError:
            rows.append((str(addr), None))
    close_client()

    data = record.to_dict()
    data["Prefixes"] = {a: (info.to_dict() if info else None) for a, info in rows}
    lines = [f"Name: {record.name}"]
    if not rows:
        lines.append("  (no addresses)")
    for a, info in rows:
        if info:
            lines.append(f"  {a:<40} {info.prefix} AS{info.asn} {info.country_code or '-'}")
        else:
            lines.append(f"  {a:<40} (no prefix data)")
    _emit(ctx, data, lines)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def inspect(ctx, path):
    """Show the contents summary of a cache snapshot file."""
    try:
        doc = storage.read_snapshot(path)
    except storage.SnapshotError as e:
        _fail(ctx, str(e))
    except OSError as e:
        _fail(ctx, f"unable to read {path}: {e}")

    data = {
        "version": doc["Version"],
        "prefixes": len(doc["Prefixes"]),
        "addresses": len(doc["Addresses"]),
    }
    _emit(ctx, data, [
        f"Snapshot: {path} (version {data['version']})",
        f"Prefixes: {data['prefixes']:,}",
        f"Names:    {data['addresses']:,}",
    ])


if __name__ == "__main__":
    sys.exit(main())
