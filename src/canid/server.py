import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from urllib.parse import parse_qs, urlparse

from canid.cache import AddressCache, PrefixCache
from canid.config import Config
from canid.logging_config import LookupLogger
from canid.ripestat import BackendError
from canid.stats import Stats

logger = logging.getLogger("canid.server")


class LookupHandler(BaseHTTPRequestHandler):
    """HTTP request handler serving cached lookups as JSON."""

    prefixes: PrefixCache = None
    addresses: AddressCache = None
    stats: Stats = None
    lookup_logger: LookupLogger = None

    def do_GET(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"
        params = parse_qs(parsed.query)

        if path == "/":
            self._serve_html()
        elif path == "/prefix.json":
            self._serve_prefix(params)
        elif path == "/address.json":
            self._serve_address(params)
        elif path == "/stats.json":
            self._serve_stats()
        else:
            self.send_error(404)

    # --- JSON response ---

    def _json_response(self, data: dict | list, status: int = 200) -> None:
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(body)

    # --- GET handlers ---

    def _serve_prefix(self, params: dict) -> None:
        addr = params.get("addr", [""])[0].strip()
        if not addr:
            self._json_response({"Error": "missing addr parameter"}, status=400)
            return
        try:
            record = self.prefixes.lookup(addr)
        except ValueError:
            logger.debug("Rejected unparseable address %r", addr)
            self._json_response({"Error": f"invalid address: {addr}"}, status=400)
            return
        except BackendError as e:
            logger.error("Prefix lookup failed for %s: %s", addr, e)
            if self.lookup_logger:
                self.lookup_logger.log_prefix(addr, None)
            self._json_response({"Error": str(e)}, status=500)
            return
        if self.lookup_logger:
            self.lookup_logger.log_prefix(addr, record.prefix)
        self._json_response(record.to_dict())

    def _serve_address(self, params: dict) -> None:
        name = params.get("name", [""])[0].strip()
        try:
            record = self.addresses.lookup(name)
        except ValueError:
            self._json_response({"Error": "missing name parameter"}, status=400)
            return
        if self.lookup_logger:
            self.lookup_logger.log_address(record.name, [str(a) for a in record.addresses])
        self._json_response(record.to_dict())

    def _serve_stats(self) -> None:
        data = self.stats.to_dict() if self.stats else {}
        data["prefix_cache_size"] = self.prefixes.size
        data["address_cache_size"] = self.addresses.size
        data["prefix_backend_in_flight"] = self.prefixes.limiter.in_flight
        data["address_backend_in_flight"] = self.addresses.limiter.in_flight
        self._json_response(data)

    def _serve_html(self) -> None:
        body = INDEX_HTML.encode()
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        # Lookups are logged by LookupLogger; keep http.server off stderr
        pass


class _ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    """HTTPServer that handles each request in a new thread."""
    daemon_threads = True


def start_server(
    config: Config,
    prefixes: PrefixCache,
    addresses: AddressCache,
    stats: Stats | None = None,
    lookup_logger: LookupLogger | None = None,
) -> HTTPServer:
    """Start the lookup server in a background thread.

    Raises OSError if the listen address can't be bound.
    """
    LookupHandler.prefixes = prefixes
    LookupHandler.addresses = addresses
    LookupHandler.stats = stats
    LookupHandler.lookup_logger = lookup_logger

    server = _ThreadedHTTPServer((config.listen_address, config.listen_port), LookupHandler)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(
        "Serving lookups on http://%s:%d",
        config.listen_address,
        server.server_address[1],
    )
    return server


INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>canid</title>
<style>
  body { font-family: -apple-system, Helvetica, Arial, sans-serif; margin: 2em auto; max-width: 40em; color: #222; }
  h1 { font-weight: 300; }
  form { margin-bottom: 1.5em; }
  input[type=text] { width: 20em; padding: 0.3em; }
  pre { background: #f4f4f4; padding: 1em; min-height: 3em; white-space: pre-wrap; }
</style>
</head>
<body>
<h1>canid</h1>
<p>Cached prefix, AS and country lookups for addresses, and address lookups for names.</p>

<form id="prefix-form">
  <label>Address <input type="text" id="addr" placeholder="198.51.100.7"></label>
  <button type="submit">Look up prefix</button>
</form>

<form id="address-form">
  <label>Name <input type="text" id="name" placeholder="www.example.com"></label>
  <button type="submit">Look up addresses</button>
</form>

<pre id="result"></pre>

<script>
async function show(url) {
  const out = document.getElementById("result");
  out.textContent = "...";
  try {
    const resp = await fetch(url);
    const data = await resp.json();
    out.textContent = resp.status + "\\n" + JSON.stringify(data, null, 2);
  } catch (err) {
    out.textContent = String(err);
  }
}
document.getElementById("prefix-form").addEventListener("submit", (ev) => {
  ev.preventDefault();
  show("/prefix.json?addr=" + encodeURIComponent(document.getElementById("addr").value));
});
document.getElementById("address-form").addEventListener("submit", (ev) => {
  ev.preventDefault();
  show("/address.json?name=" + encodeURIComponent(document.getElementById("name").value));
});
</script>
</body>
</html>
"""
