"""Integration tests: modules interact with each other, mocking only at the network boundary."""

import ipaddress
import json
import urllib.request
from unittest.mock import MagicMock, patch

import httpx

from canid import storage
from canid.cache import AddressCache, PrefixCache
from canid.config import Config
from canid.ripestat import close_client, query_ripestat
from canid.server import start_server
from canid.stats import Stats


def _ripestat_transport(calls):
    """Fake RIPEstat announcing 198.51.0.0/16 from AS64500 located in CH."""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, request.url.params["resource"]))
        if request.url.path.endswith("prefix-overview/data.json"):
            return httpx.Response(200, json={
                "status": "ok",
                "data": {
                    "resource": request.url.params["resource"],
                    "is_less_specific": False,
                    "block": {"resource": "198.51.0.0/16"},
                    "asns": [{"asn": 64500}],
                },
            })
        return httpx.Response(200, json={
            "status": "ok",
            "data": {"locations": [{"country": "CH"}]},
        })

    return httpx.MockTransport(handler)


class TestLookupFlow:
    """config → caches → RIPEstat client → HTTP server → snapshot."""

    def setup_method(self):
        self.calls = []
        self.client = httpx.Client(transport=_ripestat_transport(self.calls))
        self._client_patcher = patch("canid.ripestat._get_client", return_value=self.client)
        self._client_patcher.start()

        self.stats = Stats()
        self.prefixes = PrefixCache(expiry=3600, concurrency=2, backend=query_ripestat, stats=self.stats)
        self.resolver = MagicMock(return_value=[
            ipaddress.ip_address("198.51.100.7"),
            ipaddress.ip_address("198.51.200.9"),
        ])
        self.addresses = AddressCache(
            self.prefixes, expiry=3600, concurrency=2, resolver=self.resolver, stats=self.stats
        )
        config = Config()
        config.listen_address = "127.0.0.1"
        config.listen_port = 0
        self.server = start_server(config, self.prefixes, self.addresses, self.stats)
        self.port = self.server.server_address[1]

    def teardown_method(self):
        self.server.shutdown()
        self.server.server_close()
        self._client_patcher.stop()
        self.client.close()
        close_client()

    def _get_json(self, path):
        with urllib.request.urlopen(f"http://127.0.0.1:{self.port}{path}", timeout=5) as resp:
            return json.loads(resp.read())

    def test_name_lookup_warms_prefix_cache(self):
        data = self._get_json("/address.json?name=www.example.test")
        assert data["Addresses"] == ["198.51.100.7", "198.51.200.9"]
        # one prefix-overview + one geoloc call; the second address hit the /16
        assert len(self.calls) == 2

        for addr in ("198.51.100.7", "198.51.200.9", "198.51.3.3"):
            prefix = self._get_json(f"/prefix.json?addr={addr}")
            assert prefix["Prefix"] == "198.51.0.0/16"
            assert prefix["ASN"] == 64500
            assert prefix["CountryCode"] == "CH"
        assert len(self.calls) == 2

        stats = self._get_json("/stats.json")
        assert stats["prefix_misses"] == 1
        assert stats["prefix_hits"] == 4
        assert stats["address_misses"] == 1

    def test_snapshot_survives_restart(self, tmp_path):
        self._get_json("/address.json?name=www.example.test")
        path = tmp_path / "cache.json"
        storage.dump(path, self.prefixes, self.addresses)

        prefixes = PrefixCache(expiry=3600, backend=MagicMock(side_effect=AssertionError("backend")))
        addresses = AddressCache(prefixes, expiry=3600, resolver=MagicMock(side_effect=AssertionError("dns")))
        storage.load(path, prefixes, addresses)

        assert prefixes.lookup("198.51.7.7").asn == 64500
        assert [str(a) for a in addresses.lookup("www.example.test").addresses] == [
            "198.51.100.7", "198.51.200.9",
        ]
