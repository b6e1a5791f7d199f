from canid.config import Config, _config_to_dict, _dict_to_config, load_config, save_config


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.expiry == 86400
        assert config.concurrency == 16
        assert config.cache_file == ""
        assert config.listen_port == 8081
        assert config.listen_address == "0.0.0.0"
        assert config.backend_timeout == 10.0
        assert config.log_lookups is True

    def test_roundtrip(self):
        config = Config()
        config.expiry = 600
        config.cache_file = "/var/lib/canid/cache.json"
        restored = _dict_to_config(_config_to_dict(config))
        assert restored == config

    def test_partial_config(self):
        """Config should use defaults for missing keys."""
        data = {"cache": {"expiry": 60}}
        config = _dict_to_config(data)
        assert config.expiry == 60
        assert config.concurrency == 16  # default preserved
        assert config.listen_port == 8081

    def test_sections(self):
        d = _config_to_dict(Config())
        assert set(d) == {"cache", "server", "backend", "logging"}
        assert d["cache"]["file"] == ""
        assert d["backend"]["timeout"] == 10.0


class TestLoadSave:
    def test_load_creates_default_file(self, tmp_path):
        path = tmp_path / "sub" / "config.toml"
        config = load_config(path)
        assert config == Config()
        assert path.exists()

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "config.toml"
        config = Config()
        config.concurrency = 4
        config.listen_address = "127.0.0.1"
        config.prefix_url = "http://localhost:9000/prefix"
        save_config(config, path)
        assert load_config(path) == config

    def test_load_hand_written_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[server]\nlisten_port = 9999\n\n[cache]\nfile = "cache.json"\n')
        config = load_config(path)
        assert config.listen_port == 9999
        assert config.cache_file == "cache.json"
        assert config.expiry == 86400
