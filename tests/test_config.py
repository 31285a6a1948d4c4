"""Tests for configuration loading and saving."""

import json

from wademo.config.loader import camel_to_snake, load_config, save_config, snake_to_camel
from wademo.config.schema import Config, SessionConfig


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config.redis.host == "localhost"
        assert config.redis.port == 6379
        assert config.redis.max_retries == 3
        assert config.bridge.url == "ws://localhost:3001"
        assert config.session.max_restarts == 0
        assert not config.features.do_reply

    def test_camel_case_keys(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "redis": {"host": "cache.local", "maxRetries": 5, "connectTimeout": 1.5},
            "features": {"doReply": True, "usePairingCode": True},
            "session": {"phoneNumber": "15551234567", "restartDelay": 0.5},
            "bridge": {"authDir": str(tmp_path / "auth")},
        }))

        config = load_config(path)

        assert config.redis.host == "cache.local"
        assert config.redis.max_retries == 5
        assert config.redis.connect_timeout == 1.5
        assert config.features.do_reply
        assert config.features.use_pairing_code
        assert config.session.phone_number == "15551234567"
        assert config.auth_path == tmp_path / "auth"

    def test_broken_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_config(path).redis.host == "localhost"

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"redis": {"port": "not a port"}}))
        assert load_config(path).redis.port == 6379

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WADEMO_REDIS__HOST", "10.0.0.5")
        monkeypatch.setenv("WADEMO_FEATURES__DO_REPLY", "true")

        config = load_config(tmp_path / "missing.json")

        assert config.redis.host == "10.0.0.5"
        assert config.features.do_reply

    def test_environment_overrides_saved_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"redis": {"host": "cache.local", "port": 6380}, "features": {"doReply": False}}))
        monkeypatch.setenv("WADEMO_REDIS__HOST", "10.0.0.5")
        monkeypatch.setenv("WADEMO_FEATURES__DO_REPLY", "true")

        config = load_config(path)

        assert config.redis.host == "10.0.0.5"
        assert config.redis.port == 6380
        assert config.features.do_reply


class TestSaveConfig:

    def test_round_trip_uses_camel_case(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = Config(session=SessionConfig(phone_number="555", max_restarts=4))

        save_config(config, path)

        data = json.loads(path.read_text())
        assert data["session"]["phoneNumber"] == "555"
        assert "usePairingCode" in data["features"]
        assert load_config(path) == config


class TestKeyConversion:

    def test_camel_to_snake(self):
        assert camel_to_snake("retryCounterMaxEntries") == "retry_counter_max_entries"
        assert camel_to_snake("host") == "host"

    def test_snake_to_camel(self):
        assert snake_to_camel("request_timeout") == "requestTimeout"
        assert snake_to_camel("db") == "db"
