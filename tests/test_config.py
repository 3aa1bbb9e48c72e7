"""
Tests for socket options and the configuration loader.
"""

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict
from unittest.mock import Mock

import pytest
import yaml

from resilient_socket.config import ClientSettings, ConfigLoader, SocketOptions
from resilient_socket.exceptions import ConfigError, ErrorCode


class TestSocketOptions:

    def test_defaults(self) -> None:
        options = SocketOptions()

        assert options.heartbeat_message == "ping"
        assert options.heartbeat_interval == 15.0
        assert options.reconnect_enabled is True
        assert options.max_reconnect_attempts == 10
        assert options.pending_send_interval == 1.0
        assert options.reconnect_interval == 0.0
        assert options.connect_timeout is None
        assert options.on_open is None

    def test_from_mapping_skips_none(self) -> None:
        options = SocketOptions.from_mapping({"heartbeat_interval": None, "heartbeat_message": "hb"})

        assert options.heartbeat_interval == 15.0
        assert options.heartbeat_message == "hb"

    def test_from_mapping_kwargs_win(self) -> None:
        options = SocketOptions.from_mapping({"max_reconnect_attempts": 3}, max_reconnect_attempts=5)

        assert options.max_reconnect_attempts == 5

    def test_unknown_option(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            SocketOptions.from_mapping({"heartbeatMsg": "x"})

        assert exc_info.value.code == ErrorCode.CONFIG_ERROR
        assert "heartbeatMsg" in exc_info.value.message

    def test_frozen(self) -> None:
        options = SocketOptions()

        with pytest.raises(dataclasses.FrozenInstanceError):
            options.heartbeat_message = "changed"  # type: ignore[misc]

    def test_merged(self) -> None:
        callback = Mock()
        options = SocketOptions(max_reconnect_attempts=4)

        merged = options.merged(on_message=callback, max_reconnect_attempts=None, reconnect_enabled=False)

        assert merged.on_message is callback
        assert merged.max_reconnect_attempts == 4
        assert merged.reconnect_enabled is False
        assert options.reconnect_enabled is True

    @pytest.mark.parametrize("overrides", [
        {"heartbeat_interval": 0},
        {"heartbeat_interval": -1.0},
        {"heartbeat_message": ""},
        {"max_reconnect_attempts": -1},
        {"max_reconnect_attempts": 2.5},
        {"pending_send_interval": 0},
        {"reconnect_interval": -0.1},
        {"connect_timeout": 0},
        {"on_open": "not callable"},
    ])
    def test_validation(self, overrides: Dict[str, Any]) -> None:
        with pytest.raises(ConfigError):
            SocketOptions(**overrides)

    def test_to_dict_excludes_callbacks(self) -> None:
        data = SocketOptions(on_open=Mock()).to_dict()

        assert "on_open" not in data
        assert data["heartbeat_message"] == "ping"
        assert data["max_reconnect_attempts"] == 10


class TestConfigLoader:

    @pytest.fixture
    def loader(self) -> ConfigLoader:
        return ConfigLoader()

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("URL", "LOG_LEVEL", "HEARTBEAT_MESSAGE", "HEARTBEAT_INTERVAL", "RECONNECT",
                     "MAX_RECONNECT_ATTEMPTS", "RECONNECT_INTERVAL", "CONNECT_TIMEOUT"):
            monkeypatch.delenv(f"RESOCKET_{name}", raising=False)

    def test_defaults_without_file(self, loader: ConfigLoader) -> None:
        settings = loader.load_settings()

        assert isinstance(settings, ClientSettings)
        assert settings.url is None
        assert settings.log_level == "INFO"
        assert settings.options == SocketOptions()

    def test_load_yaml(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "client.yaml"
        path.write_text(yaml.safe_dump({
            "url": "ws://example.test/",
            "log_level": "debug",
            "heartbeat_message": "hb",
            "max_reconnect_attempts": 3,
        }), encoding="utf-8")

        settings = loader.load_settings(str(path))

        assert settings.url == "ws://example.test/"
        assert settings.log_level == "DEBUG"
        assert settings.options.heartbeat_message == "hb"
        assert settings.options.max_reconnect_attempts == 3

    def test_load_json(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "client.json"
        path.write_text(json.dumps({"reconnect_enabled": False}), encoding="utf-8")

        settings = loader.load_settings(str(path))

        assert settings.options.reconnect_enabled is False

    def test_empty_yaml(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")

        assert loader.load_settings(str(path)).options == SocketOptions()

    def test_environment_overrides_file(self, loader: ConfigLoader, tmp_path: Path,
                                        monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "client.json"
        path.write_text(json.dumps({"url": "ws://file/", "max_reconnect_attempts": 3}), encoding="utf-8")
        monkeypatch.setenv("RESOCKET_URL", "ws://env/")
        monkeypatch.setenv("RESOCKET_MAX_RECONNECT_ATTEMPTS", "7")
        monkeypatch.setenv("RESOCKET_RECONNECT", "off")
        monkeypatch.setenv("RESOCKET_HEARTBEAT_INTERVAL", "2.5")
        monkeypatch.setenv("RESOCKET_CONNECT_TIMEOUT", "4")

        settings = loader.load_settings(str(path))

        assert settings.url == "ws://env/"
        assert settings.options.max_reconnect_attempts == 7
        assert settings.options.reconnect_enabled is False
        assert settings.options.heartbeat_interval == 2.5
        assert settings.options.connect_timeout == 4.0

    def test_invalid_environment_value(self, loader: ConfigLoader, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESOCKET_MAX_RECONNECT_ATTEMPTS", "many")

        with pytest.raises(ConfigError):
            loader.load_settings()

    def test_missing_file(self, loader: ConfigLoader, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            loader.load_settings(str(tmp_path / "missing.yaml"))

    def test_unsupported_format(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "client.toml"
        path.write_text("url = 'x'", encoding="utf-8")

        with pytest.raises(ConfigError):
            loader.load_settings(str(path))

    def test_invalid_json(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "client.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigError):
            loader.load_settings(str(path))

    def test_non_mapping_file(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "client.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            loader.load_settings(str(path))

    def test_custom_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MYAPP_HEARTBEAT_MESSAGE", "beat")

        settings = ConfigLoader(env_prefix="MYAPP_").load_settings()

        assert settings.options.heartbeat_message == "beat"
