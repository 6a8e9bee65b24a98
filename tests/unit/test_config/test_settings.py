"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from dataplayground.config.settings import (
    ClientConfig,
    InterpreterConfig,
    ServerConfig,
    Settings,
    load_settings,
)


class TestSettings:
    def test_default_settings(self) -> None:
        """Default Settings should be valid."""
        settings = Settings()
        assert settings.server.port == 8080
        assert settings.server.static_port == 8000
        assert settings.interpreter.command[0] == "R"
        assert settings.client.history_size == 50

    def test_interpreter_defaults(self) -> None:
        config = InterpreterConfig()
        assert config.marker == "#DataPlayground"
        assert (config.plot_width, config.plot_height) == (1024, 1024)
        assert config.plot_pipe == "plot.png"
        assert config.dataframe_pipe == "dataframe.json"
        assert config.dflist_pipe == "dflist.json"
        assert config.api_domain_var == "APIDOMAIN"
        assert config.inherit_environment is False

    def test_invalid_port_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(port=0)

    def test_invalid_history_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(history_size=0)

    def test_load_settings_missing_file(self, tmp_path: Path) -> None:
        """load_settings with missing file should return defaults."""
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.server.port == 8080

    def test_load_settings_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "server:\n"
            "  port: 9090\n"
            "interpreter:\n"
            "  template_dir: /srv/templates\n"
            "  plot_width: 800\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        settings = load_settings(path)
        assert settings.server.port == 9090
        assert settings.interpreter.template_dir == "/srv/templates"
        assert settings.interpreter.plot_width == 800
        assert settings.interpreter.plot_height == 1024
        assert settings.logging.level == "DEBUG"

    def test_load_settings_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        settings = load_settings(path)
        assert settings.client.url == "ws://localhost:8080/"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATAPLAYGROUND_SERVER__PORT", "9999")
        settings = Settings()
        assert settings.server.port == 9999
