"""Tests for command-line argument handling."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from dataplayground.cli import _parse_env, main, parse_args


def test_parse_serve_args() -> None:
    args = parse_args(["-v", "serve", "--port", "9000", "--template-dir", "/srv/r"])
    assert args.command == "serve"
    assert args.verbose
    assert args.port == 9000
    assert args.template_dir == Path("/srv/r")


def test_parse_client_env_pairs() -> None:
    args = parse_args(["client", "--env", "TOKEN=abc", "--env", "ORG=a=b"])
    assert _parse_env(args.env) == {"TOKEN": "abc", "ORG": "a=b"}


def test_invalid_env_pair() -> None:
    with pytest.raises(SystemExit):
        _parse_env(["NOVALUE"])


def test_serve_applies_overrides(tmp_path: Path) -> None:
    with patch("dataplayground.server.app.serve") as mock_serve, patch(
        "dataplayground.cli.asyncio.run"
    ) as mock_run:
        main(["-c", str(tmp_path / "none.yaml"), "serve", "--port", "9001", "--static-port", "9002"])
    mock_run.assert_called_once()
    server_config, interpreter_config = mock_serve.call_args.args
    assert server_config.port == 9001
    assert server_config.static_port == 9002
    assert interpreter_config.command[0] == "R"
