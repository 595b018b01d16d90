"""Settings precedence: kwargs > environment > config files > defaults."""

from __future__ import annotations

from pathlib import Path

import pytest

from api_scaffold.config import ServerSettings
from api_scaffold.server import Server


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PORT", "CORS", "GZIP", "HOST", "HOME_DIR", "STATIC_DIR", "STATIC_PATH"):
        monkeypatch.delenv(f"API_SCAFFOLD_{name}", raising=False)


def _write(home: Path, name: str, text: str) -> None:
    etc = home / "etc"
    etc.mkdir(exist_ok=True)
    (etc / name).write_text(text)


def test_defaults_without_files(tmp_path):
    settings = ServerSettings.load(tmp_path)
    assert settings.port == 8080
    assert settings.cors is False
    assert settings.gzip is True
    assert settings.standard_exception_mappers is True
    assert settings.host is None
    assert settings.service_context_path == "/"
    assert settings.home_dir == str(tmp_path)


def test_config_file_values(tmp_path):
    _write(tmp_path, "config.txt", "API_SCAFFOLD_PORT=9000\nAPI_SCAFFOLD_CORS=true\n")
    settings = ServerSettings.load(tmp_path)
    assert settings.port == 9000
    assert settings.cors is True


def test_devconfig_wins_over_config(tmp_path):
    _write(tmp_path, "config.txt", "API_SCAFFOLD_PORT=9000\n")
    _write(tmp_path, "devconfig.txt", "API_SCAFFOLD_PORT=9100\n")
    assert ServerSettings.load(tmp_path).port == 9100


def test_environment_wins_over_files(tmp_path, monkeypatch):
    _write(tmp_path, "config.txt", "API_SCAFFOLD_PORT=9000\n")
    monkeypatch.setenv("API_SCAFFOLD_PORT", "9200")
    assert ServerSettings.load(tmp_path).port == 9200


def test_keyword_arguments_win_over_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("API_SCAFFOLD_PORT", "9200")
    assert ServerSettings.load(tmp_path, port=9300).port == 9300


def test_builder_from_settings(tmp_path):
    settings = ServerSettings.load(tmp_path, host="127.0.0.1", port=9400, cors=True, gzip=False)
    server = Server.builder().from_settings(settings).build()
    assert server.uri == "http://127.0.0.1:9400/"
    assert server.middleware == ["RequestLogMiddleware", "CorsHeadersMiddleware", "ExceptionGuardMiddleware"]
