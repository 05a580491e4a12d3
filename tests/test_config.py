"""Tests for settings load/save and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from reader_preload.config import (
    ReaderSettings,
    _dict_to_settings,
    _settings_to_dict,
    get_config_path,
    load_config,
    save_config,
)
from reader_preload.models import DEFAULT_SERVER_URL, PreloadConfig


@pytest.fixture
def config_file(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "reader-preload" / "config.json"
    monkeypatch.setattr("reader_preload.config.get_config_path", lambda: path)
    return path


def test_config_path_uses_app_directory() -> None:
    path = get_config_path()
    assert path.name == "config.json"
    assert path.parent.name == "reader-preload"


def test_missing_file_gives_defaults(config_file) -> None:
    settings = load_config()

    assert settings == ReaderSettings()
    assert settings.preload == PreloadConfig(
        enabled=True, chapter_count=2, trigger_progress=50.0, max_cache_size=10
    )


def test_save_then_load(config_file) -> None:
    settings = ReaderSettings(
        server_url="http://nas:1122",
        request_timeout_seconds=45,
        preload=PreloadConfig(
            enabled=False, chapter_count=4, trigger_progress=70.0, max_cache_size=25
        ),
    )

    assert save_config(settings) is True
    assert load_config() == settings
    assert not list(config_file.parent.glob(".config-*.tmp"))


def test_corrupt_json_gives_defaults(config_file) -> None:
    config_file.parent.mkdir(parents=True)
    config_file.write_text("{not json", encoding="utf-8")

    assert load_config() == ReaderSettings()


def test_non_object_json_gives_defaults(config_file) -> None:
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[1, 2]", encoding="utf-8")

    assert load_config() == ReaderSettings()


def test_out_of_range_values_are_clamped() -> None:
    settings = _dict_to_settings(
        {
            "request_timeout_seconds": 0,
            "preload": {
                "chapter_count": 99,
                "trigger_progress": 150,
                "max_cache_size": -3,
            },
        }
    )

    assert settings.request_timeout_seconds == 1
    assert settings.preload.chapter_count == 20
    assert settings.preload.trigger_progress == 100.0
    assert settings.preload.max_cache_size == 1


def test_wrong_types_fall_back_to_defaults() -> None:
    settings = _dict_to_settings(
        {
            "server_url": 42,
            "preload": {"enabled": "yes", "chapter_count": True, "trigger_progress": "50"},
        }
    )

    assert settings.server_url == DEFAULT_SERVER_URL
    assert settings.preload.enabled is True
    assert settings.preload.chapter_count == 2
    assert settings.preload.trigger_progress == 50.0


def test_blank_server_url_falls_back() -> None:
    assert _dict_to_settings({"server_url": "   "}).server_url == DEFAULT_SERVER_URL


def test_non_dict_preload_section_is_ignored() -> None:
    assert _dict_to_settings({"preload": "off"}).preload == PreloadConfig()


def test_serialized_form_is_json_compatible() -> None:
    data = _settings_to_dict(ReaderSettings())
    assert json.loads(json.dumps(data)) == data
    assert data["preload"]["max_cache_size"] == 10


def test_save_failure_returns_false_and_cleans_up(config_file, monkeypatch) -> None:
    def _boom(*_args, **_kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr("reader_preload.config.os.replace", _boom)

    assert save_config(ReaderSettings()) is False
    assert not config_file.exists()
    assert list(config_file.parent.iterdir()) == []


def test_save_failure_before_staging_returns_false(config_file, monkeypatch) -> None:
    def _boom(*_args, **_kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr("reader_preload.config.tempfile.NamedTemporaryFile", _boom)

    assert save_config(ReaderSettings()) is False
