"""Load and save reader settings as JSON in the user config directory."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from reader_preload.models import (
    CONFIG_APP_NAME,
    DEFAULT_MAX_CACHE_SIZE,
    DEFAULT_PRELOAD_CHAPTER_COUNT,
    DEFAULT_PRELOAD_ENABLED,
    DEFAULT_SERVER_URL,
    DEFAULT_TRIGGER_PROGRESS,
    PreloadConfig,
)
from reader_preload.services.reader_api_service import READER_API_TIMEOUT

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration Persistence
# ============================================================================
#
# Validation contract: _dict_to_settings() guarantees valid output for any input.
# The preload core trusts these values and does not re-check them.
#
#   Field                    Rule              Handler
#   ───────────────────────  ────────────────  ──────────────────
#   chapter_count            1 ≤ x ≤ 20        _parse_preload_config
#   trigger_progress         0 ≤ x ≤ 100       _parse_preload_config
#   max_cache_size           1 ≤ x ≤ 500       _parse_preload_config
#   request_timeout_seconds  1 ≤ x ≤ 300       _dict_to_settings
#   scalar fields            type-checked      _safe_get()
#
CONFIG_FILENAME = "config.json"

MAX_PRELOAD_CHAPTER_COUNT = 20
MAX_CACHE_SIZE_LIMIT = 500
MAX_REQUEST_TIMEOUT_SECONDS = 300


@dataclass(slots=True)
class ReaderSettings:
    """Complete user configuration for the reading client."""

    server_url: str = DEFAULT_SERVER_URL
    request_timeout_seconds: int = READER_API_TIMEOUT
    preload: PreloadConfig = field(default_factory=PreloadConfig)
    version: int = 1


def get_config_path() -> Path:
    """Location of ``config.json`` in the per-user config directory of reader-preload."""
    return Path(user_config_dir(CONFIG_APP_NAME)) / CONFIG_FILENAME


def _settings_to_dict(settings: ReaderSettings) -> dict[str, Any]:
    """Serialize ReaderSettings to a JSON-compatible dictionary."""
    preload = settings.preload
    return {
        "version": settings.version,
        "server_url": settings.server_url,
        "request_timeout_seconds": settings.request_timeout_seconds,
        "preload": {
            "enabled": preload.enabled,
            "chapter_count": preload.chapter_count,
            "trigger_progress": preload.trigger_progress,
            "max_cache_size": preload.max_cache_size,
        },
    }


def _safe_get(data: dict, key: str, default: Any, expected_type: type | tuple[type, ...]) -> Any:
    """Safely get a value from dict with type validation.

    Returns the default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if isinstance(value, bool) and expected_type is not bool:
        return default
    if not isinstance(value, expected_type):
        return default
    return value


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _parse_preload_config(data: dict[str, Any]) -> PreloadConfig:
    """Parse and clamp the preload section from config data."""
    raw = data.get("preload", {})
    if not isinstance(raw, dict):
        raw = {}

    chapter_count = _safe_get(raw, "chapter_count", DEFAULT_PRELOAD_CHAPTER_COUNT, int)
    trigger_progress = _safe_get(raw, "trigger_progress", DEFAULT_TRIGGER_PROGRESS, (int, float))
    max_cache_size = _safe_get(raw, "max_cache_size", DEFAULT_MAX_CACHE_SIZE, int)

    return PreloadConfig(
        enabled=_safe_get(raw, "enabled", DEFAULT_PRELOAD_ENABLED, bool),
        chapter_count=int(_clamp(chapter_count, 1, MAX_PRELOAD_CHAPTER_COUNT)),
        trigger_progress=float(_clamp(trigger_progress, 0, 100)),
        max_cache_size=int(_clamp(max_cache_size, 1, MAX_CACHE_SIZE_LIMIT)),
    )


def _dict_to_settings(data: dict[str, Any]) -> ReaderSettings:
    """Deserialize a dictionary to ReaderSettings with type validation."""
    server_url = _safe_get(data, "server_url", DEFAULT_SERVER_URL, str).strip()
    timeout = _safe_get(data, "request_timeout_seconds", READER_API_TIMEOUT, int)
    return ReaderSettings(
        server_url=server_url or DEFAULT_SERVER_URL,
        request_timeout_seconds=int(_clamp(timeout, 1, MAX_REQUEST_TIMEOUT_SECONDS)),
        preload=_parse_preload_config(data),
        version=_safe_get(data, "version", 1, int),
    )


def load_config() -> ReaderSettings:
    """Read saved settings; a missing, unreadable or malformed file yields defaults."""
    config_path = get_config_path()
    if not config_path.exists():
        return ReaderSettings()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("Ignoring %s, not valid JSON: %s", config_path, exc)
        return ReaderSettings()
    except OSError as exc:
        logger.warning("Ignoring unreadable %s: %s", config_path, exc)
        return ReaderSettings()

    if not isinstance(data, dict):
        logger.warning("Ignoring %s, top level is not an object", config_path)
        return ReaderSettings()
    return _dict_to_settings(data)


def save_config(settings: ReaderSettings) -> bool:
    """Write settings next to the existing file, then swap it into place.

    Readers of ``config.json`` see either the old or the new settings, never a
    partial file. Returns False (and logs) when the directory is not writable.
    """
    config_path = get_config_path()
    payload = json.dumps(_settings_to_dict(settings), indent=2, ensure_ascii=False)
    staged_path: Path | None = None

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=config_path.parent,
            prefix=".config-",
            suffix=".tmp",
            delete=False,
        ) as staged:
            staged_path = Path(staged.name)
            staged.write(payload)
        os.replace(staged_path, config_path)
    except OSError as exc:
        if staged_path is not None:
            staged_path.unlink(missing_ok=True)
        logger.error("Could not save settings to %s: %s", config_path, exc)
        return False
    logger.info("Saved settings to %s", config_path)
    return True


__all__ = [
    "CONFIG_APP_NAME",
    "CONFIG_FILENAME",
    "ReaderSettings",
    "get_config_path",
    "load_config",
    "save_config",
]
