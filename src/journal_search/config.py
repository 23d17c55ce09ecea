"""Configuration persistence: load and save user preferences."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from journal_search.models import (
    CONFIG_APP_NAME,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    PAGE_SIZE_OPTIONS,
    SORT_OPTIONS,
    UserConfig,
)

logger = logging.getLogger(__name__)

# Validation contract: _dict_to_config() guarantees valid output for any input:
#
#   Field        Rule                          Handler
#   ───────────  ────────────────────────────  ─────────────────────
#   page_size    in PAGE_SIZE_OPTIONS          _coerce_page_size
#   sort         key of SORT_OPTIONS           _coerce_sort
#   scalars      type-checked via _safe_get()  _dict_to_config
#
CONFIG_FILENAME = "config.json"


def get_config_path() -> Path:
    """Get the path to the configuration file.

    Uses platformdirs for cross-platform config directory:
    - Linux: ~/.config/openalex-journal-search/config.json
    - macOS: ~/Library/Application Support/openalex-journal-search/config.json
    - Windows: %APPDATA%/openalex-journal-search/config.json
    """
    config_dir = Path(user_config_dir(CONFIG_APP_NAME))
    return config_dir / CONFIG_FILENAME


def _safe_get(data: dict, key: str, default: Any, expected_type: type) -> Any:
    """Safely get a value from dict with type validation.

    Returns the default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if not isinstance(value, expected_type):
        return default
    return value


def _coerce_page_size(value: Any) -> int:
    """Validate the configured results page size."""
    if isinstance(value, bool) or not isinstance(value, int) or value not in PAGE_SIZE_OPTIONS:
        return DEFAULT_PAGE_SIZE
    return value


def _coerce_sort(value: Any) -> str:
    """Validate the configured sort order."""
    if not isinstance(value, str) or value not in SORT_OPTIONS:
        return DEFAULT_SORT
    return value


def _config_to_dict(config: UserConfig) -> dict[str, Any]:
    """Serialize UserConfig to a JSON-compatible dictionary."""
    return {
        "version": config.version,
        "api_key": config.api_key,
        "journals_path": config.journals_path,
        "export_dir": config.export_dir,
        "page_size": _coerce_page_size(config.page_size),
        "sort": _coerce_sort(config.sort),
    }


def _dict_to_config(data: dict[str, Any]) -> UserConfig:
    """Deserialize a dictionary to UserConfig with type validation."""
    return UserConfig(
        api_key=_safe_get(data, "api_key", "", str).strip(),
        journals_path=_safe_get(data, "journals_path", "", str),
        export_dir=_safe_get(data, "export_dir", "", str),
        page_size=_coerce_page_size(data.get("page_size", DEFAULT_PAGE_SIZE)),
        sort=_coerce_sort(data.get("sort", DEFAULT_SORT)),
        version=_safe_get(data, "version", 1, int),
    )


def load_config() -> UserConfig:
    """Load configuration from disk.

    Returns default config if file doesn't exist or is corrupted.
    Logs specific errors to help diagnose config issues.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return UserConfig()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Config file has invalid JSON, using defaults: %s", e)
        return UserConfig(config_defaulted=True)
    except OSError as e:
        logger.warning("Could not read config file, using defaults: %s", e)
        return UserConfig(config_defaulted=True)

    if not isinstance(data, dict):
        logger.warning("Config file root is not an object, using defaults")
        return UserConfig(config_defaulted=True)
    return _dict_to_config(data)


def save_config(config: UserConfig) -> bool:
    """Save configuration to disk atomically.

    Uses write-to-tempfile + os.replace() to prevent partial writes
    on crash/interrupt from corrupting the config file.

    Creates the config directory if it doesn't exist.
    Returns True on success, False on failure.
    """
    config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = _config_to_dict(config)
        json_str = json.dumps(data, indent=2, ensure_ascii=False)
        fd, tmp_path = tempfile.mkstemp(dir=config_path.parent, suffix=".tmp", prefix=".config-")
        closed = False
        try:
            os.write(fd, json_str.encode("utf-8"))
            os.close(fd)
            closed = True
            os.replace(tmp_path, config_path)
        except BaseException:
            if not closed:
                os.close(fd)
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return True
    except OSError as e:
        logger.error("Failed to save config: %s", e)
        return False


def get_journals_path(config: UserConfig) -> Path | None:
    """Return the configured journal dataset path, or None for the bundled one."""
    if not config.journals_path:
        return None
    return Path(config.journals_path).expanduser()


__all__ = [
    "CONFIG_APP_NAME",
    "CONFIG_FILENAME",
    "get_config_path",
    "get_journals_path",
    "load_config",
    "save_config",
]
