"""Centralized Configuration Manager.

Provides thread-safe, read-only access to config.json with:
- Shared file locking for cross-process safety (fcntl.flock)
- Automatic cache invalidation via mtime checking
- Schema validation of the ``meet_bot`` section
- Section-based API for clean access patterns

The bot only reads its configuration; operators edit config.json by hand.
MEETBOT_CONFIG points at an alternative file.

Usage:
    from server.config_manager import config

    meet_bot = config.get("meet_bot")
    headless = config.get("meet_bot", "headless", default=False)

    errors = config.validate()
"""

import fcntl
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Project root (this file is at server/config_manager.py)
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_FILE = Path(os.environ.get("MEETBOT_CONFIG", PROJECT_ROOT / "config.json")).expanduser()


# ==================== Config Validation ====================


# Expected types for the meet_bot section and its sub-sections
# Format: {section: {key: type}}
CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "meet_bot": {
        "strictness": str,
        "action_history_size": int,
        "browser": dict,
        "login": dict,
        "join": dict,
        "popups": dict,
        "audio": dict,
        "keepalive": dict,
    },
    "meet_bot.browser": {
        "headless": bool,
        "args": list,
        "fallback_args": list,
        "launch_timeout_ms": int,
        "launch_attempts": int,
        "launch_retry_delay": (int, float),
        "screenshot_quality": int,
    },
    "meet_bot.join": {
        "join_attempts": int,
        "meet_host": str,
    },
    "meet_bot.popups": {
        "settle_delay": (int, float),
        "final_settle_delay": (int, float),
    },
    "meet_bot.audio": {
        "pipe_path": str,
        "work_dir": str,
        "chunk_size": int,
        "drain_seconds": (int, float),
        "tts_backend": str,
    },
    "meet_bot.keepalive": {
        "enabled": bool,
        "script_path": str,
    },
}

STRICTNESS_VALUES = ("lenient", "strict")
TTS_BACKENDS = ("espeak", "piper")


def _lookup(config: dict[str, Any], dotted: str) -> Any:
    node: Any = config
    for part in dotted.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def validate_config(config: dict[str, Any]) -> list[str]:
    """Validate config against schema.

    Args:
        config: Config dict to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors: list[str] = []

    for section, schema in CONFIG_SCHEMA.items():
        section_data = _lookup(config, section)
        if section_data is None:
            continue
        if not isinstance(section_data, dict):
            errors.append(f"Section '{section}' must be a dict, got {type(section_data).__name__}")
            continue

        for key, expected_type in schema.items():
            if key not in section_data:
                continue
            value = section_data[key]
            # bool is an int subclass; don't accept it where a number is expected
            if value is not None and (
                not isinstance(value, expected_type) or (isinstance(value, bool) and expected_type is not bool)
            ):
                names = expected_type.__name__ if isinstance(expected_type, type) else "number"
                errors.append(
                    f"Invalid type for {section}.{key}: expected {names}, got {type(value).__name__}"
                )

    strictness = _lookup(config, "meet_bot.strictness")
    if isinstance(strictness, str) and strictness.lower() not in STRICTNESS_VALUES:
        errors.append(f"meet_bot.strictness must be one of {STRICTNESS_VALUES}, got {strictness!r}")

    backend = _lookup(config, "meet_bot.audio.tts_backend")
    if isinstance(backend, str) and backend not in TTS_BACKENDS:
        errors.append(f"meet_bot.audio.tts_backend must be one of {TTS_BACKENDS}, got {backend!r}")

    attempts = _lookup(config, "meet_bot.browser.launch_attempts")
    if isinstance(attempts, int) and not isinstance(attempts, bool) and attempts < 1:
        errors.append("meet_bot.browser.launch_attempts must be at least 1")

    return errors


class ConfigManager:
    """Thread-safe configuration reader.

    Singleton pattern ensures one manager per process.
    Cross-process safety via shared file locking.
    """

    _instance: "ConfigManager | None" = None
    _instance_lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        """Singleton pattern - one instance per process."""
        with cls._instance_lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._initialized = False
                cls._instance = instance
            return cls._instance

    def __init__(self):
        """Initialize the config manager (only runs once due to singleton)."""
        if getattr(self, "_initialized", False):
            return

        self._lock = threading.RLock()
        self._cache: dict[str, Any] = {}
        self._last_mtime: float = 0.0
        self._initialized = True

        self._load()

        logger.debug(f"ConfigManager initialized from {CONFIG_FILE}")

    def _load(self) -> None:
        """Load config from disk (internal, no lock)."""
        try:
            if CONFIG_FILE.exists():
                with open(CONFIG_FILE) as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                    try:
                        self._cache = json.load(f)
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                self._last_mtime = CONFIG_FILE.stat().st_mtime
                logger.debug(f"Config loaded, {len(self._cache)} sections")
            else:
                self._cache = {}
                self._last_mtime = 0.0
                logger.debug(f"Config file not found, using defaults: {CONFIG_FILE}")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {CONFIG_FILE.name}: {e}")
            self._cache = {}
        except OSError as e:
            logger.error(f"Failed to read {CONFIG_FILE.name}: {e}")
            self._cache = {}

    def _check_reload(self) -> None:
        """Reload if the file was modified externally (internal, no lock)."""
        try:
            if CONFIG_FILE.exists():
                current_mtime = CONFIG_FILE.stat().st_mtime
                if current_mtime > self._last_mtime:
                    logger.info("Config file changed externally, reloading")
                    self._load()
        except OSError as e:
            logger.debug(f"Could not stat {CONFIG_FILE}: {e}")

    # ==================== Public API ====================

    def get(self, section: str, key: str | None = None, default: Any = None) -> Any:
        """Get a config value.

        Args:
            section: Top-level section name (e.g., "meet_bot")
            key: Optional key within section. If None, returns entire section.
            default: Default value if not found

        Returns:
            Config value or default
        """
        with self._lock:
            self._check_reload()

            section_data = self._cache.get(section)
            if section_data is None:
                return default

            if key is None:
                return section_data

            if isinstance(section_data, dict):
                return section_data.get(key, default)

            return default

    def validate(self) -> list[str]:
        """Validate the current config against the schema.

        Returns:
            List of validation error messages (empty if valid)
        """
        with self._lock:
            self._check_reload()
            return validate_config(self._cache)


# Global singleton instance for convenient access
config = ConfigManager()


def get_section_config(section: str, default: dict | None = None) -> dict:
    """Get a config section as a dict.

    Args:
        section: Section name
        default: Default value if section not found

    Returns:
        Section dictionary
    """
    result = config.get(section)
    if isinstance(result, dict):
        return result
    return default or {}
