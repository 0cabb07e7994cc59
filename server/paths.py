"""Centralized path definitions for bot state.

All application state is stored under ~/.config/meet-relay-bot/ following
XDG conventions. MEETBOT_DATA_DIR overrides the location.

Usage:
    from server.paths import MEETBOT_SCREENSHOTS_DIR, ensure_data_dirs
"""

import os
from pathlib import Path

# Base directory for all state
MEETBOT_DATA_DIR = Path(os.environ.get("MEETBOT_DATA_DIR", Path.home() / ".config" / "meet-relay-bot")).expanduser()

# Screenshots saved by the MCP screenshot tool
MEETBOT_SCREENSHOTS_DIR = MEETBOT_DATA_DIR / "screenshots"


def ensure_data_dirs() -> None:
    """Create the state directories if they don't exist.

    Call this explicitly before writing; nothing is created on import.
    """
    MEETBOT_SCREENSHOTS_DIR.mkdir(parents=True, exist_ok=True)
