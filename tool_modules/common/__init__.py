"""Shared bootstrap for the bot's tool modules.

Tool modules import ``server.*`` (errors, paths, config) even when they are
loaded directly by file path, so the repository root has to be importable:

    from tool_modules.common import PROJECT_ROOT

    from server.errors import tool_error, tool_success
"""

import sys
from pathlib import Path

# tool_modules/common/__init__.py -> repository root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def setup_path() -> bool:
    """Put the repository root at the front of sys.path.

    Returns:
        True if the path was added, False if it was already present
    """
    root = str(PROJECT_ROOT)
    if root in sys.path:
        return False
    sys.path.insert(0, root)
    return True


setup_path()
