"""
Keepalive companion process.

The deployment ships a ``keepalive.sh`` that keeps the virtual audio
plumbing alive next to the browser. Bot initialization starts it once.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from tool_modules.aa_meet_relay.src.config import KeepaliveConfig
from tool_modules.aa_meet_relay.src.exceptions import KeepaliveError

logger = logging.getLogger(__name__)


async def is_running(script_path: Path, timeout: float = 5.0) -> bool:
    """True if a process whose command line mentions the script is alive."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "pgrep",
            "-f",
            script_path.name,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError as e:
        logger.warning(f"[KEEPALIVE] Could not check for {script_path.name}: {e}")
        return False

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning(f"[KEEPALIVE] pgrep timed out after {timeout}s looking for {script_path.name}")
        return False
    return proc.returncode == 0 and bool(stdout.strip())


async def ensure_keepalive(settings: KeepaliveConfig) -> Optional[int]:
    """Start the keepalive script unless it is already running.

    Returns:
        PID of the started process, or None when nothing was started.

    Raises:
        KeepaliveError: The script exists but could not be spawned.
    """
    if not settings.enabled:
        return None

    script = Path(settings.script_path)
    if await is_running(script):
        logger.info(f"[KEEPALIVE] {script.name} already running")
        return None

    if not script.exists():
        logger.warning(f"[KEEPALIVE] {script} not found, skipping")
        return None

    try:
        proc = await asyncio.create_subprocess_exec("/bin/bash", str(script), cwd=str(script.parent))
    except OSError as e:
        raise KeepaliveError(f"Failed to start keepalive script: {e}") from e

    logger.info(f"[KEEPALIVE] Started {script.name} with PID {proc.pid}")
    return proc.pid
