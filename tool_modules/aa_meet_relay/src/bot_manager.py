"""
Meet bot manager.

Holds the one GoogleMeetController the process may have and serializes
every session operation behind a single asyncio.Lock; the browser page is
not safe for concurrent use. Speech relay takes its own lock and never
waits on the session.

Both the HTTP API and the MCP tools go through ``get_bot_manager()``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

from tool_modules.aa_meet_relay.src.audio_output import AudioRelay, RelayResult
from tool_modules.aa_meet_relay.src.browser_controller import GoogleMeetController, SessionState
from tool_modules.aa_meet_relay.src.config import MeetBotConfig, get_config
from tool_modules.aa_meet_relay.src.exceptions import InvalidInputError, PreconditionError
from tool_modules.aa_meet_relay.src.keepalive import ensure_keepalive
from tool_modules.aa_meet_relay.src.meet_join import JoinOutcome, LeaveOutcome

logger = logging.getLogger(__name__)


@dataclass
class JoinReport:
    meet_url: str
    outcome: JoinOutcome
    logged_in_before: bool
    login_ran: bool


class MeetBotManager:
    """Single-session front end for the control surfaces."""

    def __init__(
        self,
        config: Optional[MeetBotConfig] = None,
        controller_factory: Optional[Callable[[MeetBotConfig], GoogleMeetController]] = None,
        relay: Optional[AudioRelay] = None,
    ):
        self.config = config or get_config()
        self._controller_factory = controller_factory or GoogleMeetController
        self._controller: Optional[GoogleMeetController] = None
        self._lock = asyncio.Lock()
        self.relay = relay or AudioRelay(self.config.audio)

    @property
    def controller(self) -> Optional[GoogleMeetController]:
        return self._controller

    def _active(self) -> Optional[GoogleMeetController]:
        """The current controller, or None if there is none or it was closed underneath us."""
        controller = self._controller
        if controller is None:
            return None
        if controller.state in (SessionState.CLOSED, SessionState.UNINITIALIZED):
            return None
        return controller

    def _require_session(self) -> GoogleMeetController:
        controller = self._active()
        if controller is None:
            raise PreconditionError("No active bot session")
        return controller

    async def _ensure_session(self) -> GoogleMeetController:
        """Create and initialize a session if none is active. Caller holds the lock."""
        controller = self._active()
        if controller is not None:
            return controller

        logger.info("Creating new bot session")
        controller = self._controller_factory(self.config)
        self._controller = controller
        try:
            await controller.initialize()
        except Exception:
            self._controller = None
            raise
        return controller

    # ==================== Session operations ====================

    async def initialize(self) -> bool:
        """Start the keepalive companion and bring a session to READY.

        Returns:
            True if a new session was created, False if one already existed.
        """
        async with self._lock:
            await ensure_keepalive(self.config.keepalive)
            existed = self._active() is not None
            await self._ensure_session()
            return not existed

    async def join(self, meet_url: str) -> JoinReport:
        if not meet_url or not meet_url.strip():
            raise InvalidInputError("meetUrl parameter is required")
        meet_url = meet_url.strip()

        async with self._lock:
            controller = await self._ensure_session()
            if controller.state == SessionState.IN_MEETING:
                raise PreconditionError(f"already in a meeting: {controller.meeting_url}")

            logger.info(f"Processing join meeting request for URL: {meet_url}")
            logged_in = await controller.is_logged_in()
            login_ran = False
            if not logged_in:
                logger.info("Not logged in, performing Google login")
                await controller.login()
                login_ran = True

            outcome = await controller.join_meeting(meet_url)
            return JoinReport(meet_url, outcome, logged_in, login_ran)

    async def leave(self) -> LeaveOutcome:
        async with self._lock:
            return await self._require_session().leave_meeting()

    async def enable_microphone(self) -> str:
        async with self._lock:
            return await self._require_session().enable_microphone()

    async def clear_popups(self) -> int:
        async with self._lock:
            return await self._require_session().clear_popups()

    async def screenshot(self) -> bytes:
        async with self._lock:
            return await self._require_session().take_screenshot()

    async def close(self) -> None:
        async with self._lock:
            controller, self._controller = self._controller, None
            if controller is not None:
                await controller.close()

    def status(self) -> dict:
        """Snapshot of the session; does not take the lock."""
        controller = self._active()
        status = {
            "initialized": controller is not None,
            "busy": self._lock.locked(),
            "relay_active": self.relay.busy,
        }
        if controller is not None:
            status.update(controller.get_status())
        return status

    # ==================== Audio ====================

    async def speak(self, text: str) -> RelayResult:
        """Synthesize and relay speech; independent of the session lock."""
        if not text or not text.strip():
            raise InvalidInputError("text parameter is required")
        return await self.relay.speak(text)


# Global instance
_bot_manager: Optional[MeetBotManager] = None


def get_bot_manager() -> MeetBotManager:
    """Get or create the global bot manager."""
    global _bot_manager
    if _bot_manager is None:
        _bot_manager = MeetBotManager()
    return _bot_manager


def reset_bot_manager(manager: Optional[MeetBotManager] = None) -> None:
    """Replace the global manager (tests, shutdown)."""
    global _bot_manager
    _bot_manager = manager
