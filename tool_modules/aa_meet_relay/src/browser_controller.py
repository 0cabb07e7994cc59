"""
Browser Controller for Google Meet.

Owns the single Playwright browser session and its lifecycle:

    UNINITIALIZED -> INITIALIZING -> READY -> IN_MEETING -> LEFT
                                        any state -> CLOSED

Every public operation checks the current state first and raises
PreconditionError instead of touching the browser when it does not apply.
``logged_in`` is a flag layered on READY, not a separate state.

The controller does no locking of its own; callers serialize access
(see bot_manager.MeetBotManager).
"""

import asyncio
import logging
import os
from enum import Enum
from typing import Callable, Optional

from playwright.async_api import async_playwright

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

from tool_modules.aa_meet_relay.src.config import MeetBotConfig, get_config
from tool_modules.aa_meet_relay.src.element_resolver import ElementResolver
from tool_modules.aa_meet_relay.src.exceptions import (
    BrowserClosedError,
    InteractionError,
    InvalidInputError,
    LaunchError,
    PreconditionError,
)
from tool_modules.aa_meet_relay.src.meet_join import JoinOutcome, LeaveOutcome, MeetJoin
from tool_modules.aa_meet_relay.src.meet_sign_in import LoginOutcome, MeetSignIn
from tool_modules.aa_meet_relay.src.popup_sweeper import PopupSweeper

logger = logging.getLogger(__name__)

# Playwright error texts that mean the page or browser is gone
BROWSER_CLOSED_MARKERS = (
    "Target page, context or browser has been closed",
    "Target closed",
    "Browser has been closed",
)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    IN_MEETING = "in_meeting"
    LEFT = "left"
    CLOSED = "closed"


# States in which a browser page exists
ACTIVE_STATES = frozenset({SessionState.READY, SessionState.IN_MEETING, SessionState.LEFT})
# States from which the page may navigate away without dropping a meeting
IDLE_STATES = frozenset({SessionState.READY, SessionState.LEFT})


class GoogleMeetController:
    """Controls a Google Meet session via browser automation."""

    def __init__(
        self,
        config: Optional[MeetBotConfig] = None,
        playwright_factory: Optional[Callable] = None,
    ):
        self.config = config or get_config()
        self._playwright_factory = playwright_factory or async_playwright
        self._playwright = None
        self.browser = None
        self.context = None
        self.page = None

        self.state = SessionState.UNINITIALIZED
        self.logged_in = False
        self.meeting_url: Optional[str] = None
        self._browser_closed = False
        self._cleanup_task: Optional[asyncio.Task] = None

        # Composed subsystems
        self.resolver = ElementResolver(self)
        self.sweeper = PopupSweeper(self)
        self._sign_in = MeetSignIn(self)
        self._meet = MeetJoin(self)

    def _require(self, operation: str, allowed: frozenset) -> None:
        if self.state in allowed:
            return
        if self.state in (SessionState.UNINITIALIZED, SessionState.CLOSED):
            raise PreconditionError(f"bot not initialized (cannot {operation})")
        raise PreconditionError(f"cannot {operation} while session is {self.state.value}")

    # ==================== Lifecycle ====================

    async def initialize(self) -> None:
        """Launch the browser, open a context and page, and run a liveness probe.

        Idempotent once READY. Any failure releases what was acquired,
        leaves the session UNINITIALIZED and raises LaunchError.
        """
        if self.state in ACTIVE_STATES:
            logger.debug("[BROWSER_INIT] Already initialized")
            return
        if self.state == SessionState.CLOSED:
            raise PreconditionError("session has been closed")
        if self.state == SessionState.INITIALIZING:
            raise PreconditionError("initialization already in progress")

        settings = self.config.browser
        self.state = SessionState.INITIALIZING
        self._browser_closed = False

        try:
            self._playwright = await self._playwright_factory().start()
            self.browser = await self._launch_browser()
            self.browser.on("disconnected", self._on_browser_disconnected)

            logger.info("[BROWSER_INIT] Testing browser connection...")
            if not self.browser.is_connected():
                raise LaunchError("browser disconnected immediately after launch")

            if os.environ.get("PULSE_SERVER"):
                logger.info("[BROWSER_INIT] PulseAudio server configured, media will route through it")

            logger.info("[BROWSER_INIT] Creating browser context...")
            self.context = await self.browser.new_context(permissions=list(settings.permissions))

            logger.info("[BROWSER_INIT] Creating new page...")
            self.page = await self.context.new_page()

            logger.info("[BROWSER_INIT] Testing page with simple navigation...")
            await self.page.goto(settings.probe_url, wait_until="load", timeout=settings.probe_timeout_ms)

        except Exception as e:
            logger.error(f"[BROWSER_INIT] Initialization failed: {e}")
            await self._release()
            self.state = SessionState.UNINITIALIZED
            if isinstance(e, LaunchError):
                raise
            raise LaunchError(f"browser initialization failed: {e}") from e

        self.state = SessionState.READY
        logger.info("[BROWSER_INIT] Browser initialized successfully")
        logger.info(f"[BROWSER_INIT] Virtual microphone path: {self.config.audio.pipe_path}")
        logger.info(f"[BROWSER_INIT] PulseAudio server: {os.environ.get('PULSE_SERVER', '')}")

    async def _launch_browser(self):
        """Launch Chromium with the full option set, retrying, then the reduced fallback set."""
        settings = self.config.browser
        chromium = self._playwright.chromium

        for attempt in range(1, settings.launch_attempts + 1):
            logger.info(f"[BROWSER_INIT] Launch attempt {attempt}/{settings.launch_attempts}")
            try:
                browser = await chromium.launch(
                    headless=settings.headless,
                    args=list(settings.args),
                    timeout=settings.launch_timeout_ms,
                )
                logger.info(f"[BROWSER_INIT] Launch attempt {attempt} successful")
                return browser
            except Exception as e:
                logger.warning(f"[BROWSER_INIT] Attempt {attempt} failed: {e}")
                if attempt < settings.launch_attempts:
                    logger.info(f"[BROWSER_INIT] Waiting {settings.launch_retry_delay}s before retry...")
                    await asyncio.sleep(settings.launch_retry_delay)

        logger.warning("[BROWSER_INIT] All attempts failed, trying minimal fallback...")
        try:
            browser = await chromium.launch(
                headless=settings.headless,
                args=list(settings.fallback_args),
                timeout=settings.launch_timeout_ms,
            )
        except Exception as e:
            raise LaunchError(
                f"failed to launch chromium after {settings.launch_attempts} attempts and fallback: {e}"
            ) from e
        logger.info("[BROWSER_INIT] Fallback launch successful")
        return browser

    def _on_browser_disconnected(self, *_args) -> None:
        """Playwright ``disconnected`` callback.

        This is a sync callback, so the async cleanup is scheduled.
        """
        if self.state == SessionState.CLOSED:
            logger.debug("[BROWSER] Browser disconnected after close")
            return

        logger.error("[BROWSER_ERROR] Browser disconnected unexpectedly!")
        self._browser_closed = True
        if self.state in ACTIVE_STATES:
            self.state = SessionState.CLOSED
            self.meeting_url = None
            try:
                loop = asyncio.get_running_loop()
                self._cleanup_task = loop.create_task(self._release())
            except RuntimeError:
                logger.warning("[BROWSER_ERROR] No event loop for async cleanup")

    async def _release(self) -> None:
        """Close the browser and stop Playwright, ignoring errors."""
        browser, self.browser = self.browser, None
        self.context = None
        self.page = None

        if browser is not None:
            try:
                await asyncio.wait_for(browser.close(), timeout=self.config.browser.close_timeout)
            except asyncio.TimeoutError:
                logger.warning("Timeout closing browser")
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")

        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            try:
                await asyncio.wait_for(playwright.stop(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Timeout stopping playwright")
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")

    async def close(self) -> None:
        """Release browser resources. Later operations fail as not initialized."""
        logger.info(f"Closing browser controller (state={self.state.value})...")
        # Mark closed first so the disconnected callback sees a deliberate close
        self.state = SessionState.CLOSED
        self._browser_closed = True
        self.logged_in = False
        self.meeting_url = None
        await self._release()
        logger.info("Browser closed")

    def is_browser_closed(self) -> bool:
        """Check if the browser has gone away underneath us."""
        if self._browser_closed:
            return True
        try:
            if self.page is None or self.page.is_closed():
                return True
        except Exception as e:
            logger.warning(f"is_browser_closed: exception during check: {e}")
            return True
        return False

    # ==================== Account ====================

    async def login(self) -> LoginOutcome:
        """Run the Google sign-in flow. State stays READY either way."""
        self._require("login", IDLE_STATES)
        return await self._run_login()

    async def _run_login(self) -> LoginOutcome:
        outcome = await self._sign_in.sign_in()
        self.logged_in = True
        return outcome

    async def is_logged_in(self) -> bool:
        """Probe the accounts page for an existing Google session."""
        self._require("check login", IDLE_STATES)
        self.logged_in = await self._sign_in.is_logged_in()
        return self.logged_in

    # ==================== Meeting ====================

    async def join_meeting(self, meet_url: str) -> JoinOutcome:
        """Join a meeting; the session is IN_MEETING on return."""
        self._require("join a meeting", IDLE_STATES)
        if not meet_url or not meet_url.strip():
            raise InvalidInputError("meetUrl parameter is required")

        meet_url = meet_url.strip()
        outcome = await self._meet.join(meet_url)
        self.state = SessionState.IN_MEETING
        self.meeting_url = meet_url
        return outcome

    async def leave_meeting(self) -> LeaveOutcome:
        """Leave the meeting; the session is LEFT on return."""
        self._require("leave the meeting", ACTIVE_STATES)
        outcome = await self._meet.leave()
        self.state = SessionState.LEFT
        self.meeting_url = None
        return outcome

    async def enable_microphone(self) -> str:
        self._require("enable the microphone", ACTIVE_STATES)
        return await self._meet.enable_microphone()

    async def clear_popups(self) -> int:
        self._require("clear popups", ACTIVE_STATES)
        return await self.sweeper.sweep()

    async def take_screenshot(self) -> bytes:
        """
        Capture the visible viewport as JPEG.

        Raises:
            BrowserClosedError: If the browser/page has been closed.
        """
        self._require("take a screenshot", ACTIVE_STATES)
        try:
            image = await self.page.screenshot(
                full_page=False, type="jpeg", quality=self.config.browser.screenshot_quality
            )
        except Exception as e:
            error_msg = str(e)
            if any(marker in error_msg for marker in BROWSER_CLOSED_MARKERS):
                logger.error("[SCREENSHOT] Browser was closed unexpectedly!")
                self._browser_closed = True
                self.state = SessionState.CLOSED
                raise BrowserClosedError("Browser was closed") from e
            raise InteractionError("SCREENSHOT", "viewport", error_msg) from e

        logger.debug(f"[SCREENSHOT] Captured {len(image)} bytes")
        return image

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "logged_in": self.logged_in,
            "meeting_url": self.meeting_url,
            "browser_closed": self.is_browser_closed() if self.state in ACTIVE_STATES else None,
        }
