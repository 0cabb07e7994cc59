"""
Google Meet join / leave protocol.

Join:
1. Open the meeting; sign in and reopen if Google bounced us to a login wall
2. Sweep popups, turn camera and microphone off, sweep again
3. Click "Join now" / "Ask to join" (bounded retries)
4. Look for an in-meeting indicator

Leave:
1. Click a leave control, or fall back to the keyboard shortcut
2. Look for an exit indicator, then fall back to the URL
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from tool_modules.aa_meet_relay.src.exceptions import (
    ElementNotFoundError,
    InteractionError,
    NavigationError,
    UnconfirmedOutcomeError,
)

if TYPE_CHECKING:
    from tool_modules.aa_meet_relay.src.browser_controller import GoogleMeetController

logger = logging.getLogger(__name__)

PREJOIN_CONTEXT = "Google Meet - Pre-join Setup"
JOIN_CONTEXT = "Google Meet - Join Meeting"
LEAVE_CONTEXT = "Google Meet - Leave Meeting"
CONTROLS_CONTEXT = "Google Meet - Meeting Controls"


class JoinOutcome(str, Enum):
    CONFIRMED = "confirmed"
    UNCLEAR = "unclear"


class LeaveOutcome(str, Enum):
    EXIT_INDICATOR = "exit_indicator"
    URL_CHANGED = "url_changed"
    UNCLEAR = "unclear"


class MeetJoin:
    """Joins and leaves Google Meet meetings.

    Uses composition: receives a reference to the GoogleMeetController
    to access page, config, resolver and popup sweeper.
    """

    SELECTORS = {
        "camera_off": (
            "div[data-tooltip*='camera']",
            "button[aria-label*='camera']",
            "div[aria-label*='Turn off camera']",
            "button[data-tooltip*='Turn off camera']",
        ),
        "microphone_off": (
            "div[data-tooltip*='microphone']",
            "button[aria-label*='microphone']",
            "div[aria-label*='Turn off microphone']",
            "button[data-tooltip*='Turn off microphone']",
        ),
        "join_button": (
            "button:has-text('Join now')",
            "div[role='button']:has-text('Join now')",
            "button:has-text('Ask to join')",
            "div[role='button']:has-text('Ask to join')",
            "button[aria-label*='Join']",
            "div[data-tooltip*='Join']",
        ),
        "in_meeting": (
            "div[data-allocation-index]",
            "div[jsname='HzV7m']",
            "button[aria-label*='Leave call']",
            "div[aria-label*='You joined']",
        ),
        "leave_button": (
            "button[aria-label*='Leave call']",
            "div[data-tooltip*='Leave call']",
            "button[aria-label*='End call']",
            "div[data-tooltip*='End call']",
            "button:has-text('Leave call')",
            "div[role='button']:has-text('Leave call')",
            "button[jsname='CQylAd']",
            "div[jsname='CQylAd']",
        ),
        "left_meeting": (
            "text=You left the meeting",
            "text=Call ended",
            "text=Meeting ended",
            "div[aria-label*='left the meeting']",
            "button:has-text('Rejoin')",
            "div:has-text('Thanks for joining')",
        ),
        "microphone_on": (
            "button[aria-label*='Turn on microphone']",
            "div[data-tooltip*='Turn on microphone']",
            "button[aria-label*='Unmute']",
            "div[aria-label*='Unmute']",
        ),
    }

    def __init__(self, controller: "GoogleMeetController"):
        self._controller = controller

    @property
    def page(self):
        return self._controller.page

    @property
    def config(self):
        return self._controller.config

    @property
    def resolver(self):
        return self._controller.resolver

    @property
    def sweeper(self):
        return self._controller.sweeper

    @staticmethod
    def is_auth_wall(url: str) -> bool:
        return "accounts.google.com" in url and "signin" in url

    async def join(self, meet_url: str) -> JoinOutcome:
        """
        Join a meeting from the current page.

        Raises:
            NavigationError: The meeting page could not be opened.
            ElementNotFoundError / InteractionError: The join control could not
                be clicked within the retry bound.
            UnconfirmedOutcomeError: Strict mode and no in-meeting indicator.
        """
        settings = self.config.join

        logger.info(f"[JOIN] Navigating to {meet_url}")
        await self._open(meet_url)

        if self.is_auth_wall(self.page.url):
            logger.info("[JOIN] Redirected to Google sign-in, logging in first")
            await self._controller._run_login()
            await self._open(meet_url)

        await self.sweeper.sweep()

        await self._toggle_off("camera_off", "TOGGLE_CAMERA_OFF", "camera")
        await self._toggle_off("microphone_off", "TOGGLE_MIC_OFF", "microphone")

        # Toggling devices can raise fresh permission prompts
        await self.sweeper.sweep()

        await self._click_join(settings.join_attempts)

        indicator = await self.resolver.try_resolve(
            self.SELECTORS["in_meeting"], settings.confirm_timeout_ms, step="meeting indicator"
        )
        if indicator is not None:
            logger.info(f"[JOIN] Successfully joined meeting (indicator: {indicator.selector})")
            return JoinOutcome.CONFIRMED

        if self.config.strict:
            raise UnconfirmedOutcomeError("meeting join")
        logger.warning("[JOIN] Meeting join status unclear")
        return JoinOutcome.UNCLEAR

    async def _open(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="networkidle")
        except Exception as e:
            logger.error(f"[JOIN] Failed to navigate to {url}: {e}")
            raise NavigationError("meeting URL", url, str(e)) from e
        try:
            await self.page.wait_for_load_state("networkidle")
        except Exception as e:
            logger.debug(f"[JOIN] Network did not go idle: {e}")

    async def _toggle_off(self, key: str, action: str, label: str) -> None:
        """Best effort; a missing control means the device is already off."""
        element = await self.resolver.try_resolve(
            self.SELECTORS[key], self.config.join.toggle_timeout_ms, step=f"{label} toggle"
        )
        if element is None:
            logger.info(f"[JOIN] No {label} control found, assuming already off")
            return
        try:
            await self.resolver.click(element.locator, action, element.selector, PREJOIN_CONTEXT)
        except InteractionError as e:
            logger.warning(f"[JOIN] Could not turn off {label}: {e.error}")

    async def _click_join(self, attempts: int) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                element = await self.resolver.resolve_and_click(
                    self.SELECTORS["join_button"],
                    self.config.join.join_timeout_ms,
                    "JOIN_MEETING",
                    JOIN_CONTEXT,
                    step="join button",
                )
                logger.info(f"[JOIN] Clicked join ({element.selector}) on attempt {attempt}/{attempts}")
                return
            except (ElementNotFoundError, InteractionError) as e:
                last_error = e
                logger.warning(f"[JOIN] Join attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    await self.sweeper.sweep()

        raise last_error or ElementNotFoundError("join button", self.SELECTORS["join_button"])

    async def leave(self) -> LeaveOutcome:
        """
        Leave the current meeting.

        Falls back to the leave shortcut when no leave control can be clicked.
        An unconfirmed exit is only a warning unless strict mode is on.
        """
        settings = self.config.join

        try:
            element = await self.resolver.resolve_and_click(
                self.SELECTORS["leave_button"],
                settings.leave_timeout_ms,
                "LEAVE_MEETING",
                LEAVE_CONTEXT,
                step="leave button",
            )
            logger.info(f"[LEAVE] Clicked leave control {element.selector}")
        except (ElementNotFoundError, InteractionError) as e:
            logger.info(f"[LEAVE] No leave control clicked ({e}), using {settings.leave_shortcut}")
            await self.resolver.press_key(settings.leave_shortcut, "LEAVE_MEETING_SHORTCUT", LEAVE_CONTEXT)

        indicator = await self.resolver.try_resolve(
            self.SELECTORS["left_meeting"], settings.exit_timeout_ms, step="exit indicator"
        )
        if indicator is not None:
            logger.info(f"[LEAVE] Left meeting (indicator: {indicator.selector})")
            return LeaveOutcome.EXIT_INDICATOR

        url = self.page.url
        if settings.meet_host not in url or "thanks" in url or "feedback" in url:
            logger.info(f"[LEAVE] Left meeting (now at {url})")
            return LeaveOutcome.URL_CHANGED

        if self.config.strict:
            raise UnconfirmedOutcomeError("meeting exit")
        logger.warning("[LEAVE] Meeting exit status unclear")
        return LeaveOutcome.UNCLEAR

    async def enable_microphone(self) -> str:
        """Unmute; returns the selector that was clicked."""
        element = await self.resolver.resolve_and_click(
            self.SELECTORS["microphone_on"],
            self.config.join.microphone_timeout_ms,
            "ENABLE_MICROPHONE",
            CONTROLS_CONTEXT,
            step="microphone button",
        )
        logger.info(f"[MIC] Microphone enabled via {element.selector}")
        return element.selector
