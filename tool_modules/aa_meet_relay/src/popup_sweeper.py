"""
Interstitial popup sweeping.

Google Meet and Chrome stack up permission prompts, "Got it" banners and
phone-audio offers that block the controls we need. A sweep walks a fixed
catalogue of patterns and clicks every visible match.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tool_modules.aa_meet_relay.src.exceptions import InteractionError

if TYPE_CHECKING:
    from tool_modules.aa_meet_relay.src.browser_controller import GoogleMeetController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PopupCategory:
    name: str
    selectors: tuple[str, ...]


def _buttons(*labels: str) -> tuple[str, ...]:
    return tuple(f"button:has-text('{label}')" for label in labels)


POPUP_CATALOGUE: tuple[PopupCategory, ...] = (
    PopupCategory(
        "permission",
        (
            "button:has-text('Allow')",
            "button:has-text('Block')",
            "div[role='button']:has-text('Allow')",
            "div[role='button']:has-text('Block')",
        ),
    ),
    PopupCategory(
        "informational",
        _buttons("Got it", "Dismiss", "OK", "Close", "Continue", "Next", "Skip", "Not now", "Maybe later"),
    ),
    PopupCategory(
        "generic_close",
        ("[aria-label='Close']", "[aria-label='Dismiss']", "button[data-dismiss]", ".close-button"),
    ),
    PopupCategory(
        "meet_phone_audio",
        (
            "button:has-text('Use a phone for audio')",
            "button:has-text('Join and use a phone')",
            'button:has-text("Don\'t use a phone")',
            "button:has-text('Use a phone')",
        ),
    ),
    PopupCategory(
        "browser_notifications",
        (
            "button:has-text('Turn on')",
            "button:has-text('Turn off')",
            "div[role='button']:has-text('Turn on')",
            "div[role='button']:has-text('Turn off')",
        ),
    ),
    PopupCategory(
        "modal_close",
        (
            "button[aria-label*='close']",
            "button[aria-label*='dismiss']",
            "div[role='button'][aria-label*='close']",
            "div[role='button'][aria-label*='dismiss']",
        ),
    ),
)


class PopupSweeper:
    """Dismisses every visible popup in the catalogue.

    Failures on a single popup are logged and skipped; a sweep never raises.
    """

    def __init__(self, controller: "GoogleMeetController", catalogue: tuple[PopupCategory, ...] = POPUP_CATALOGUE):
        self._controller = controller
        self.catalogue = catalogue

    @property
    def page(self):
        return self._controller.page

    @property
    def config(self):
        return self._controller.config

    async def sweep(self) -> int:
        """Run one sweep over the whole catalogue.

        Returns:
            Number of popups clicked.
        """
        settings = self.config.popups
        resolver = self._controller.resolver
        clicked = 0

        logger.info("[POPUP_CLEARING] Sweeping for popups...")

        for category in self.catalogue:
            for selector in category.selectors:
                try:
                    matches = await self.page.locator(selector).all()
                except Exception as e:
                    logger.debug(f"[POPUP_CLEARING] Lookup failed for {selector}: {e}")
                    continue

                for element in matches:
                    try:
                        if not await element.is_visible():
                            continue
                    except Exception as e:
                        logger.debug(f"[POPUP_CLEARING] Visibility check failed for {selector}: {e}")
                        continue

                    try:
                        await resolver.click(
                            element,
                            "DISMISS_POPUP",
                            selector,
                            f"Popup Sweep - {category.name}",
                            timeout_ms=settings.click_timeout_ms,
                        )
                    except InteractionError:
                        continue

                    clicked += 1
                    await asyncio.sleep(settings.settle_delay)

        await asyncio.sleep(settings.final_settle_delay)

        if clicked:
            logger.info(f"[POPUP_CLEARING] Dismissed {clicked} popup(s)")
        else:
            logger.debug("[POPUP_CLEARING] No popups found")
        return clicked
