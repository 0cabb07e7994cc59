"""
Selector-fallback element resolution.

Every UI interaction in the bot goes through here:
- ``resolve`` walks an ordered list of candidate selectors and returns the
  first one that becomes visible within its own timeout
- ``click`` / ``type_text`` / ``press_key`` perform the interaction and
  record an audit entry (timestamp, action, selector, context, outcome)

Candidates are probed strictly one after another, so the worst case is
``len(selectors) * timeout_ms``. Keep exploratory timeouts short.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional, Sequence

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

from tool_modules.aa_meet_relay.src.exceptions import ElementNotFoundError, InteractionError, PreconditionError

if TYPE_CHECKING:
    from tool_modules.aa_meet_relay.src.browser_controller import GoogleMeetController

logger = logging.getLogger(__name__)


@dataclass
class ResolvedElement:
    """A candidate that became visible."""

    selector: str
    index: int
    locator: Any


@dataclass
class ActionRecord:
    """One entry of the interaction audit trail."""

    action: str
    selector: str
    context: str
    outcome: str = "pending"
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "selector": self.selector,
            "context": self.context,
            "outcome": self.outcome,
            "error": self.error,
        }


class ElementResolver:
    """Finds elements by ordered candidate lists and logs every interaction.

    Uses composition: receives a reference to the GoogleMeetController
    to access page and config.
    """

    def __init__(self, controller: "GoogleMeetController"):
        self._controller = controller
        self._history: deque[ActionRecord] = deque(maxlen=controller.config.action_history_size)

    @property
    def page(self):
        page = self._controller.page
        if page is None:
            raise PreconditionError("bot not initialized")
        return page

    async def try_resolve(
        self,
        selectors: Sequence[str],
        timeout_ms: int,
        unique: bool = False,
        step: str = "",
    ) -> Optional[ResolvedElement]:
        """Return the first visible candidate, or None.

        Args:
            selectors: Candidates in order of preference
            timeout_ms: Visibility wait per candidate
            unique: Reject candidates matching more than one element
            step: Label used in log lines
        """
        page = self.page
        for index, selector in enumerate(selectors):
            locator = page.locator(selector)
            try:
                await locator.first.wait_for(state="visible", timeout=timeout_ms)
            except Exception as e:
                logger.debug(f"[RESOLVE] {step}: {selector} not visible ({type(e).__name__})")
                continue

            if unique:
                try:
                    count = await locator.count()
                except Exception as e:
                    logger.debug(f"[RESOLVE] {step}: count failed for {selector}: {e}")
                    continue
                if count != 1:
                    logger.debug(f"[RESOLVE] {step}: {selector} matched {count} elements, skipping")
                    continue
                found = locator
            else:
                found = locator.first

            logger.info(f"[RESOLVE] {step}: found {selector} (candidate {index + 1}/{len(selectors)})")
            return ResolvedElement(selector=selector, index=index, locator=found)

        return None

    async def resolve(
        self,
        selectors: Sequence[str],
        timeout_ms: int,
        unique: bool = False,
        step: str = "",
    ) -> ResolvedElement:
        """Like ``try_resolve`` but raises ElementNotFoundError when nothing matched."""
        element = await self.try_resolve(selectors, timeout_ms, unique=unique, step=step)
        if element is None:
            raise ElementNotFoundError(step or "element", selectors, timeout_ms)
        return element

    async def resolve_and_click(
        self,
        selectors: Sequence[str],
        timeout_ms: int,
        action: str,
        context: str,
        step: str = "",
    ) -> ResolvedElement:
        """Resolve a candidate and click it, moving on to later candidates if the click fails."""
        remaining = list(selectors)
        offset = 0
        last_error: Optional[InteractionError] = None

        while remaining:
            element = await self.try_resolve(remaining, timeout_ms, step=step)
            if element is None:
                break
            try:
                await self.click(element.locator, action, element.selector, context)
                element.index += offset
                return element
            except InteractionError as e:
                last_error = e
                offset += element.index + 1
                remaining = remaining[element.index + 1 :]

        if last_error is not None:
            raise last_error
        raise ElementNotFoundError(step or action, selectors, timeout_ms)

    # ==================== Logged interactions ====================

    def _begin(self, tag: str, action: str, selector: str, context: str) -> ActionRecord:
        record = ActionRecord(action=action, selector=selector, context=context)
        self._history.append(record)
        logger.info(
            f"[{tag}] {record.timestamp:%Y-%m-%d %H:%M:%S.%f} | Action: {action} | "
            f"Selector: {selector} | Context: {context}"
        )
        return record

    def _finish(self, tag: str, record: ActionRecord, error: Optional[Exception] = None) -> None:
        if error is None:
            record.outcome = "success"
            logger.info(f"[{tag}_SUCCESS] {record.action} completed successfully")
        else:
            record.outcome = "error"
            record.error = str(error)
            logger.error(f"[{tag}_ERROR] {record.action} failed: {error}")

    async def click(self, locator, action: str, selector: str, context: str, timeout_ms: Optional[int] = None) -> None:
        """Click a resolved element, raising InteractionError on failure."""
        record = self._begin("BUTTON_CLICK", action, selector, context)
        try:
            if timeout_ms is None:
                await locator.click()
            else:
                await locator.click(timeout=timeout_ms)
        except Exception as e:
            self._finish("BUTTON_CLICK", record, e)
            raise InteractionError(action, selector, str(e)) from e
        self._finish("BUTTON_CLICK", record)

    async def type_text(self, element: ResolvedElement, text: str, action: str, context: str, delay_ms: int) -> None:
        """Type into a resolved element one key at a time.

        Only the length of ``text`` is logged.
        """
        record = self._begin("TYPE_TEXT", action, element.selector, f"{context} ({len(text)} chars)")
        try:
            await element.locator.press_sequentially(text, delay=delay_ms)
        except Exception as e:
            self._finish("TYPE_TEXT", record, e)
            raise InteractionError(action, element.selector, str(e)) from e
        self._finish("TYPE_TEXT", record)

    async def press_key(self, combo: str, action: str, context: str) -> None:
        """Press a key combination on the page."""
        record = self._begin("KEYBOARD_ACTION", action, combo, context)
        try:
            await self.page.keyboard.press(combo)
        except Exception as e:
            self._finish("KEYBOARD_ACTION", record, e)
            raise InteractionError(action, combo, str(e)) from e
        self._finish("KEYBOARD_ACTION", record)

    def recent_actions(self, limit: Optional[int] = None) -> list[ActionRecord]:
        """Return the audit trail, oldest first."""
        history = list(self._history)
        if limit is not None:
            history = history[-limit:]
        return history
