"""Pytest configuration and shared fixtures."""

import fnmatch
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project paths
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def setup_env():
    """Set up environment variables for testing."""
    # Save original values
    original_env = dict(os.environ)

    # Set test environment
    os.environ.setdefault("TESTING", "1")
    for key in ("GOOGLE_EMAIL", "GOOGLE_PASSWORD", "MEETBOT_HEADLESS", "MEETBOT_PIPE_PATH", "MEETBOT_STRICTNESS"):
        os.environ.pop(key, None)

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop module-level singletons between tests."""
    yield
    from tool_modules.aa_meet_relay.src import bot_manager, config

    config.reset_config()
    bot_manager.reset_bot_manager()


# ============================================================================
# Fake Playwright page
# ============================================================================


class FakeTimeout(Exception):
    """Stands in for playwright's TimeoutError."""


class FakeElement:
    """One DOM element as seen by the fake page.

    Args:
        visible: Whether the element is rendered
        visible_after_ms: How long a wait_for must allow before it shows up
        click_error: Message raised from click()
        hide_on_click: Element disappears once clicked (dismissed popups)
        on_click: Callback receiving the page, e.g. to change the URL
        text: inner_text() value
    """

    def __init__(
        self,
        visible=True,
        visible_after_ms=0,
        click_error=None,
        hide_on_click=False,
        on_click=None,
        text="",
    ):
        self.visible = visible
        self.visible_after_ms = visible_after_ms
        self.click_error = click_error
        self.hide_on_click = hide_on_click
        self.on_click = on_click
        self.text = text

    def visible_within(self, timeout_ms):
        return self.visible and self.visible_after_ms <= (timeout_ms or 0)


class FakeLocator:
    def __init__(self, page, selector, index=None):
        self.page = page
        self.selector = selector
        self.index = index

    def _elements(self):
        elements = self.page.elements.get(self.selector, [])
        if self.index is not None:
            return elements[self.index : self.index + 1]
        return elements

    @property
    def first(self):
        return FakeLocator(self.page, self.selector, 0)

    async def wait_for(self, state="visible", timeout=None):
        self.page.probes.append((self.selector, timeout))
        if not any(e.visible_within(timeout) for e in self._elements()):
            raise FakeTimeout(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    async def count(self):
        return len(self._elements())

    async def all(self):
        return [FakeLocator(self.page, self.selector, i) for i in range(len(self.page.elements.get(self.selector, [])))]

    async def is_visible(self):
        return any(e.visible_within(0) for e in self._elements())

    async def inner_text(self, timeout=None):
        elements = self._elements()
        if not elements:
            raise FakeTimeout(f"no element for {self.selector}")
        return elements[0].text

    async def click(self, timeout=None):
        elements = [e for e in self._elements() if e.visible]
        if not elements:
            raise FakeTimeout(f"Timeout {timeout}ms exceeded clicking {self.selector}")
        element = elements[0]
        if element.click_error:
            raise RuntimeError(element.click_error)
        self.page.clicks.append(self.selector)
        if element.hide_on_click:
            element.visible = False
        if element.on_click:
            element.on_click(self.page)

    async def press_sequentially(self, text, delay=None):
        self.page.typed.append((self.selector, text, delay))


class FakeKeyboard:
    def __init__(self, page):
        self.page = page

    async def press(self, combo):
        self.page.keys.append(combo)


class FakePage:
    """In-memory page implementing the driver calls the bot uses."""

    def __init__(self, url="about:blank"):
        self.url = url
        self.elements: dict[str, list[FakeElement]] = {}
        self.redirects: dict[str, str] = {}
        self.navigation_errors: dict[str, Exception] = {}
        self.visits: list[str] = []
        self.probes: list[tuple] = []
        self.clicks: list[str] = []
        self.typed: list[tuple] = []
        self.keys: list[str] = []
        self.closed = False
        self.screenshot_error = None
        self.keyboard = FakeKeyboard(self)

    def add(self, selector, *elements):
        """Register elements for a selector (one visible element by default)."""
        self.elements.setdefault(selector, []).extend(elements or [FakeElement()])
        return self

    @property
    def interactions(self):
        return len(self.clicks) + len(self.typed) + len(self.keys)

    def locator(self, selector):
        return FakeLocator(self, selector)

    def get_by_label(self, text):
        return FakeLocator(self, f"label={text}")

    async def goto(self, url, wait_until=None, timeout=None):
        self.visits.append(url)
        if url in self.navigation_errors:
            raise self.navigation_errors[url]
        self.url = self.redirects.get(url, url)

    async def wait_for_load_state(self, state=None, timeout=None):
        return None

    async def wait_for_url(self, pattern, timeout=None):
        if not fnmatch.fnmatch(self.url, pattern):
            raise FakeTimeout(f"url {self.url} did not match {pattern}")

    async def screenshot(self, **kwargs):
        if self.screenshot_error:
            raise RuntimeError(self.screenshot_error)
        self.screenshot_kwargs = kwargs
        return b"\xff\xd8fake-jpeg\xff\xd9"

    def is_closed(self):
        return self.closed


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def fast_config(tmp_path):
    """Config with real selectors and timeouts but no sleeps."""
    from tool_modules.aa_meet_relay.src.config import (
        AudioRelayConfig,
        BrowserConfig,
        GoogleAccount,
        KeepaliveConfig,
        MeetBotConfig,
        PopupConfig,
    )

    return MeetBotConfig(
        account=GoogleAccount(identifier="bot@example.com", secret="hunter2"),
        browser=BrowserConfig(launch_retry_delay=0),
        popups=PopupConfig(settle_delay=0, final_settle_delay=0),
        audio=AudioRelayConfig(
            pipe_path=tmp_path / "virtmic",
            work_dir=tmp_path / "audio",
            drain_seconds=0,
            write_poll_interval=0.001,
            write_stall_timeout=1.0,
        ),
        keepalive=KeepaliveConfig(enabled=False),
    )


def make_playwright(page, failures=0):
    """Build a playwright factory whose chromium hands out ``page``.

    Args:
        page: Page returned by the browser context
        failures: Number of launch calls that raise before one succeeds

    Returns:
        (factory, chromium) so tests can inspect launch calls.
        ``chromium.browser`` and ``chromium.playwright`` expose the mocks.
    """
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)

    browser = MagicMock()
    browser.is_connected.return_value = True
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    remaining = {"failures": failures}

    async def launch(**kwargs):
        if remaining["failures"] > 0:
            remaining["failures"] -= 1
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        return browser

    chromium = MagicMock()
    chromium.launch = AsyncMock(side_effect=launch)
    chromium.browser = browser
    chromium.context = context

    playwright = MagicMock()
    playwright.chromium = chromium
    playwright.stop = AsyncMock()
    chromium.playwright = playwright

    starter = MagicMock()
    starter.start = AsyncMock(return_value=playwright)

    return (lambda: starter), chromium


@pytest.fixture
def controller(fast_config, fake_page):
    """A controller in READY state on the fake page."""
    from tool_modules.aa_meet_relay.src.browser_controller import GoogleMeetController, SessionState

    ctrl = GoogleMeetController(config=fast_config)
    ctrl.page = fake_page
    ctrl.state = SessionState.READY
    return ctrl


@pytest.fixture
def fake_element():
    """The FakeElement class, for tests that build their own DOM."""
    return FakeElement


@pytest.fixture
def playwright_stub():
    """The make_playwright helper."""
    return make_playwright
