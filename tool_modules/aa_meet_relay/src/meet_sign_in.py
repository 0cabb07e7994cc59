"""
Google Account Sign-In Handler.

Handles the identifier-then-password Google login flow:
1. Open the sign-in entry point
2. Type the email, click Next
3. Type the password, submit
4. Decide whether the login worked from URL and page signals

Extracted from GoogleMeetController to separate auth concerns.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING

from tool_modules.aa_meet_relay.src.element_resolver import ResolvedElement
from tool_modules.aa_meet_relay.src.exceptions import (
    AuthenticationRejectedError,
    ElementNotFoundError,
    NavigationError,
    PreconditionError,
    UnconfirmedOutcomeError,
)

if TYPE_CHECKING:
    from tool_modules.aa_meet_relay.src.browser_controller import GoogleMeetController

logger = logging.getLogger(__name__)

LOGIN_CONTEXT_EMAIL = "Google Login - Email Step"
LOGIN_CONTEXT_PASSWORD = "Google Login - Password Step"


class LoginOutcome(str, Enum):
    ACCOUNT_PAGE = "account_page"
    OAUTH_CONTINUATION = "oauth_continuation"
    SUCCESS_ELEMENT = "success_element"
    URL_HEURISTIC = "url_heuristic"
    UNCLEAR = "unclear"

    @property
    def confirmed(self) -> bool:
        return self is not LoginOutcome.UNCLEAR


class MeetSignIn:
    """Drives the Google account sign-in flow.

    Uses composition: receives a reference to the GoogleMeetController
    to access page, config, and the element resolver.
    """

    SELECTORS = {
        "email_input": (
            "input#identifierId",
            "input[type='email']",
            "input[name='identifier']",
            "input[autocomplete='username']",
        ),
        "email_next": (
            "div#identifierNext",
            "button#identifierNext",
            "input#identifierNext",
            "button:has-text('Next')",
            "div[role='button']:has-text('Next')",
        ),
        # Most specific first; each must match exactly one element
        "password_input": (
            "input[name='Passwd']",
            "input[name='Passwd'][type='password']",
            "input[autocomplete='current-password']:not([aria-hidden='true'])",
            "input[jsname='YPqjbf']",
            "input[type='password'][tabindex='0']",
            "input[type='password']:not([name='hiddenPassword'])",
        ),
        "password_submit": (
            "div#passwordNext",
            "button[type='submit']",
            "input[type='submit']",
            "button:has-text('Next')",
            "div[role='button']:has-text('Next')",
        ),
        "success_element": ("text=Welcome", "[data-email]"),
        "error_text": "[jsname='B34EJ'] span",
        "logged_in": (
            "[data-email]",
            "[aria-label*='Google Account']",
            "img[alt*='profile']",
            "div[data-email]",
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

    async def sign_in(self) -> LoginOutcome:  # noqa: C901
        """
        Sign in with the configured Google account.

        Returns:
            Which signal confirmed the login (UNCLEAR when none did and
            strict mode is off).

        Raises:
            PreconditionError: No credentials configured.
            NavigationError: The sign-in page could not be opened.
            ElementNotFoundError: Email field, Next button or password field missing.
            AuthenticationRejectedError: Google showed an error message.
            UnconfirmedOutcomeError: Strict mode and no success signal.
        """
        account = self.config.account
        settings = self.config.login
        if not account.configured:
            raise PreconditionError("GOOGLE_EMAIL and GOOGLE_PASSWORD must be set to sign in")

        logger.info("[LOGIN] Starting Google login flow")
        try:
            await self.page.goto(settings.signin_url, wait_until="networkidle")
        except Exception as e:
            logger.error(f"[LOGIN] Failed to open sign-in page: {e}")
            raise NavigationError("sign-in page", settings.signin_url, str(e)) from e

        # Step 1: email
        email_input = await self.resolver.resolve(
            self.SELECTORS["email_input"], settings.email_timeout_ms, step="email input"
        )
        await self.resolver.type_text(
            email_input, account.identifier, "TYPE_EMAIL", LOGIN_CONTEXT_EMAIL, settings.keystroke_delay_ms
        )
        await self.resolver.resolve_and_click(
            self.SELECTORS["email_next"],
            settings.email_timeout_ms,
            "CLICK_EMAIL_NEXT",
            LOGIN_CONTEXT_EMAIL,
            step="email next button",
        )

        # Step 2: password
        try:
            await self.page.wait_for_load_state("networkidle")
        except Exception as e:
            logger.warning(f"[LOGIN] Page did not settle after email step: {e}")

        password_input = await self.resolver.try_resolve(
            self.SELECTORS["password_input"], settings.password_timeout_ms, unique=True, step="password input"
        )
        if password_input is None:
            password_input = await self._password_by_label()

        await self.resolver.type_text(
            password_input, account.secret, "TYPE_PASSWORD", LOGIN_CONTEXT_PASSWORD, settings.keystroke_delay_ms
        )

        try:
            await self.resolver.resolve_and_click(
                self.SELECTORS["password_submit"],
                settings.submit_timeout_ms,
                "CLICK_PASSWORD_NEXT",
                LOGIN_CONTEXT_PASSWORD,
                step="password submit button",
            )
        except ElementNotFoundError:
            logger.info("[LOGIN] No submit button found, pressing Enter")
            await self.resolver.press_key("Enter", "SUBMIT_PASSWORD_ENTER", LOGIN_CONTEXT_PASSWORD)

        # Step 3: outcome
        outcome = await self._determine_outcome()
        if outcome.confirmed:
            logger.info(f"[LOGIN] Google login successful ({outcome.value})")
            return outcome

        if self.config.strict:
            raise UnconfirmedOutcomeError("login")
        logger.warning("[LOGIN] Login status unclear, continuing")
        return outcome

    async def _password_by_label(self) -> ResolvedElement:
        settings = self.config.login
        locator = self.page.get_by_label(settings.password_label)
        try:
            await locator.wait_for(state="visible", timeout=settings.password_label_timeout_ms)
        except Exception as e:
            raise ElementNotFoundError(
                "password input",
                list(self.SELECTORS["password_input"]) + [f"label={settings.password_label}"],
                settings.password_timeout_ms,
            ) from e
        logger.info("[LOGIN] Found password field by label")
        return ResolvedElement(selector=f"label={settings.password_label}", index=-1, locator=locator)

    async def _determine_outcome(self) -> LoginOutcome:
        settings = self.config.login

        try:
            await self.page.wait_for_url(settings.account_url_pattern, timeout=settings.account_url_timeout_ms)
            return LoginOutcome.ACCOUNT_PAGE
        except Exception:
            pass

        try:
            await self.page.wait_for_url(settings.oauth_url_pattern, timeout=settings.oauth_url_timeout_ms)
            return LoginOutcome.OAUTH_CONTINUATION
        except Exception:
            pass

        element = await self.resolver.try_resolve(
            self.SELECTORS["success_element"], settings.success_element_timeout_ms, step="login confirmation"
        )
        if element is not None:
            return LoginOutcome.SUCCESS_ELEMENT

        url = self.page.url
        if (
            "myaccount.google.com" in url
            or "accounts.google.com/signin/oauth" in url
            or "signin/v2/identifier" not in url
        ):
            return LoginOutcome.URL_HEURISTIC

        error_locator = self.page.locator(self.SELECTORS["error_text"]).first
        try:
            await error_locator.wait_for(state="visible", timeout=settings.error_probe_timeout_ms)
            reason = (await error_locator.inner_text()).strip()
        except Exception:
            return LoginOutcome.UNCLEAR

        logger.error(f"[LOGIN] Google reported an error: {reason}")
        raise AuthenticationRejectedError(reason or "unknown error")

    async def is_logged_in(self) -> bool:
        """Check whether the browser already holds a Google session."""
        settings = self.config.login
        try:
            await self.page.goto(settings.accounts_url, wait_until="networkidle")
        except Exception as e:
            logger.warning(f"[LOGIN] Could not open accounts page: {e}")
            return False

        if "signin" in self.page.url:
            logger.info("[LOGIN] Not logged in (redirected to sign-in)")
            return False

        element = await self.resolver.try_resolve(
            self.SELECTORS["logged_in"], settings.logged_in_probe_timeout_ms, step="logged-in probe"
        )
        logged_in = element is not None
        logger.info(f"[LOGIN] Logged in: {logged_in}")
        return logged_in
