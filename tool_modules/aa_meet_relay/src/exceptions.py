"""
Meet relay bot error taxonomy.

Every failure raised out of the bot carries an ``ErrorCodes`` value so the
MCP tools and the HTTP API can report it without inspecting the type.
"""

from typing import Optional, Sequence

from server.errors import ErrorCodes


class MeetBotError(Exception):
    """Base class for all bot failures."""

    code: str = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class PreconditionError(MeetBotError):
    """Operation invoked in the wrong lifecycle state."""

    code = ErrorCodes.INVALID_STATE


class InvalidInputError(MeetBotError):
    """Request is missing a required value."""

    code = ErrorCodes.INVALID_INPUT


class ElementNotFoundError(MeetBotError):
    """No locator candidate became visible within its timeout."""

    code = ErrorCodes.NOT_FOUND

    def __init__(self, step: str, selectors: Sequence[str] = (), timeout_ms: int = 0, message: str = ""):
        self.step = step
        self.selectors = list(selectors)
        self.timeout_ms = timeout_ms
        super().__init__(
            message or f"{step}: no element found ({len(self.selectors)} candidates, {timeout_ms}ms each)"
        )


class InteractionError(MeetBotError):
    """A resolved element could not be clicked, typed into or pressed."""

    code = ErrorCodes.DEPENDENCY_FAILED

    def __init__(self, action: str, selector: str, error: str):
        self.action = action
        self.selector = selector
        self.error = error
        super().__init__(f"{action} failed on {selector}: {error}")


class NavigationError(MeetBotError):
    """A page navigation failed or timed out."""

    code = ErrorCodes.DEPENDENCY_FAILED

    def __init__(self, target: str, url: str, error: str):
        self.target = target
        self.url = url
        self.error = error
        super().__init__(f"failed to navigate to {target}: {error}")


class LaunchError(MeetBotError):
    """Browser engine could not be started or the session could not be bootstrapped."""

    code = ErrorCodes.SERVICE_UNAVAILABLE


class AuthenticationRejectedError(MeetBotError):
    """The sign-in page showed an explicit error."""

    code = ErrorCodes.AUTH_FAILED

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"google login failed: {reason}")


class UnconfirmedOutcomeError(MeetBotError):
    """Raised in strict mode when no success signal could be observed."""

    code = ErrorCodes.CONFLICT

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"{step} status unclear")


class BrowserClosedError(MeetBotError):
    """Raised when the browser has been closed unexpectedly."""

    code = ErrorCodes.SERVICE_UNAVAILABLE


class DeviceError(MeetBotError):
    """Virtual microphone or synthesis failure."""

    code = ErrorCodes.DEPENDENCY_FAILED


class PipeMissingError(DeviceError):
    """The virtual microphone pipe does not exist."""

    code = ErrorCodes.NOT_FOUND

    def __init__(self, path):
        self.path = path
        super().__init__(f"pipe does not exist: {path}")


class NoReaderError(DeviceError):
    """The pipe exists but nothing has it open for reading."""

    code = ErrorCodes.SERVICE_UNAVAILABLE

    def __init__(self, path):
        self.path = path
        super().__init__(f"no reader available on the pipe: {path}")


class RelayError(DeviceError):
    """Relay aborted; ``stage`` names where (synthesize, open, read, write)."""

    def __init__(self, stage: str, error: str):
        self.stage = stage
        self.error = error
        super().__init__(f"audio relay failed at {stage}: {error}")


class SynthesisError(RelayError):
    """The text-to-speech process failed."""

    def __init__(self, error: str):
        super().__init__("synthesize", error)


class KeepaliveError(MeetBotError):
    """The keepalive companion could not be started."""

    code = ErrorCodes.DEPENDENCY_FAILED
