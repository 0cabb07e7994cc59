"""
Meet Relay Bot MCP Tools.

Provides tools for:
- Starting the browser session
- Joining/leaving meetings
- Unmuting and clearing popups
- Screenshots and status
- Speaking into the meeting through the virtual microphone
"""

import logging
from datetime import datetime

from fastmcp import FastMCP

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

from server.errors import tool_error, tool_success, tool_warning
from server.paths import MEETBOT_SCREENSHOTS_DIR, ensure_data_dirs
from tool_modules.aa_meet_relay.src.bot_manager import get_bot_manager
from tool_modules.aa_meet_relay.src.exceptions import MeetBotError, NoReaderError
from tool_modules.aa_meet_relay.src.meet_join import JoinOutcome, LeaveOutcome

logger = logging.getLogger(__name__)


def _failure(message: str, e: MeetBotError, hint: str | None = None) -> str:
    logger.error(f"{message}: {e}")
    return tool_error(message, error=str(e), code=e.code, hint=hint)


async def _meet_bot_init_impl() -> str:
    try:
        created = await get_bot_manager().initialize()
    except MeetBotError as e:
        return _failure("Failed to initialize bot", e)
    if created:
        return tool_success("Bot initialized successfully")
    return tool_success("Bot already initialized")


async def _meet_bot_join_meeting_impl(meet_url: str) -> str:
    try:
        report = await get_bot_manager().join(meet_url)
    except MeetBotError as e:
        return _failure("Failed to join meeting", e)

    data = {"url": report.meet_url, "login_performed": report.login_ran}
    if report.outcome == JoinOutcome.UNCLEAR:
        return tool_warning(
            "Join clicked but no in-meeting indicator was seen",
            details="The bot may be waiting in the lobby.",
            context=data,
        )
    return tool_success("Successfully joined meeting", data=data)


async def _meet_bot_leave_meeting_impl() -> str:
    try:
        outcome = await get_bot_manager().leave()
    except MeetBotError as e:
        return _failure("Failed to leave meeting", e)
    if outcome == LeaveOutcome.UNCLEAR:
        return tool_warning("Leave attempted but exit could not be confirmed")
    return tool_success("Successfully left meeting")


async def _meet_bot_enable_microphone_impl() -> str:
    try:
        selector = await get_bot_manager().enable_microphone()
    except MeetBotError as e:
        return _failure("Failed to enable microphone", e)
    return tool_success("Microphone enabled", data={"control": selector})


async def _meet_bot_clear_popups_impl() -> str:
    try:
        clicked = await get_bot_manager().clear_popups()
    except MeetBotError as e:
        return _failure("Failed to clear popups", e)
    return tool_success("Popups cleared", data={"dismissed": clicked})


async def _meet_bot_screenshot_impl() -> str:
    try:
        image = await get_bot_manager().screenshot()
    except MeetBotError as e:
        return _failure("Failed to take screenshot", e)

    ensure_data_dirs()
    path = MEETBOT_SCREENSHOTS_DIR / f"screenshot_{datetime.now():%Y%m%d_%H%M%S}.jpg"
    path.write_bytes(image)
    return tool_success("Screenshot saved", data={"path": str(path), "bytes": len(image)})


async def _meet_bot_status_impl() -> str:
    status = get_bot_manager().status()
    lines = ["## 🤖 Meet Bot Status", ""]
    lines.append(f"**Initialized:** {'✅' if status['initialized'] else '❌'}")
    if status["initialized"]:
        lines.append(f"**State:** {status['state']}")
        lines.append(f"**Logged in:** {'✅' if status['logged_in'] else '❌'}")
        if status.get("meeting_url"):
            lines.append(f"**Meeting:** {status['meeting_url']}")
    lines.append(f"**Speaking:** {'yes' if status['relay_active'] else 'no'}")
    return "\n".join(lines)


async def _meet_bot_speak_impl(text: str) -> str:
    try:
        result = await get_bot_manager().speak(text)
    except NoReaderError as e:
        return _failure(
            "Nothing is reading the virtual microphone",
            e,
            hint="Join a meeting first so Chrome attaches to the mic source, then retry.",
        )
    except MeetBotError as e:
        return _failure("Failed to speak", e)
    return tool_success(
        "Audio sent to virtual microphone",
        data={"bytes": result.bytes_written, "chunks": result.chunks},
    )


def register_tools(server: FastMCP) -> int:
    """Register Meet relay bot tools with the MCP server."""
    tools = []

    @server.tool()
    async def meet_bot_init() -> str:
        """
        Start the browser session (and keepalive companion) if not already running.

        Returns:
            Whether a new session was created.
        """
        return await _meet_bot_init_impl()

    tools.append(meet_bot_init)

    @server.tool()
    async def meet_bot_join_meeting(meet_url: str) -> str:
        """
        Join a Google Meet meeting, signing in first if needed.

        Args:
            meet_url: Full meeting URL (e.g. https://meet.google.com/abc-defg-hij)

        Returns:
            Join status.
        """
        return await _meet_bot_join_meeting_impl(meet_url)

    tools.append(meet_bot_join_meeting)

    @server.tool()
    async def meet_bot_leave_meeting() -> str:
        """Leave the current meeting."""
        return await _meet_bot_leave_meeting_impl()

    tools.append(meet_bot_leave_meeting)

    @server.tool()
    async def meet_bot_enable_microphone() -> str:
        """Unmute the bot's microphone in the meeting."""
        return await _meet_bot_enable_microphone_impl()

    tools.append(meet_bot_enable_microphone)

    @server.tool()
    async def meet_bot_clear_popups() -> str:
        """Dismiss permission prompts, banners and other dialogs."""
        return await _meet_bot_clear_popups_impl()

    tools.append(meet_bot_clear_popups)

    @server.tool()
    async def meet_bot_screenshot() -> str:
        """
        Capture the visible browser viewport.

        Returns:
            Path of the saved JPEG.
        """
        return await _meet_bot_screenshot_impl()

    tools.append(meet_bot_screenshot)

    @server.tool()
    async def meet_bot_status() -> str:
        """Show whether a session exists and what it is doing."""
        return await _meet_bot_status_impl()

    tools.append(meet_bot_status)

    @server.tool()
    async def meet_bot_speak(text: str) -> str:
        """
        Say something in the meeting via text-to-speech.

        Args:
            text: What to say

        Returns:
            How much audio was sent.
        """
        return await _meet_bot_speak_impl(text)

    tools.append(meet_bot_speak)

    return len(tools)
