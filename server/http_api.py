"""HTTP control surface for the Meet relay bot.

Routes:
    GET  /                   endpoint index
    POST /init-bot           start keepalive + browser session
    POST /join-meeting       form field ``meetUrl``
    POST /leave-meeting
    POST /enable-microphone
    POST /clear-popups
    GET  /screenshot         image/jpeg of the visible viewport
    GET  /bot-status         {"initialized": bool, ...}
    POST /generate           form field ``text``; speak into the meeting

Bot failures are returned as plain-text errors with a status code derived
from the error's code (see server.errors.http_status_for).
"""

import asyncio
import logging
from typing import Optional

from aiohttp import web

from server.errors import ErrorCodes, http_status_for
from tool_modules.aa_meet_relay.src.bot_manager import MeetBotManager, get_bot_manager
from tool_modules.aa_meet_relay.src.exceptions import MeetBotError
from tool_modules.aa_meet_relay.src.meet_join import JoinOutcome, LeaveOutcome

logger = logging.getLogger(__name__)

MANAGER_KEY = web.AppKey("meet_bot_manager", MeetBotManager)

ROUTES_HELP = """Meet relay bot

POST /init-bot
POST /join-meeting        meetUrl=<url>
POST /leave-meeting
POST /enable-microphone
POST /clear-popups
GET  /screenshot
GET  /bot-status
POST /generate            text=<words>
"""


def _error_response(message: str, e: MeetBotError) -> web.Response:
    status = http_status_for(e.code)
    if status >= 500:
        logger.error(f"{message}: {e}")
    else:
        logger.warning(f"{message}: {e}")
    return web.Response(status=status, text=f"{message}: {e}")


def _manager(request: web.Request) -> MeetBotManager:
    return request.app[MANAGER_KEY]


async def index(request: web.Request) -> web.Response:
    return web.Response(text=ROUTES_HELP)


async def init_bot(request: web.Request) -> web.Response:
    try:
        created = await _manager(request).initialize()
    except MeetBotError as e:
        return _error_response("Failed to initialize bot", e)
    if created:
        return web.Response(text="Bot initialized successfully")
    return web.Response(text="Bot already initialized")


async def join_meeting(request: web.Request) -> web.Response:
    form = await request.post()
    meet_url = str(form.get("meetUrl", "")).strip()
    if not meet_url:
        return web.Response(status=http_status_for(ErrorCodes.INVALID_INPUT), text="meetUrl parameter is required")

    try:
        report = await _manager(request).join(meet_url)
    except MeetBotError as e:
        return _error_response("Failed to join meeting", e)

    if report.outcome == JoinOutcome.UNCLEAR:
        return web.Response(text=f"Join requested for {meet_url} (status unclear)")
    return web.Response(text=f"Successfully joined meeting: {meet_url}")


async def leave_meeting(request: web.Request) -> web.Response:
    try:
        outcome = await _manager(request).leave()
    except MeetBotError as e:
        return _error_response("Failed to leave meeting", e)

    if outcome == LeaveOutcome.UNCLEAR:
        return web.Response(text="Leave attempted (exit status unclear)")
    return web.Response(text="Successfully left meeting")


async def enable_microphone(request: web.Request) -> web.Response:
    try:
        await _manager(request).enable_microphone()
    except MeetBotError as e:
        return _error_response("Failed to enable microphone", e)
    return web.Response(text="Microphone enabled successfully")


async def clear_popups(request: web.Request) -> web.Response:
    try:
        clicked = await _manager(request).clear_popups()
    except MeetBotError as e:
        return _error_response("Failed to clear popups", e)
    return web.Response(text=f"Popups cleared successfully ({clicked} dismissed)")


async def screenshot(request: web.Request) -> web.Response:
    try:
        image = await _manager(request).screenshot()
    except MeetBotError as e:
        return _error_response("Failed to take screenshot", e)

    return web.Response(
        body=image,
        content_type="image/jpeg",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )


async def bot_status(request: web.Request) -> web.Response:
    return web.json_response(_manager(request).status())


async def generate(request: web.Request) -> web.Response:
    form = await request.post()
    text = str(form.get("text", "")).strip()
    if not text:
        return web.Response(status=http_status_for(ErrorCodes.INVALID_INPUT), text="text parameter is required")

    try:
        result = await _manager(request).speak(text)
    except MeetBotError as e:
        return _error_response("Failed to generate audio", e)
    return web.Response(text=f"Audio generated and sent ({result.bytes_written} bytes)")


async def _close_session(app: web.Application) -> None:
    logger.info("Shutting down bot session")
    await app[MANAGER_KEY].close()


def create_app(manager: Optional[MeetBotManager] = None) -> web.Application:
    """Build the aiohttp application around a bot manager."""
    app = web.Application()
    app[MANAGER_KEY] = manager or get_bot_manager()

    app.router.add_get("/", index)
    app.router.add_post("/init-bot", init_bot)
    app.router.add_post("/join-meeting", join_meeting)
    app.router.add_post("/leave-meeting", leave_meeting)
    app.router.add_post("/enable-microphone", enable_microphone)
    app.router.add_post("/clear-popups", clear_popups)
    app.router.add_get("/screenshot", screenshot)
    app.router.add_get("/bot-status", bot_status)
    app.router.add_post("/generate", generate)

    app.on_shutdown.append(_close_session)
    return app


async def run_http_server(app: web.Application, host: str, port: int) -> None:
    """Serve until cancelled."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"HTTP control API listening on http://{host}:{port}")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
