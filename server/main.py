"""Meet Relay Bot - Main Entry Point.

Serves the bot's control surface either over HTTP (default) or as an MCP
server on stdio.

Usage:
    # HTTP control API on :8080
    python -m server

    # Different bind address
    python -m server --host 127.0.0.1 --port 9000

    # MCP tools over stdio (for AI integrations)
    python -m server --mcp
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from fastmcp import FastMCP

from tool_modules.aa_meet_relay.src.config import Strictness, get_config, update_config

from .config_manager import config as file_config


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure logging for the bot.

    Logs go to journalctl when running under systemd.
    Format excludes timestamp since journald adds its own.
    Logs to stderr since stdout is reserved for JSON-RPC in MCP mode.
    """
    stream_handler = logging.StreamHandler(sys.stderr)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(name)s - %(levelname)s - %(message)s",
        handlers=[stream_handler],
    )
    return logging.getLogger(__name__)


def create_mcp_server(name: str = "meet-relay-bot") -> FastMCP:
    """Create the MCP server with the bot's tools registered."""
    from tool_modules.aa_meet_relay.src.tools_basic import register_tools

    logger = logging.getLogger(__name__)
    server = FastMCP(name)
    count = register_tools(server)
    logger.info(f"Registered {count} meet bot tools")
    return server


async def run_mcp_server(server: FastMCP):
    """Run the MCP server in stdio mode (for AI integrations)."""
    from tool_modules.aa_meet_relay.src.bot_manager import get_bot_manager

    logger = logging.getLogger(__name__)
    logger.info("Starting MCP server (stdio mode)...")

    try:
        await server.run_stdio_async()
    finally:
        # Don't leave a browser behind
        try:
            await get_bot_manager().close()
        except Exception as e:
            logger.warning(f"Error closing bot session: {e}")


async def run_http(host: str, port: int):
    """Run the HTTP control API until interrupted."""
    from .http_api import create_app, run_http_server

    await run_http_server(create_app(), host, port)


def apply_overrides(args: argparse.Namespace) -> None:
    """Apply command-line overrides on top of the loaded configuration."""
    logger = logging.getLogger(__name__)
    if args.headless:
        update_config(browser=replace(get_config().browser, headless=True))
        logger.info("Browser will run headless")
    if args.strict:
        update_config(strictness=Strictness.STRICT)
        logger.info("Unconfirmed outcomes will be treated as failures")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Google Meet relay bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Credentials are read from GOOGLE_EMAIL / GOOGLE_PASSWORD (a .env file in the
working directory is loaded too). Other settings live in the "meet_bot"
section of config.json.

Examples:
  python -m server                      # HTTP API on 0.0.0.0:8080
  python -m server --port 9000          # HTTP API on another port
  python -m server --mcp                # MCP tools over stdio
  python -m server --headless --strict  # No window, fail on unclear outcomes
        """,
    )
    parser.add_argument("--host", default="0.0.0.0", help="HTTP bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="HTTP port (default: 8080)")
    parser.add_argument("--mcp", action="store_true", help="Serve MCP tools over stdio instead of HTTP")
    parser.add_argument("--name", default="meet-relay-bot", help="MCP server name")
    parser.add_argument("--headless", action="store_true", help="Run Chromium without a visible window")
    parser.add_argument("--strict", action="store_true", help="Fail when login, join or leave cannot be confirmed")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    logger = setup_logging(args.debug)

    errors = file_config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(2)

    apply_overrides(args)

    try:
        if args.mcp:
            server = create_mcp_server(name=args.name)
            asyncio.run(run_mcp_server(server))
        else:
            asyncio.run(run_http(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
