"""Entry point for running the Meet relay bot.

Usage:
    python -m server                # HTTP control API on :8080
    python -m server --port 9000    # Different port
    python -m server --mcp          # MCP tools over stdio
"""

from .main import main

if __name__ == "__main__":
    main()
