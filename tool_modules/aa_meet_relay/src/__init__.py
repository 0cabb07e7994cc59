"""
Google Meet Relay Bot - browser-driven meeting participant.

This module provides:
- A single Playwright browser session with a lifecycle state machine
- Selector-fallback element resolution shared by every UI flow
- Google account sign-in and Meet join/leave protocols
- Interstitial popup sweeping
- Text-to-speech relay into a virtual microphone named pipe
"""

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT
__version__ = "0.1.0"
