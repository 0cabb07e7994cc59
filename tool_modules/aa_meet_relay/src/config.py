"""
Meet Relay Bot Configuration.

Centralizes all configuration for the Google Meet relay bot including:
- Account credentials (.env / environment)
- Browser launch options and retry policy
- Per-step selector timeouts for login, join, leave and popup sweeps
- Audio relay profile and virtual microphone pipe

Every delay, timeout and retry bound the flows depend on lives here as a
named field so that behaviour can be tuned without touching the flows.

Precedence (lowest first): dataclass defaults, the ``meet_bot`` section of
config.json, then environment variables.
"""

import logging
import os
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


class Strictness(str, Enum):
    """How inconclusive login/join/leave outcomes are treated."""

    LENIENT = "lenient"  # warn and continue
    STRICT = "strict"  # raise UnconfirmedOutcomeError


@dataclass
class GoogleAccount:
    """Google account used by the bot to sign in."""

    identifier: str = ""
    secret: str = field(default="", repr=False)

    @property
    def configured(self) -> bool:
        return bool(self.identifier and self.secret)


@dataclass
class BrowserConfig:
    """Chromium launch options and session bootstrap."""

    headless: bool = False

    # Full option set tried first (container friendly, media auto-grant)
    args: list[str] = field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--disable-infobars",
            "--disable-features=IsolateOrigins,site-per-process",
            "--use-fake-ui-for-media-stream",
            "--autoplay-policy=no-user-gesture-required",
        ]
    )

    # Reduced option set used once all full-option attempts have failed
    fallback_args: list[str] = field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--disable-extensions",
            "--disable-default-apps",
            "--use-fake-ui-for-media-stream",
            "--auto-accept-camera-and-microphone-capture",
            "--log-level=3",
        ]
    )

    launch_timeout_ms: int = 30000
    launch_attempts: int = 3
    launch_retry_delay: float = 2.0

    permissions: list[str] = field(default_factory=lambda: ["camera", "microphone"])

    # Liveness probe run right after the page is created
    probe_url: str = "data:text/html,<html><body><h1>Browser Test</h1></body></html>"
    probe_timeout_ms: int = 10000

    screenshot_quality: int = 80
    close_timeout: float = 10.0


@dataclass
class LoginConfig:
    """Google account sign-in flow."""

    signin_url: str = (
        "https://accounts.google.com/signin/v2/identifier?flowName=GlifWebSignIn&flowEntry=ServiceLogin"
    )
    accounts_url: str = "https://accounts.google.com/"

    keystroke_delay_ms: int = 50
    email_timeout_ms: int = 1000
    password_timeout_ms: int = 800
    password_label: str = "Enter your password"
    password_label_timeout_ms: int = 1000
    submit_timeout_ms: int = 2000

    # Success signals, checked in order
    account_url_pattern: str = "**/myaccount.google.com/**"
    account_url_timeout_ms: int = 3000
    oauth_url_pattern: str = "**/accounts.google.com/signin/oauth/**"
    oauth_url_timeout_ms: int = 2000
    success_element_timeout_ms: int = 5000
    error_probe_timeout_ms: int = 2000

    logged_in_probe_timeout_ms: int = 3000


@dataclass
class JoinConfig:
    """Meeting join / leave protocol."""

    meet_host: str = "meet.google.com"
    toggle_timeout_ms: int = 1000
    join_timeout_ms: int = 1500
    join_attempts: int = 2
    confirm_timeout_ms: int = 3000
    leave_timeout_ms: int = 3000
    leave_shortcut: str = "Control+d"
    exit_timeout_ms: int = 5000
    microphone_timeout_ms: int = 2000


@dataclass
class PopupConfig:
    """Interstitial dialog sweep."""

    click_timeout_ms: int = 1000
    settle_delay: float = 0.5  # after every dismissed popup
    final_settle_delay: float = 1.0  # once per sweep


@dataclass
class AudioRelayConfig:
    """Text-to-speech relay into the virtual microphone pipe."""

    pipe_path: Path = Path("/tmp/virtmic")
    work_dir: Path = Path.home() / ".local/share/meet_relay/audio"

    # Profile expected by the virtual microphone
    sample_rate: int = 48000
    channels: int = 2
    bits_per_sample: int = 16

    chunk_size: int = 8192
    header_bytes: int = 44  # canonical RIFF header, used when chunk walk fails
    drain_seconds: float = 5.0
    write_poll_interval: float = 0.01
    write_stall_timeout: float = 10.0

    tts_backend: str = "espeak"
    espeak_speed: int = 65
    synthesis_timeout: float = 60.0
    piper_model: Optional[Path] = None


@dataclass
class KeepaliveConfig:
    """Companion process started alongside the browser session."""

    enabled: bool = True
    script_path: Path = PROJECT_ROOT / "keepalive.sh"


@dataclass
class MeetBotConfig:
    """Main configuration for the Meet relay bot."""

    account: GoogleAccount = field(default_factory=GoogleAccount)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    login: LoginConfig = field(default_factory=LoginConfig)
    join: JoinConfig = field(default_factory=JoinConfig)
    popups: PopupConfig = field(default_factory=PopupConfig)
    audio: AudioRelayConfig = field(default_factory=AudioRelayConfig)
    keepalive: KeepaliveConfig = field(default_factory=KeepaliveConfig)
    strictness: Strictness = Strictness.LENIENT

    # Audit trail size kept by the element resolver
    action_history_size: int = 200

    @property
    def strict(self) -> bool:
        return self.strictness == Strictness.STRICT


def _coerce(name: str, current: Any, value: Any) -> Any:
    """Convert a JSON/env value to the type of the field it replaces."""
    if isinstance(current, Enum):
        return type(current)(value)
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return bool(value)
    if isinstance(current, Path) or (current is None and name.endswith(("_path", "_dir", "_model"))):
        return Path(value).expanduser()
    if isinstance(current, (int, float)) and not isinstance(value, bool):
        return type(current)(value)
    return value


def _apply_overrides(section: Any, overrides: dict[str, Any], prefix: str = "meet_bot") -> Any:
    """Return a copy of a config dataclass with matching keys replaced."""
    known = {f.name for f in fields(section)}
    changes: dict[str, Any] = {}

    for key, value in overrides.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {prefix}.{key}")
            continue
        current = getattr(section, key)
        if is_dataclass(current) and isinstance(value, dict):
            changes[key] = _apply_overrides(current, value, f"{prefix}.{key}")
        else:
            try:
                changes[key] = _coerce(key, current, value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid value for {prefix}.{key}: {value!r} ({e})")

    return replace(section, **changes)


def _apply_environment(config: MeetBotConfig) -> MeetBotConfig:
    """Layer environment variables (and .env) on top of the file config."""
    account = replace(
        config.account,
        identifier=os.environ.get("GOOGLE_EMAIL", config.account.identifier),
        secret=os.environ.get("GOOGLE_PASSWORD", config.account.secret),
    )
    config = replace(config, account=account)

    if "MEETBOT_HEADLESS" in os.environ:
        headless = os.environ["MEETBOT_HEADLESS"].strip().lower() in _TRUTHY
        config = replace(config, browser=replace(config.browser, headless=headless))

    if os.environ.get("MEETBOT_PIPE_PATH"):
        pipe_path = Path(os.environ["MEETBOT_PIPE_PATH"]).expanduser()
        config = replace(config, audio=replace(config.audio, pipe_path=pipe_path))

    if os.environ.get("MEETBOT_STRICTNESS"):
        try:
            config = replace(config, strictness=Strictness(os.environ["MEETBOT_STRICTNESS"].lower()))
        except ValueError:
            logger.warning(f"Unknown MEETBOT_STRICTNESS: {os.environ['MEETBOT_STRICTNESS']}")

    return config


def load_config(file_section: Optional[dict[str, Any]] = None) -> MeetBotConfig:
    """Build a config from defaults, config.json and the environment.

    Args:
        file_section: Contents of the ``meet_bot`` section. Read from
            config.json through the config manager when omitted.
    """
    if file_section is None:
        from server.config_manager import get_section_config

        file_section = get_section_config("meet_bot")

    # .env never overrides variables already present in the environment
    load_dotenv(override=False)

    config = MeetBotConfig()
    if file_section:
        config = _apply_overrides(config, file_section)
    return _apply_environment(config)


# Global config instance
_config: Optional[MeetBotConfig] = None


def get_config() -> MeetBotConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def update_config(**kwargs) -> MeetBotConfig:
    """Replace top-level sections of the global configuration."""
    global _config
    _config = replace(get_config(), **kwargs)
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None
