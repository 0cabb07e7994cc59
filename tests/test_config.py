"""Tests for the Meet relay bot configuration layer."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest


class TestDefaults:
    def test_defaults_match_deployment(self):
        from tool_modules.aa_meet_relay.src.config import MeetBotConfig, Strictness

        config = MeetBotConfig()
        assert config.browser.headless is False
        assert config.browser.launch_attempts == 3
        assert config.browser.launch_retry_delay == 2.0
        assert "--use-fake-ui-for-media-stream" in config.browser.args
        assert "--auto-accept-camera-and-microphone-capture" in config.browser.fallback_args
        assert config.browser.permissions == ["camera", "microphone"]
        assert config.audio.pipe_path == Path("/tmp/virtmic")
        assert (config.audio.sample_rate, config.audio.channels, config.audio.bits_per_sample) == (48000, 2, 16)
        assert config.audio.chunk_size == 8192
        assert config.join.join_attempts == 2
        assert config.strictness == Strictness.LENIENT
        assert config.strict is False

    def test_secret_hidden_from_repr(self):
        from tool_modules.aa_meet_relay.src.config import GoogleAccount

        account = GoogleAccount(identifier="bot@example.com", secret="hunter2")
        assert "hunter2" not in repr(account)
        assert account.configured

    def test_account_needs_both_values(self):
        from tool_modules.aa_meet_relay.src.config import GoogleAccount

        assert not GoogleAccount(identifier="bot@example.com").configured
        assert not GoogleAccount(secret="x").configured

    def test_list_defaults_not_shared(self):
        from tool_modules.aa_meet_relay.src.config import BrowserConfig

        a, b = BrowserConfig(), BrowserConfig()
        a.args.append("--extra")
        assert "--extra" not in b.args


class TestLoadConfig:
    @pytest.fixture(autouse=True)
    def no_dotenv(self):
        with patch("tool_modules.aa_meet_relay.src.config.load_dotenv"):
            yield

    def test_file_overrides(self):
        from tool_modules.aa_meet_relay.src.config import Strictness, load_config

        config = load_config(
            {
                "strictness": "strict",
                "browser": {"headless": True, "launch_attempts": 5},
                "popups": {"settle_delay": 0},
                "audio": {"pipe_path": "~/virtmic", "tts_backend": "piper"},
            }
        )
        assert config.strictness == Strictness.STRICT
        assert config.strict
        assert config.browser.headless is True
        assert config.browser.launch_attempts == 5
        assert config.popups.settle_delay == 0.0
        assert isinstance(config.popups.settle_delay, float)
        assert config.audio.pipe_path == Path("~/virtmic").expanduser()
        assert config.audio.tts_backend == "piper"
        # Untouched fields keep defaults
        assert config.join.join_attempts == 2

    def test_unknown_keys_ignored(self, caplog):
        from tool_modules.aa_meet_relay.src.config import load_config

        config = load_config({"browser": {"turbo": True}, "nonsense": 1})
        assert config.browser.headless is False
        assert "meet_bot.browser.turbo" in caplog.text
        assert "meet_bot.nonsense" in caplog.text

    def test_invalid_value_keeps_default(self, caplog):
        from tool_modules.aa_meet_relay.src.config import load_config

        config = load_config({"browser": {"launch_attempts": "many"}})
        assert config.browser.launch_attempts == 3
        assert "meet_bot.browser.launch_attempts" in caplog.text

    def test_optional_model_path(self):
        from tool_modules.aa_meet_relay.src.config import load_config

        config = load_config({"audio": {"piper_model": "/models/en_US.onnx"}})
        assert config.audio.piper_model == Path("/models/en_US.onnx")

    def test_environment_wins_over_file(self):
        from tool_modules.aa_meet_relay.src.config import Strictness, load_config

        env = {
            "GOOGLE_EMAIL": "bot@example.com",
            "GOOGLE_PASSWORD": "hunter2",
            "MEETBOT_HEADLESS": "true",
            "MEETBOT_PIPE_PATH": "/run/virtmic",
            "MEETBOT_STRICTNESS": "STRICT",
        }
        with patch.dict(os.environ, env):
            config = load_config({"browser": {"headless": False}})

        assert config.account.identifier == "bot@example.com"
        assert config.account.secret == "hunter2"
        assert config.browser.headless is True
        assert config.audio.pipe_path == Path("/run/virtmic")
        assert config.strictness == Strictness.STRICT

    def test_headless_falsy_env(self):
        from tool_modules.aa_meet_relay.src.config import load_config

        with patch.dict(os.environ, {"MEETBOT_HEADLESS": "0"}):
            config = load_config({"browser": {"headless": True}})
        assert config.browser.headless is False

    def test_unknown_strictness_env_ignored(self):
        from tool_modules.aa_meet_relay.src.config import Strictness, load_config

        with patch.dict(os.environ, {"MEETBOT_STRICTNESS": "paranoid"}):
            config = load_config({})
        assert config.strictness == Strictness.LENIENT

    def test_reads_config_manager_when_no_section_given(self):
        from tool_modules.aa_meet_relay.src.config import load_config

        with patch("server.config_manager.get_section_config", return_value={"join": {"join_attempts": 4}}):
            config = load_config()
        assert config.join.join_attempts == 4


class TestGlobalConfig:
    def test_get_config_cached(self):
        from tool_modules.aa_meet_relay.src import config as config_module

        with patch.object(config_module, "load_config", wraps=lambda: config_module.MeetBotConfig()) as loader:
            first = config_module.get_config()
            second = config_module.get_config()
        assert first is second
        assert loader.call_count == 1

    def test_update_config_replaces_sections(self):
        from tool_modules.aa_meet_relay.src import config as config_module

        with patch.object(config_module, "load_config", return_value=config_module.MeetBotConfig()):
            updated = config_module.update_config(strictness=config_module.Strictness.STRICT)
        assert updated.strict
        assert config_module.get_config() is updated

    def test_reset_config(self):
        from tool_modules.aa_meet_relay.src import config as config_module

        with patch.object(config_module, "load_config", side_effect=lambda: config_module.MeetBotConfig()):
            first = config_module.get_config()
            config_module.reset_config()
            assert config_module.get_config() is not first
