"""Tests for text-to-speech synthesis into the relay profile."""

import asyncio
import wave
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

EXEC = "tool_modules.aa_meet_relay.src.tts_engine.asyncio.create_subprocess_exec"


def write_wav(path, frames=4800, rate=48000, channels=2):
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x01" * frames * channels)


def make_proc(stdout=b"", stderr=b"", returncode=0):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock()
    return proc


class FakeExec:
    """Records command vectors; sox writes its output file."""

    def __init__(self, espeak_output=b"RIFF-espeak-wav"):
        self.calls = []
        self.procs = []
        self.espeak_output = espeak_output

    async def run(self, *cmd, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] == "espeak-ng":
            proc = make_proc(stdout=self.espeak_output)
        else:
            write_wav(Path(cmd[-1]))
            proc = make_proc()
        self.procs.append(proc)
        return proc


@pytest.fixture
def audio(fast_config):
    return fast_config.audio


class TestEspeak:
    @pytest.mark.asyncio
    async def test_synthesize_pipeline(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        fake = FakeExec()
        out = tmp_path / "hello.wav"

        with patch(EXEC, side_effect=fake.run):
            result = await TTSEngine(audio).synthesize("Hello everyone", out)

        assert fake.calls[0] == ["espeak-ng", "-s", "65", "--stdout", "Hello everyone"]
        assert fake.calls[1] == ["sox", "-t", "wav", "-", "-r", "48000", "-c", "2", "-b", "16", str(out)]
        # espeak output is fed to sox on stdin
        fake.procs[1].communicate.assert_awaited_once_with(b"RIFF-espeak-wav")
        assert result.audio_path == out
        assert result.backend == "espeak"
        assert result.duration_seconds == pytest.approx(0.1)
        assert (result.sample_rate, result.channels) == (48000, 2)

    @pytest.mark.asyncio
    async def test_text_passed_as_single_argument(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        fake = FakeExec()
        text = "hi; rm -rf / && echo $HOME"

        with patch(EXEC, side_effect=fake.run):
            await TTSEngine(audio).synthesize(text, tmp_path / "x.wav")

        assert fake.calls[0][-1] == text

    @pytest.mark.asyncio
    async def test_default_output_in_work_dir(self, audio):
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with patch(EXEC, side_effect=FakeExec().run):
            result = await TTSEngine(audio).synthesize("hello")

        assert result.audio_path.parent == audio.work_dir
        assert result.audio_path.name.startswith("tts_")
        assert result.audio_path.exists()

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, audio):
        from tool_modules.aa_meet_relay.src.exceptions import InvalidInputError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with patch(EXEC) as exec_mock:
            with pytest.raises(InvalidInputError):
                await TTSEngine(audio).synthesize("   ")
        exec_mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_binary(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with patch(EXEC, side_effect=FileNotFoundError("espeak-ng")):
            with pytest.raises(SynthesisError) as exc:
                await TTSEngine(audio).synthesize("hello", tmp_path / "x.wav")
        assert "espeak-ng not available" in exc.value.error

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        proc = make_proc(stderr=b"sox FAIL formats: can't open output file", returncode=2)
        fake = FakeExec()

        async def failing_sox(*cmd, **kwargs):
            if cmd[0] == "sox":
                return proc
            return await fake.run(*cmd, **kwargs)

        with patch(EXEC, side_effect=failing_sox):
            with pytest.raises(SynthesisError) as exc:
                await TTSEngine(audio).synthesize("hello", tmp_path / "x.wav")
        assert "sox exited with 2" in exc.value.error
        assert "can't open output file" in exc.value.error

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        proc = make_proc()

        async def hang(stdin=None):
            await asyncio.sleep(10)

        proc.communicate = AsyncMock(side_effect=hang)
        settings = replace(audio, synthesis_timeout=0.01)

        with patch(EXEC, AsyncMock(return_value=proc)):
            with pytest.raises(SynthesisError) as exc:
                await TTSEngine(settings).synthesize("hello", tmp_path / "x.wav")

        assert "timed out" in exc.value.error
        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_silent_espeak(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with patch(EXEC, side_effect=FakeExec(espeak_output=b"").run):
            with pytest.raises(SynthesisError):
                await TTSEngine(audio).synthesize("hello", tmp_path / "x.wav")

    @pytest.mark.asyncio
    async def test_no_output_file(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with patch(EXEC, AsyncMock(return_value=make_proc(stdout=b"RIFF"))):
            with pytest.raises(SynthesisError) as exc:
                await TTSEngine(audio).synthesize("hello", tmp_path / "x.wav")
        assert "did not produce" in exc.value.error


class TestPiper:
    def test_to_profile_resamples_and_widens(self, audio):
        from tool_modules.aa_meet_relay.src.tts_engine import PIPER_SAMPLE_RATE, PiperTTS

        mono = np.linspace(-1.5, 1.5, PIPER_SAMPLE_RATE, dtype=np.float32)

        pcm = PiperTTS(audio)._to_profile(mono)

        assert pcm.dtype == np.int16
        assert pcm.shape == (48000, 2)
        assert (pcm[:, 0] == pcm[:, 1]).all()
        assert pcm.min() == -32767
        assert pcm.max() == 32767

    def test_to_profile_mono_same_rate(self, audio):
        from tool_modules.aa_meet_relay.src.tts_engine import PIPER_SAMPLE_RATE, PiperTTS

        settings = replace(audio, sample_rate=PIPER_SAMPLE_RATE, channels=1)
        pcm = PiperTTS(settings)._to_profile(np.zeros(100, dtype=np.float32))

        assert pcm.shape == (100,)

    @pytest.mark.asyncio
    async def test_synthesize(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        settings = replace(audio, tts_backend="piper", piper_model=tmp_path / "voice.onnx")
        raw = (np.sin(np.linspace(0, 100, 22050)) * 10000).astype(np.int16).tobytes()
        exec_mock = AsyncMock(return_value=make_proc(stdout=raw))
        out = tmp_path / "piper.wav"

        with patch("tool_modules.aa_meet_relay.src.tts_engine.shutil.which", return_value="/usr/bin/piper"), patch(
            EXEC, exec_mock
        ):
            result = await TTSEngine(settings).synthesize("hello", out)

        cmd = list(exec_mock.await_args.args)
        assert cmd == ["/usr/bin/piper", "--model", str(tmp_path / "voice.onnx"), "--output-raw"]
        exec_mock.return_value.communicate.assert_awaited_once_with(b"hello")
        with wave.open(str(out), "rb") as wav:
            assert wav.getframerate() == 48000
            assert wav.getnchannels() == 2
            assert wav.getsampwidth() == 2
        assert result.backend == "piper"
        assert result.duration_seconds == pytest.approx(1.0, abs=0.01)

    @pytest.mark.asyncio
    async def test_piper_not_installed(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with patch("tool_modules.aa_meet_relay.src.tts_engine.shutil.which", return_value=None):
            with pytest.raises(SynthesisError):
                await TTSEngine(audio, backend="piper").synthesize("hello", tmp_path / "x.wav")

    def test_model_discovery(self, audio, tmp_path):
        from tool_modules.aa_meet_relay.src.exceptions import SynthesisError
        from tool_modules.aa_meet_relay.src.tts_engine import PiperTTS

        with patch("tool_modules.aa_meet_relay.src.tts_engine.PIPER_MODELS_DIR", tmp_path):
            with pytest.raises(SynthesisError):
                PiperTTS(audio)._model_path()
            (tmp_path / "b.onnx").touch()
            (tmp_path / "a.onnx").touch()
            assert PiperTTS(audio)._model_path() == tmp_path / "a.onnx"


class TestEngine:
    def test_unknown_backend(self, audio):
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        with pytest.raises(ValueError):
            TTSEngine(audio, backend="festival")

    def test_backend_from_settings(self, audio):
        from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine

        assert TTSEngine(replace(audio, tts_backend="piper")).backend == "piper"
        assert TTSEngine(audio).backend == "espeak"
