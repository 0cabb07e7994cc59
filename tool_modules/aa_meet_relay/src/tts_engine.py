"""
Text-to-Speech Engine.

Produces a WAV file in the virtual microphone's profile (48 kHz, stereo,
16-bit by default) from text. Backends:
- espeak (default): ``espeak-ng`` piped through ``sox`` for resampling
- piper: ``piper --output-raw``, resampled and widened with numpy

All external commands run as argument vectors; text is never handed to a shell.
"""

import asyncio
import logging
import shutil
import wave
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import numpy as np

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

from tool_modules.aa_meet_relay.src.config import AudioRelayConfig, get_config
from tool_modules.aa_meet_relay.src.exceptions import InvalidInputError, SynthesisError

logger = logging.getLogger(__name__)

PIPER_SAMPLE_RATE = 22050  # piper --output-raw default
PIPER_MODELS_DIR = Path.home() / ".cache" / "piper"


@dataclass
class TTSResult:
    """Result of TTS synthesis."""

    audio_path: Path
    duration_seconds: float
    sample_rate: int
    channels: int
    text: str
    backend: str
    timestamp: datetime = field(default_factory=datetime.now)


async def _run(cmd: list[str], stdin: Optional[bytes], timeout: float) -> bytes:
    """Run a command, feed it stdin, and return stdout. Raises SynthesisError."""
    name = Path(cmd[0]).name
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise SynthesisError(f"{name} not available: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise SynthesisError(f"{name} timed out after {timeout}s") from e

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip()
        raise SynthesisError(f"{name} exited with {proc.returncode}: {detail}")
    return stdout


def _wav_duration(path: Path) -> float:
    with wave.open(str(path), "rb") as wav:
        return wav.getnframes() / float(wav.getframerate() or 1)


class EspeakTTS:
    """espeak-ng voice, converted to the relay profile with sox."""

    name = "espeak"

    def __init__(self, settings: AudioRelayConfig):
        self.settings = settings

    async def synthesize(self, text: str, output_path: Path) -> None:
        s = self.settings
        speech = await _run(
            ["espeak-ng", "-s", str(s.espeak_speed), "--stdout", text],
            stdin=None,
            timeout=s.synthesis_timeout,
        )
        if not speech:
            raise SynthesisError("espeak-ng produced no audio")

        await _run(
            [
                "sox",
                "-t", "wav", "-",
                "-r", str(s.sample_rate),
                "-c", str(s.channels),
                "-b", str(s.bits_per_sample),
                str(output_path),
            ],
            stdin=speech,
            timeout=s.synthesis_timeout,
        )


class PiperTTS:
    """
    Piper TTS engine.

    Uses the piper CLI for synthesis, which is more reliable than the Python package.
    """

    name = "piper"

    def __init__(self, settings: AudioRelayConfig):
        self.settings = settings

    def _model_path(self) -> Path:
        if self.settings.piper_model:
            return Path(self.settings.piper_model).expanduser()
        models = sorted(PIPER_MODELS_DIR.glob("*.onnx"))
        if not models:
            raise SynthesisError(f"no piper model configured and none found in {PIPER_MODELS_DIR}")
        return models[0]

    def _to_profile(self, audio: np.ndarray) -> np.ndarray:
        """Resample mono float32 audio to the relay rate and duplicate channels."""
        target_rate = self.settings.sample_rate
        if len(audio) and target_rate != PIPER_SAMPLE_RATE:
            new_length = int(len(audio) / PIPER_SAMPLE_RATE * target_rate)
            old_indices = np.linspace(0, len(audio) - 1, new_length)
            audio = np.interp(old_indices, np.arange(len(audio)), audio).astype(np.float32)

        pcm = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)
        if self.settings.channels > 1:
            pcm = np.repeat(pcm[:, np.newaxis], self.settings.channels, axis=1)
        return pcm

    async def synthesize(self, text: str, output_path: Path) -> None:
        piper = shutil.which("piper")
        if not piper:
            raise SynthesisError("piper CLI not found")

        raw = await _run(
            [piper, "--model", str(self._model_path()), "--output-raw"],
            stdin=text.encode(),
            timeout=self.settings.synthesis_timeout,
        )
        audio = np.frombuffer(raw, dtype=np.int16).astype(np.float32) / 32768.0
        if not len(audio):
            raise SynthesisError("piper produced no audio")

        pcm = self._to_profile(audio)
        with wave.open(str(output_path), "wb") as wav:
            wav.setnchannels(self.settings.channels)
            wav.setsampwidth(2)  # 16-bit
            wav.setframerate(self.settings.sample_rate)
            wav.writeframes(pcm.tobytes())


class TTSEngine:
    """
    Unified TTS engine.

    Backends:
    - espeak: espeak-ng + sox (default)
    - piper: piper CLI + numpy resampling
    """

    BACKENDS = {"espeak": EspeakTTS, "piper": PiperTTS}

    def __init__(self, settings: Optional[AudioRelayConfig] = None, backend: Optional[str] = None):
        self.settings = settings or get_config().audio
        self.backend = backend or self.settings.tts_backend
        if self.backend not in self.BACKENDS:
            raise ValueError(f"Unknown TTS backend: {self.backend}")
        self._impl = self.BACKENDS[self.backend](self.settings)

    async def synthesize(self, text: str, output_path: Optional[Path] = None) -> TTSResult:
        """
        Synthesize text to a WAV file in the relay profile.

        Args:
            text: Text to speak
            output_path: Destination file (defaults to a timestamped file in work_dir)

        Raises:
            InvalidInputError: Empty text
            SynthesisError: The backend failed
        """
        if not text or not text.strip():
            raise InvalidInputError("text parameter is required")

        if output_path is None:
            self.settings.work_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            output_path = self.settings.work_dir / f"tts_{timestamp}.wav"

        logger.info(f"[TTS] Synthesizing {len(text)} chars with {self.backend}")
        await self._impl.synthesize(text, output_path)

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise SynthesisError(f"{self.backend} did not produce {output_path}")

        try:
            duration = _wav_duration(output_path)
        except (wave.Error, EOFError) as e:
            raise SynthesisError(f"{self.backend} produced an unreadable WAV: {e}") from e

        logger.info(f"[TTS] Wrote {output_path} ({duration:.1f}s)")
        return TTSResult(
            audio_path=output_path,
            duration_seconds=duration,
            sample_rate=self.settings.sample_rate,
            channels=self.settings.channels,
            text=text,
            backend=self.backend,
        )


# Global instance
_tts_engine: Optional[TTSEngine] = None


def get_tts_engine() -> TTSEngine:
    """Get or create the global TTS engine."""
    global _tts_engine
    if _tts_engine is None:
        _tts_engine = TTSEngine()
    return _tts_engine
