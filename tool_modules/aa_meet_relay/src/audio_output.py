"""
Audio Output to the Virtual Microphone Pipe.

Streams a WAV file's PCM payload into a named pipe that PulseAudio reads
as a microphone source, so Chrome hears it as mic input.

Usage:
    relay = AudioRelay(config.audio)
    result = await relay.speak("Hello everyone")

The pipe is opened non-blocking: if nothing is reading it the open fails
with ENXIO, which is reported as NoReaderError so callers can retry once
the meeting audio sink is attached. The payload is written chunk by chunk
as it is read from disk; a full pipe buffer is waited out, not dropped.
"""

import asyncio
import errno
import logging
import os
import struct
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from tool_modules.common import PROJECT_ROOT

__project_root__ = PROJECT_ROOT

from tool_modules.aa_meet_relay.src.config import AudioRelayConfig, get_config
from tool_modules.aa_meet_relay.src.exceptions import NoReaderError, PipeMissingError, RelayError
from tool_modules.aa_meet_relay.src.tts_engine import TTSEngine, get_tts_engine

logger = logging.getLogger(__name__)


@dataclass
class RelayResult:
    """What a relay wrote."""

    source: Path
    bytes_written: int
    chunks: int
    elapsed_seconds: float


def find_pcm_offset(wav: BinaryIO, fallback: int = 44) -> int:
    """Return the offset of the first PCM byte of a RIFF/WAVE file.

    Walks the chunk list to the ``data`` chunk so that files carrying extra
    chunks (LIST, fact) are handled. Non-RIFF input falls back to the
    canonical 44-byte header.
    """
    wav.seek(0)
    header = wav.read(12)
    if len(header) < 12 or header[:4] != b"RIFF" or header[8:12] != b"WAVE":
        return fallback

    while True:
        chunk = wav.read(8)
        if len(chunk) < 8:
            return fallback
        chunk_id, size = struct.unpack("<4sI", chunk)
        if chunk_id == b"data":
            return wav.tell()
        # Chunks are word aligned
        wav.seek(size + (size & 1), os.SEEK_CUR)


class AudioPipeWriter:
    """
    Non-blocking writer for the PulseAudio pipe-source FIFO.
    """

    def __init__(self, pipe_path: Path, poll_interval: float = 0.01, stall_timeout: float = 10.0):
        self.pipe_path = Path(pipe_path)
        self.poll_interval = poll_interval
        self.stall_timeout = stall_timeout
        self._fd: Optional[int] = None

    def open(self) -> None:
        """
        Open the pipe for writing.

        Raises:
            PipeMissingError: The pipe does not exist
            NoReaderError: Nothing has the pipe open for reading
            RelayError: Any other open failure (stage "open")
        """
        if self._fd is not None:
            return

        if not self.pipe_path.exists():
            raise PipeMissingError(self.pipe_path)

        try:
            # O_NONBLOCK makes the open fail instead of hanging when no reader is attached
            self._fd = os.open(str(self.pipe_path), os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            if e.errno == errno.ENXIO:
                logger.warning(f"[RELAY] No reader on pipe (Chrome not listening?): {self.pipe_path}")
                raise NoReaderError(self.pipe_path) from e
            raise RelayError("open", str(e)) from e

        logger.info(f"[RELAY] Opened audio pipe: {self.pipe_path}")

    async def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting while the pipe buffer is full.

        Raises:
            RelayError: Reader went away, or the pipe stayed full for
                longer than ``stall_timeout`` (stage "write")
        """
        if self._fd is None:
            raise RelayError("write", "pipe is not open")

        view = memoryview(data)
        written = 0
        stalled_since: Optional[float] = None

        while written < len(view):
            try:
                n = os.write(self._fd, view[written:])
            except BlockingIOError:
                # Pipe buffer full - reader is behind
                now = time.monotonic()
                stalled_since = stalled_since or now
                if now - stalled_since > self.stall_timeout:
                    raise RelayError("write", f"pipe stayed full for {self.stall_timeout}s")
                await asyncio.sleep(self.poll_interval)
                continue
            except BrokenPipeError as e:
                logger.warning("[RELAY] Pipe reader closed")
                raise RelayError("write", "pipe reader closed") from e
            except OSError as e:
                raise RelayError("write", str(e)) from e

            written += n
            stalled_since = None

        return written

    def close(self) -> None:
        """Close the pipe."""
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError as e:
                logger.debug(f"[RELAY] Error closing pipe: {e}")
            finally:
                self._fd = None
            logger.info(f"[RELAY] Closed audio pipe: {self.pipe_path}")

    def is_open(self) -> bool:
        return self._fd is not None


class AudioRelay:
    """
    Synthesizes text and streams it into the virtual microphone.

    Only one relay runs at a time: the pipe assumes a single writer.
    """

    def __init__(self, settings: Optional[AudioRelayConfig] = None, tts: Optional[TTSEngine] = None):
        self.settings = settings or get_config().audio
        self._tts = tts
        self._lock = asyncio.Lock()

    @property
    def tts(self) -> TTSEngine:
        if self._tts is None:
            self._tts = get_tts_engine()
        return self._tts

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def check_pipe(self) -> None:
        if not Path(self.settings.pipe_path).exists():
            raise PipeMissingError(self.settings.pipe_path)

    async def speak(self, text: str) -> RelayResult:
        """Synthesize ``text`` and relay it into the pipe.

        The synthesized file is deleted afterwards, whether or not the relay succeeded.
        """
        async with self._lock:
            self.check_pipe()
            result = await self.tts.synthesize(text)
            try:
                return await self._relay(result.audio_path)
            finally:
                self._discard(result.audio_path)

    @staticmethod
    def _discard(wav_path: Path) -> None:
        try:
            wav_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[RELAY] Could not remove {wav_path}: {e}")

    async def relay_file(self, wav_path: Path) -> RelayResult:
        """Relay an existing WAV file into the pipe."""
        async with self._lock:
            return await self._relay(Path(wav_path))

    async def _relay(self, wav_path: Path) -> RelayResult:
        s = self.settings
        started = time.monotonic()

        try:
            wav = open(wav_path, "rb")
        except OSError as e:
            raise RelayError("read", f"cannot open {wav_path}: {e}") from e

        with wav:
            try:
                offset = find_pcm_offset(wav, fallback=s.header_bytes)
                wav.seek(offset)
            except OSError as e:
                raise RelayError("read", f"cannot seek past WAV header: {e}") from e

            writer = AudioPipeWriter(s.pipe_path, s.write_poll_interval, s.write_stall_timeout)
            writer.open()
            try:
                logger.info(f"[RELAY] Sending {wav_path.name} in {s.chunk_size}-byte chunks")
                total = 0
                chunks = 0
                while True:
                    try:
                        chunk = wav.read(s.chunk_size)
                    except OSError as e:
                        raise RelayError("read", str(e)) from e
                    if not chunk:
                        break
                    total += await writer.write(chunk)
                    chunks += 1

                logger.info(f"[RELAY] Audio playback complete ({total} bytes, {chunks} chunks)")
                # Keep the pipe open so the reader can play out what is buffered
                await asyncio.sleep(s.drain_seconds)
            finally:
                writer.close()

        return RelayResult(
            source=wav_path,
            bytes_written=total,
            chunks=chunks,
            elapsed_seconds=time.monotonic() - started,
        )
