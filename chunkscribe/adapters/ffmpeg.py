from __future__ import annotations

import logging
import shutil
import subprocess
from os import PathLike
from pathlib import Path
from typing import Callable, Protocol

from chunkscribe.components.chunking import prepare_out_dir, collect_chunk_paths
from chunkscribe.contracts.artifacts import WAV_HEADER_SIZE
from chunkscribe.contracts.errors import ExternalToolUnavailableError, FfmpegError


logger = logging.getLogger(__name__)

type StrPath = str | PathLike[str]

FFMPEG_INSTALL_HINT = "install ffmpeg to enable splitting non-WAV formats (macOS: brew install ffmpeg, Debian: apt install ffmpeg)"
DEFAULT_SEGMENT_SECONDS = 600
_DEFAULT_TIMEOUT_S = 1800


def _path_str(value: StrPath) -> str:
    return str(Path(value))


def _require_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be > 0")


def build_ffmpeg_segment_cmd(
    input_audio: StrPath,
    chunks_dir: StrPath,
    segment_seconds: int,
    sample_rate: int = 16000,
    channels: int = 1,
) -> list[str]:
    """Build a deterministic ffmpeg command that transcodes and segments into PCM WAV chunks."""
    _require_positive_int("segment_seconds", segment_seconds)
    _require_positive_int("sample_rate", sample_rate)
    _require_positive_int("channels", channels)
    chunk_pattern = Path(chunks_dir) / "chunk_%04d.wav"

    return [
        "ffmpeg",
        "-y",
        "-nostdin",
        "-i",
        _path_str(input_audio),
        "-vn",
        "-f",
        "segment",
        "-segment_time",
        str(segment_seconds),
        "-reset_timestamps",
        "1",
        "-ar",
        str(sample_rate),
        "-ac",
        str(channels),
        "-acodec",
        "pcm_s16le",
        str(chunk_pattern),
    ]


def segment_seconds_for(max_chunk_bytes: int, sample_rate: int = 16000, channels: int = 1) -> int:
    """Longest whole-second 16-bit PCM segment whose file fits within ``max_chunk_bytes``."""
    byte_rate = sample_rate * channels * 2
    return max(1, (max_chunk_bytes - WAV_HEADER_SIZE) // byte_rate)


def ffmpeg_available(which: Callable[[str], str | None] = shutil.which) -> bool:
    return which("ffmpeg") is not None


class ExternalSplitter(Protocol):
    def is_available(self) -> bool:
        """Return True when the external tool can be invoked."""

    def segment_seconds_for(self, max_chunk_bytes: int) -> int:
        """Longest segment, in seconds, whose output file fits within ``max_chunk_bytes``."""

    def split(self, input_audio: StrPath, out_dir: StrPath, segment_seconds: int) -> list[Path]:
        """Split ``input_audio`` into ordered chunk files inside ``out_dir``."""


class FfmpegSplitter:
    """Splits containers the native WAV chunker cannot handle by shelling out to ffmpeg."""

    def __init__(
        self,
        *,
        sample_rate: int = 16000,
        channels: int = 1,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        which: Callable[[str], str | None] = shutil.which,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._sample_rate = sample_rate
        self._channels = channels
        self._timeout_s = timeout_s
        self._which = which
        self._runner = runner

    def is_available(self) -> bool:
        return ffmpeg_available(self._which)

    def segment_seconds_for(self, max_chunk_bytes: int) -> int:
        return segment_seconds_for(max_chunk_bytes, self._sample_rate, self._channels)

    def split(self, input_audio: StrPath, out_dir: StrPath, segment_seconds: int = DEFAULT_SEGMENT_SECONDS) -> list[Path]:
        if not self.is_available():
            raise ExternalToolUnavailableError(
                "ffmpeg is required to split non-WAV audio files but was not found on PATH",
                remediation=FFMPEG_INSTALL_HINT,
            )
        out_dir = prepare_out_dir(Path(out_dir))
        cmd = build_ffmpeg_segment_cmd(input_audio, out_dir, segment_seconds, self._sample_rate, self._channels)
        logger.info("Splitting %s into %ds segments with ffmpeg", Path(input_audio).name, segment_seconds)
        _run_ffmpeg_or_raise(self._runner, cmd, self._timeout_s, "ffmpeg segmenting failed")
        return collect_chunk_paths(out_dir)


def _run_ffmpeg_or_raise(
    runner: Callable[..., subprocess.CompletedProcess],
    cmd: list[str],
    timeout_s: float,
    fallback_message: str,
) -> None:
    try:
        completed = runner(cmd, capture_output=True, text=True, check=False, timeout=timeout_s)
    except subprocess.TimeoutExpired as exc:
        raise FfmpegError(f"ffmpeg timed out after {timeout_s:g}s") from exc
    except FileNotFoundError as exc:
        raise ExternalToolUnavailableError("ffmpeg could not be launched", remediation=FFMPEG_INSTALL_HINT) from exc
    if completed.returncode == 0:
        return
    message = (completed.stderr or "").strip() or (completed.stdout or "").strip() or fallback_message
    raise FfmpegError(message)


__all__ = [
    "DEFAULT_SEGMENT_SECONDS",
    "FFMPEG_INSTALL_HINT",
    "ExternalSplitter",
    "FfmpegSplitter",
    "build_ffmpeg_segment_cmd",
    "ffmpeg_available",
    "segment_seconds_for",
]
