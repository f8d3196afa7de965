from __future__ import annotations

from pathlib import Path

from chunkscribe.components.wav_codec import StrPath
from chunkscribe.contracts.errors import InputValidationError


# Formats accepted by the Whisper transcription API.
SUPPORTED_EXTENSIONS = ("wav", "mp3", "mp4", "mpeg", "mpga", "m4a", "webm")


def format_supported_extensions() -> str:
    return ", ".join(SUPPORTED_EXTENSIONS)


def validate_audio_file(path: StrPath | None) -> Path:
    """Return the resolved absolute path of a transcribable audio file."""
    if path is None or not str(path).strip():
        raise InputValidationError("audio file path is empty")

    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise InputValidationError(f"audio file not found: {resolved}")
    if not resolved.is_file():
        raise InputValidationError(f"audio path is not a file: {resolved}")

    extension = resolved.suffix.lower().lstrip(".")
    if extension not in SUPPORTED_EXTENSIONS:
        raise InputValidationError(
            f"unsupported audio file extension: {extension or '(none)'}",
            remediation=f"supported formats: {format_supported_extensions()}",
        )
    if resolved.stat().st_size == 0:
        raise InputValidationError(f"audio file is empty: {resolved}")
    return resolved


__all__ = ["SUPPORTED_EXTENSIONS", "format_supported_extensions", "validate_audio_file"]
