"""Runtime settings read from ``CHUNKSCRIBE_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from chunkscribe.adapters.fallback import TranscriptionMode
from chunkscribe.adapters.openai_transcription import DEFAULT_MODEL as DEFAULT_OPENAI_MODEL
from chunkscribe.components.chunking import API_LIMIT_BYTES, MAX_CHUNK_BYTES
from chunkscribe.contracts.errors import ConfigError


_MIB = 1024 * 1024
_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}

DEFAULT_WHISPER_MODEL = "base"
DEFAULT_LOCAL_TIMEOUT_S = 600.0
DEFAULT_FFMPEG_TIMEOUT_S = 1800.0


@dataclass(frozen=True, slots=True)
class TranscriptionSettings:
    mode: TranscriptionMode = TranscriptionMode.AUTO
    language: str | None = None
    vocabulary: list[str] = field(default_factory=list)
    max_chunk_bytes: int = MAX_CHUNK_BYTES
    openai_api_key: str | None = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    whisper_cpp_bin: str | None = None
    whisper_model: str = DEFAULT_WHISPER_MODEL
    whisper_models_dir: Path | None = None
    local_timeout_s: float = DEFAULT_LOCAL_TIMEOUT_S
    ffmpeg_timeout_s: float = DEFAULT_FFMPEG_TIMEOUT_S
    auto_download: bool = False
    use_vad: bool = False

    def __post_init__(self) -> None:
        if not 0 < self.max_chunk_bytes <= API_LIMIT_BYTES:
            raise ConfigError(
                f"max chunk size must be between 1 byte and {API_LIMIT_BYTES // _MIB} MiB, got {self.max_chunk_bytes}"
            )
        if self.local_timeout_s <= 0 or self.ffmpeg_timeout_s <= 0:
            raise ConfigError("timeouts must be > 0")


def parse_vocabulary(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [term.strip() for term in raw.split(",") if term.strip()]


def settings_from_env(env: Mapping[str, str] | None = None) -> TranscriptionSettings:
    env = os.environ if env is None else env

    mode_raw = _get_str(env, "CHUNKSCRIBE_MODE") or TranscriptionMode.AUTO.value
    try:
        mode = TranscriptionMode(mode_raw.strip().lower())
    except ValueError:
        raise ConfigError(
            f"CHUNKSCRIBE_MODE must be one of {', '.join(m.value for m in TranscriptionMode)}, got {mode_raw!r}"
        ) from None

    models_dir = _get_str(env, "CHUNKSCRIBE_WHISPER_MODELS_DIR")
    return TranscriptionSettings(
        mode=mode,
        language=_get_str(env, "CHUNKSCRIBE_LANGUAGE"),
        vocabulary=parse_vocabulary(_get_str(env, "CHUNKSCRIBE_VOCABULARY")),
        max_chunk_bytes=int(_get_float(env, "CHUNKSCRIBE_MAX_CHUNK_MB", MAX_CHUNK_BYTES / _MIB) * _MIB),
        openai_api_key=_get_str(env, "OPENAI_API_KEY"),
        openai_model=_get_str(env, "CHUNKSCRIBE_OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        whisper_cpp_bin=_get_str(env, "CHUNKSCRIBE_WHISPER_CPP_BIN"),
        whisper_model=_get_str(env, "CHUNKSCRIBE_WHISPER_MODEL") or DEFAULT_WHISPER_MODEL,
        whisper_models_dir=Path(models_dir).expanduser() if models_dir else None,
        local_timeout_s=_get_float(env, "CHUNKSCRIBE_LOCAL_TIMEOUT_S", DEFAULT_LOCAL_TIMEOUT_S),
        ffmpeg_timeout_s=_get_float(env, "CHUNKSCRIBE_FFMPEG_TIMEOUT_S", DEFAULT_FFMPEG_TIMEOUT_S),
        auto_download=_get_bool(env, "CHUNKSCRIBE_AUTO_DOWNLOAD", False),
        use_vad=_get_bool(env, "CHUNKSCRIBE_USE_VAD", False),
    )


def _get_str(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = _get_str(env, name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = _get_str(env, name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


__all__ = [
    "DEFAULT_WHISPER_MODEL",
    "TranscriptionSettings",
    "parse_vocabulary",
    "settings_from_env",
]
