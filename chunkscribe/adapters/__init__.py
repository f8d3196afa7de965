from __future__ import annotations

from .fallback import (
    AutoFallbackProvider,
    LocalOnlyProvider,
    RemoteOnlyProvider,
    TranscriptionMode,
    create_transcription_provider,
)
from .ffmpeg import ExternalSplitter, FfmpegSplitter, build_ffmpeg_segment_cmd, segment_seconds_for
from .openai_transcription import OpenAIClientLike, OpenAITranscriptionAdapter
from .transcription import TranscriptionProvider
from .whisper_cpp import WhisperCppTranscriber
from .whisper_models import WhisperModelStore

__all__ = [
    "ExternalSplitter",
    "FfmpegSplitter",
    "build_ffmpeg_segment_cmd",
    "segment_seconds_for",
    "TranscriptionProvider",
    "OpenAIClientLike",
    "OpenAITranscriptionAdapter",
    "WhisperCppTranscriber",
    "WhisperModelStore",
    "TranscriptionMode",
    "LocalOnlyProvider",
    "RemoteOnlyProvider",
    "AutoFallbackProvider",
    "create_transcription_provider",
]
