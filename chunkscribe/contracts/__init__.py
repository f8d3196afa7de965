from .artifacts import (
    WAV_HEADER_SIZE,
    AudioChunk,
    ChunkTranscript,
    ProgressEvent,
    ProgressPhase,
    TranscriptArtifact,
    WavMetadata,
)
from .errors import (
    ChunkingError,
    ComponentError,
    ConfigError,
    ExternalToolUnavailableError,
    FfmpegError,
    InputValidationError,
    InvalidContainerError,
    PipelineError,
    ProviderError,
    ProviderResponseError,
    TranscriptionCancelledError,
    TranscriptionError,
    classify_status,
    is_retryable_error,
)

__all__ = [
    "WAV_HEADER_SIZE",
    "AudioChunk",
    "ChunkTranscript",
    "ProgressEvent",
    "ProgressPhase",
    "TranscriptArtifact",
    "WavMetadata",
    "PipelineError",
    "ComponentError",
    "InputValidationError",
    "ConfigError",
    "InvalidContainerError",
    "ChunkingError",
    "FfmpegError",
    "ExternalToolUnavailableError",
    "TranscriptionError",
    "ProviderError",
    "ProviderResponseError",
    "TranscriptionCancelledError",
    "classify_status",
    "is_retryable_error",
]
