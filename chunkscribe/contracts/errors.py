from __future__ import annotations

import socket
import subprocess


RATE_LIMITED_STATUS = 429


class PipelineError(Exception):
    """Raised by the pipeline entrypoint for user-facing failures."""


class ComponentError(Exception):
    """Base exception for component-level failures."""

    def __init__(self, message: str, *, remediation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.remediation = remediation

    def __str__(self) -> str:
        if self.remediation:
            return f"{self.message} ({self.remediation})"
        return self.message


class InputValidationError(ComponentError):
    """Raised when an input path or config is invalid."""


class ConfigError(ComponentError):
    """Raised when settings are missing or malformed."""


class InvalidContainerError(ComponentError):
    """Raised when a WAV header is malformed or unsupported."""


class ChunkingError(ComponentError):
    """Raised when chunking fails or produces invalid outputs."""


class FfmpegError(ComponentError):
    """Raised when ffmpeg operations fail."""


class ExternalToolUnavailableError(FfmpegError):
    """Raised when a required external binary is not installed."""


class TranscriptionError(ComponentError):
    """Raised when transcription provider calls fail."""


class ProviderError(TranscriptionError):
    """Raised for provider/API-level failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool | None = None,
        remediation: str | None = None,
    ) -> None:
        super().__init__(message, remediation=remediation)
        self.status_code = status_code
        self.retryable = classify_status(status_code) if retryable is None else retryable


class ProviderResponseError(ProviderError):
    """Raised when a provider returns an unexpected response shape."""


class TranscriptionCancelledError(TranscriptionError):
    """Raised when the host cancels a run between chunks."""


def classify_status(status_code: int | None) -> bool:
    """Return True for HTTP statuses worth retrying (rate limits and 5xx)."""
    if status_code is None:
        return False
    return status_code == RATE_LIMITED_STATUS or 500 <= status_code < 600


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, ProviderError):
        return exc.retryable
    if isinstance(exc, ComponentError):
        return False
    # Network class: timeouts, resets, refused connections, DNS lookups.
    return isinstance(
        exc,
        (TimeoutError, ConnectionError, socket.gaierror, subprocess.TimeoutExpired),
    )


__all__ = [
    "ChunkingError",
    "ComponentError",
    "ConfigError",
    "ExternalToolUnavailableError",
    "FfmpegError",
    "InputValidationError",
    "InvalidContainerError",
    "PipelineError",
    "ProviderError",
    "ProviderResponseError",
    "TranscriptionCancelledError",
    "TranscriptionError",
    "classify_status",
    "is_retryable_error",
]
