from __future__ import annotations

from os import PathLike
from pathlib import Path
from typing import Any, Protocol

from openai import APIConnectionError, APIStatusError

from chunkscribe.contracts.errors import InputValidationError, ProviderError, ProviderResponseError


DEFAULT_MODEL = "whisper-1"
_PAYLOAD_TOO_LARGE = 413


class _OpenAITranscriptionsAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _OpenAIAudioAPI(Protocol):
    transcriptions: _OpenAITranscriptionsAPI


class OpenAIClientLike(Protocol):
    audio: _OpenAIAudioAPI


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    if hasattr(obj, name):
        return getattr(obj, name)
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump()
        if isinstance(dumped, dict):
            return dumped.get(name, default)
    return default


def _extract_text(response: Any) -> str:
    if isinstance(response, str):
        return response.strip()
    text = _field(response, "text")
    if text is None:
        raise ProviderResponseError("OpenAI transcription response missing text")
    return str(text).strip()


def provider_error_from_exception(exc: Exception) -> ProviderError:
    """Translate an OpenAI client exception into a classified ProviderError."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, APIConnectionError):
        # Also covers APITimeoutError.
        return ProviderError(f"OpenAI connection failed: {exc}", retryable=True)
    status_code = getattr(exc, "status_code", None)
    if isinstance(exc, APIStatusError) or isinstance(status_code, int):
        if status_code == _PAYLOAD_TOO_LARGE:
            return ProviderError(
                "OpenAI rejected the audio as too large",
                status_code=status_code,
                retryable=False,
                remediation="lower the chunk ceiling below the API upload limit",
            )
        return ProviderError(f"OpenAI transcription failed with HTTP {status_code}: {exc}", status_code=status_code)
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ProviderError(f"OpenAI request failed: {exc}", retryable=True)
    return ProviderError(f"OpenAI transcription failed: {exc}", retryable=False)


class OpenAITranscriptionAdapter:
    """Remote provider backed by the OpenAI audio transcription endpoint."""

    name = "openai"

    def __init__(
        self,
        client: OpenAIClientLike,
        *,
        model: str = DEFAULT_MODEL,
        language: str | None = None,
        vocabulary: list[str] | None = None,
    ) -> None:
        if not model:
            raise ValueError("model is required")
        self._client = client
        self._model = model
        self._language = language
        self._vocabulary = list(vocabulary or [])

    @property
    def vocabulary(self) -> list[str]:
        return list(self._vocabulary)

    def set_vocabulary(self, vocabulary: list[str]) -> None:
        self._vocabulary = list(vocabulary)

    def transcribe_file(self, path: str | PathLike[str]) -> str:
        path = Path(path)
        if not path.is_file():
            raise InputValidationError(f"audio file not found: {path}")
        with path.open("rb") as fh:
            return self._create(fh)

    def transcribe_buffer(self, data: bytes, filename: str | None = None) -> str:
        return self._create((filename or "audio.wav", bytes(data), "audio/wav"))

    def _create(self, file: Any) -> str:
        request_kwargs: dict[str, Any] = {"model": self._model}
        if self._language:
            request_kwargs["language"] = self._language
        if self._vocabulary:
            request_kwargs["prompt"] = ", ".join(self._vocabulary)

        try:
            response = self._client.audio.transcriptions.create(file=file, **request_kwargs)
        except Exception as exc:
            raise provider_error_from_exception(exc) from exc
        return _extract_text(response)


__all__ = [
    "DEFAULT_MODEL",
    "OpenAIClientLike",
    "OpenAITranscriptionAdapter",
    "provider_error_from_exception",
]
