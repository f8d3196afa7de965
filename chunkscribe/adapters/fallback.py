"""Provider strategies: local only, remote only, or local with per-call remote fallback."""

from __future__ import annotations

import logging
from enum import StrEnum
from os import PathLike
from typing import Callable, TypeVar

from chunkscribe.adapters.transcription import TranscriptionProvider
from chunkscribe.contracts.errors import ConfigError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class TranscriptionMode(StrEnum):
    LOCAL = "local"
    API = "api"
    AUTO = "auto"


class LocalOnlyProvider:
    def __init__(self, local: TranscriptionProvider) -> None:
        self._local = local
        self.name = f"local:{local.name}"

    def transcribe_file(self, path: str | PathLike[str]) -> str:
        return self._local.transcribe_file(path)

    def transcribe_buffer(self, data: bytes, filename: str | None = None) -> str:
        return self._local.transcribe_buffer(data, filename)


class RemoteOnlyProvider:
    def __init__(self, remote: TranscriptionProvider) -> None:
        self._remote = remote
        self.name = f"api:{remote.name}"

    def transcribe_file(self, path: str | PathLike[str]) -> str:
        return self._remote.transcribe_file(path)

    def transcribe_buffer(self, data: bytes, filename: str | None = None) -> str:
        return self._remote.transcribe_buffer(data, filename)


class AutoFallbackProvider:
    """Tries the local provider first on every call and falls back to the remote one on failure.

    Fallback is decided per call: a later call starts with the local provider
    again. Without a remote provider the local error propagates unchanged.
    """

    def __init__(self, local: TranscriptionProvider, remote: TranscriptionProvider | None = None) -> None:
        self._local = local
        self._remote = remote
        self.name = f"auto:{local.name}->{remote.name}" if remote is not None else f"auto:{local.name}"

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    def transcribe_file(self, path: str | PathLike[str]) -> str:
        return self._with_fallback(
            lambda: self._local.transcribe_file(path),
            lambda remote: remote.transcribe_file(path),
        )

    def transcribe_buffer(self, data: bytes, filename: str | None = None) -> str:
        return self._with_fallback(
            lambda: self._local.transcribe_buffer(data, filename),
            lambda remote: remote.transcribe_buffer(data, filename),
        )

    def _with_fallback(
        self,
        local_call: Callable[[], T],
        remote_call: Callable[[TranscriptionProvider], T],
    ) -> T:
        try:
            return local_call()
        except Exception as exc:
            if self._remote is None:
                raise
            logger.warning("Local transcription failed (%s); falling back to %s", exc, self._remote.name)
        return remote_call(self._remote)


def create_transcription_provider(
    mode: TranscriptionMode | str,
    *,
    local: TranscriptionProvider | None = None,
    remote: TranscriptionProvider | None = None,
) -> TranscriptionProvider:
    """Select the provider strategy once, at construction time."""
    try:
        mode = TranscriptionMode(mode)
    except ValueError:
        raise ConfigError(
            f"unknown transcription mode: {mode}",
            remediation=f"use one of: {', '.join(m.value for m in TranscriptionMode)}",
        ) from None

    if mode is TranscriptionMode.API:
        if remote is None:
            raise ConfigError("API transcription mode requires a remote provider", remediation="set OPENAI_API_KEY")
        return RemoteOnlyProvider(remote)

    if local is None:
        raise ConfigError(f"{mode.value} transcription mode requires a local provider")
    if mode is TranscriptionMode.LOCAL:
        return LocalOnlyProvider(local)
    return AutoFallbackProvider(local, remote)


__all__ = [
    "AutoFallbackProvider",
    "LocalOnlyProvider",
    "RemoteOnlyProvider",
    "TranscriptionMode",
    "create_transcription_provider",
]
