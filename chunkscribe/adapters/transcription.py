from __future__ import annotations

from os import PathLike
from typing import Protocol


class TranscriptionProvider(Protocol):
    """Provider adapter boundary: audio in, plain text out."""

    name: str

    def transcribe_file(self, path: str | PathLike[str]) -> str:
        """Return the transcript of the audio file at ``path``."""

    def transcribe_buffer(self, data: bytes, filename: str | None = None) -> str:
        """Return the transcript of an in-memory audio file."""


__all__ = ["TranscriptionProvider"]
