from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


WAV_HEADER_SIZE = 44


@dataclass(frozen=True, slots=True)
class WavMetadata:
    sample_rate: int
    channels: int
    bits_per_sample: int
    data_size: int
    header_size: int

    @property
    def frame_size(self) -> int:
        return self.channels * (self.bits_per_sample // 8)

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.frame_size


@dataclass(frozen=True, slots=True)
class AudioChunk:
    """One self-contained WAV file: its own header followed by a payload slice."""

    index: int
    data: bytes

    @property
    def payload_size(self) -> int:
        return max(0, len(self.data) - WAV_HEADER_SIZE)


@dataclass(frozen=True, slots=True)
class ChunkTranscript:
    chunk_index: int
    text: str


@dataclass(frozen=True, slots=True)
class TranscriptArtifact:
    text: str
    chunk_count: int
    provider: str
    source_path: Path | None = None
    split: bool = False
    chunks: list[ChunkTranscript] = field(default_factory=list)


class ProgressPhase(StrEnum):
    VALIDATING = "validating"
    SPLITTING = "splitting"
    TRANSCRIBING = "transcribing"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    phase: ProgressPhase
    current: int
    total: int
    percent: int


__all__ = [
    "WAV_HEADER_SIZE",
    "AudioChunk",
    "ChunkTranscript",
    "ProgressEvent",
    "ProgressPhase",
    "TranscriptArtifact",
    "WavMetadata",
]
