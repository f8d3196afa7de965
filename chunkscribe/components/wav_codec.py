"""Byte-level WAV container handling: header parsing, canonical header writing, size fix-ups."""

from __future__ import annotations

import mmap
import struct
from os import PathLike
from pathlib import Path
from typing import Any

from chunkscribe.contracts.artifacts import WAV_HEADER_SIZE, WavMetadata
from chunkscribe.contracts.errors import InputValidationError, InvalidContainerError


type StrPath = str | PathLike[str]

_CHUNK_HEADER = struct.Struct("<4sI")
_CANONICAL_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")

_PCM_FMT_CHUNK_SIZE = 16
_PCM_AUDIO_FORMAT = 1
_MAX_RIFF_SIZE = 0xFFFFFFFF


def parse_header(data: Any) -> WavMetadata:
    """Parse WAV metadata from a bytes-like object (bytes, memoryview, mmap).

    Walks RIFF chunks from offset 12 until the ``data`` chunk. Format fields
    missing from the walk are read from the canonical 44-byte layout, as is
    the data size of a file without a ``data`` chunk in the scanned range.
    """
    if len(data) < WAV_HEADER_SIZE:
        raise InvalidContainerError(f"invalid WAV file: expected at least {WAV_HEADER_SIZE} bytes, got {len(data)}")
    if bytes(data[0:4]) != b"RIFF":
        raise InvalidContainerError("invalid WAV file: missing RIFF header")
    if bytes(data[8:12]) != b"WAVE":
        raise InvalidContainerError("invalid WAV file: missing WAVE format")

    fmt_fields: tuple[int, int, int] | None = None
    data_size: int | None = None
    header_size = WAV_HEADER_SIZE

    offset = 12
    while offset < len(data) - 8:
        chunk_id, chunk_size = _CHUNK_HEADER.unpack_from(data, offset)

        if chunk_id == b"fmt " and offset + 24 <= len(data):
            fmt_fields = _read_fmt_fields(data, offset + 8)

        if chunk_id == b"data":
            data_size = chunk_size
            header_size = offset + 8
            break

        # RIFF chunks are word aligned: odd sizes carry one pad byte.
        offset += 8 + chunk_size + (chunk_size & 1)

    if fmt_fields is None:
        fmt_fields = _read_fmt_fields(data, 20)
    if data_size is None:
        (data_size,) = struct.unpack_from("<I", data, 40)

    channels, sample_rate, bits_per_sample = fmt_fields
    return WavMetadata(
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits_per_sample,
        data_size=data_size,
        header_size=header_size,
    )


def _read_fmt_fields(data: Any, body_offset: int) -> tuple[int, int, int]:
    """Channels, sample rate and bits per sample from a ``fmt `` body starting at ``body_offset``."""
    (channels,) = struct.unpack_from("<H", data, body_offset + 2)
    (sample_rate,) = struct.unpack_from("<I", data, body_offset + 4)
    (bits_per_sample,) = struct.unpack_from("<H", data, body_offset + 14)
    return channels, sample_rate, bits_per_sample


def read_header(path: StrPath) -> WavMetadata:
    """Parse the header of a WAV file on disk without reading its payload."""
    path = Path(path)
    if not path.is_file():
        raise InputValidationError(f"WAV file not found: {path}")
    if path.stat().st_size < WAV_HEADER_SIZE:
        raise InvalidContainerError(f"invalid WAV file: {path} is smaller than a WAV header")
    with path.open("rb") as fh, mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
        return parse_header(mapped)


def write_header(metadata: WavMetadata, payload_length: int) -> bytes:
    """Build the canonical 44-byte PCM header for a payload of ``payload_length`` bytes."""
    if payload_length < 0:
        raise ValueError("payload_length must be >= 0")
    if payload_length > _MAX_RIFF_SIZE - 36:
        raise ValueError(f"payload_length {payload_length} does not fit a 32-bit RIFF size field")
    block_align = metadata.frame_size
    return _CANONICAL_HEADER.pack(
        b"RIFF",
        36 + payload_length,
        b"WAVE",
        b"fmt ",
        _PCM_FMT_CHUNK_SIZE,
        _PCM_AUDIO_FORMAT,
        metadata.channels,
        metadata.sample_rate,
        metadata.sample_rate * block_align,
        block_align,
        metadata.bits_per_sample,
        b"data",
        payload_length,
    )


def rewrite_size_fields(path: StrPath, actual_file_length: int | None = None) -> None:
    """Correct the RIFF and data size fields of a header written before the final size was known."""
    path = Path(path)
    if actual_file_length is None:
        actual_file_length = path.stat().st_size
    if actual_file_length < WAV_HEADER_SIZE:
        raise InvalidContainerError(f"cannot rewrite header of {path}: file shorter than {WAV_HEADER_SIZE} bytes")

    with path.open("r+b") as fh:
        fh.seek(4)
        fh.write(struct.pack("<I", actual_file_length - 8))
        fh.seek(40)
        fh.write(struct.pack("<I", actual_file_length - WAV_HEADER_SIZE))


def is_wav(path: StrPath) -> bool:
    return Path(path).suffix.lower() == ".wav"


__all__ = [
    "is_wav",
    "parse_header",
    "read_header",
    "rewrite_size_fields",
    "write_header",
]
