from __future__ import annotations

import logging
import mmap
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from chunkscribe.components.vad import VadConfig, detect_silence_regions, silence_aware_ranges, window_rms
from chunkscribe.components.wav_codec import StrPath, parse_header, rewrite_size_fields, write_header
from chunkscribe.contracts.artifacts import WAV_HEADER_SIZE, AudioChunk, WavMetadata
from chunkscribe.contracts.errors import ChunkingError, InputValidationError, InvalidContainerError


logger = logging.getLogger(__name__)

API_LIMIT_BYTES = 25 * 1024 * 1024
# Kept below the API limit to leave room for headers and encoding variance.
MAX_CHUNK_BYTES = 20 * 1024 * 1024

CHUNK_FILENAME_TEMPLATE = "chunk_{index:04d}.wav"
_CHUNK_NAME_RE = re.compile(r"^chunk_(\d{4})\.wav$")
_COPY_BLOCK_BYTES = 1024 * 1024


@dataclass(frozen=True, slots=True)
class ChunkingPlan:
    max_chunk_bytes: int
    frame_size: int
    total_data_bytes: int

    def __post_init__(self) -> None:
        if self.frame_size <= 0:
            raise InvalidContainerError(f"invalid WAV file: header declares a frame size of {self.frame_size} bytes")
        if self.total_data_bytes < 0:
            raise ChunkingError("total_data_bytes must be >= 0")
        if self.aligned_max_per_chunk <= 0:
            raise ChunkingError(
                f"max_chunk_bytes={self.max_chunk_bytes} cannot hold a header and one {self.frame_size}-byte frame"
            )

    @property
    def aligned_max_per_chunk(self) -> int:
        return ((self.max_chunk_bytes - WAV_HEADER_SIZE) // self.frame_size) * self.frame_size

    @classmethod
    def for_metadata(cls, metadata: WavMetadata, max_chunk_bytes: int, available_bytes: int) -> "ChunkingPlan":
        return cls(
            max_chunk_bytes=max_chunk_bytes,
            frame_size=metadata.frame_size,
            total_data_bytes=payload_length(metadata, available_bytes),
        )


def needs_split(file_size_bytes: int, max_chunk_bytes: int = MAX_CHUNK_BYTES) -> bool:
    return file_size_bytes > max_chunk_bytes


def payload_length(metadata: WavMetadata, available_bytes: int) -> int:
    """Bytes of PCM payload to split.

    Streaming recorders leave the declared size at 0 or a placeholder larger
    than the file, in which case everything after the header is payload.
    """
    available = max(0, available_bytes - metadata.header_size)
    if metadata.data_size == 0 or metadata.data_size > available:
        return available
    return metadata.data_size


def chunk_ranges(plan: ChunkingPlan) -> list[tuple[int, int]]:
    """Return payload-relative ``[start, end)`` ranges, each a whole number of frames."""
    usable = _usable_payload(plan)
    step = plan.aligned_max_per_chunk
    return [(start, min(start + step, usable)) for start in range(0, usable, step)]


def silence_aware_chunk_ranges(
    plan: ChunkingPlan,
    payload: Any,
    metadata: WavMetadata,
    vad: VadConfig,
) -> list[tuple[int, int]]:
    """Like :func:`chunk_ranges`, but cut inside pauses, with overlapping neighbours."""
    usable = _usable_payload(plan)
    silences = detect_silence_regions(window_rms(payload[:usable], metadata), vad)
    ranges = silence_aware_ranges(usable, metadata, silences, plan.aligned_max_per_chunk, vad.chunk_overlap_ms)
    logger.debug("Planned %d silence-aware chunks from %d silence regions", len(ranges), len(silences))
    return ranges


def _usable_payload(plan: ChunkingPlan) -> int:
    usable = (plan.total_data_bytes // plan.frame_size) * plan.frame_size
    dropped = plan.total_data_bytes - usable
    if dropped:
        logger.warning("Dropping %d trailing bytes that do not form a whole %d-byte frame", dropped, plan.frame_size)
    return usable


def _plan_ranges(plan: ChunkingPlan, view: memoryview, metadata: WavMetadata, vad: VadConfig | None) -> list[tuple[int, int]]:
    if vad is None:
        return chunk_ranges(plan)
    with view[metadata.header_size : metadata.header_size + plan.total_data_bytes] as payload:
        return silence_aware_chunk_ranges(plan, payload, metadata, vad)


def split_wav_buffer(
    buffer: bytes,
    max_chunk_bytes: int = MAX_CHUNK_BYTES,
    *,
    vad: VadConfig | None = None,
) -> list[AudioChunk]:
    """Split an in-memory WAV file into independently decodable WAV chunks.

    A buffer within the ceiling comes back as a single chunk holding the
    original bytes unmodified. With ``vad`` set, cuts fall inside pauses and
    neighbouring chunks share a little audio around each cut.
    """
    if not needs_split(len(buffer), max_chunk_bytes):
        return [AudioChunk(index=0, data=bytes(buffer))]

    metadata = parse_header(buffer)
    plan = ChunkingPlan.for_metadata(metadata, max_chunk_bytes, len(buffer))
    chunks: list[AudioChunk] = []
    payload_start = metadata.header_size
    with memoryview(buffer) as view:
        for index, (start, end) in enumerate(_plan_ranges(plan, view, metadata, vad)):
            with view[payload_start + start : payload_start + end] as payload:
                chunk_data = write_header(metadata, end - start) + payload
            chunks.append(AudioChunk(index=index, data=chunk_data))

    logger.info("Split %d-byte WAV buffer into %d chunks", len(buffer), len(chunks))
    return chunks


def split_wav_file(
    path: StrPath,
    out_dir: StrPath,
    max_chunk_bytes: int = MAX_CHUNK_BYTES,
    *,
    vad: VadConfig | None = None,
) -> list[Path]:
    """Split a WAV file on disk into ``chunk_NNNN.wav`` files inside ``out_dir``."""
    path = Path(path)
    if path.stat().st_size < WAV_HEADER_SIZE:
        raise InvalidContainerError(f"invalid WAV file: {path} is smaller than a WAV header")
    out_dir = prepare_out_dir(Path(out_dir))
    chunk_paths: list[Path] = []

    with path.open("rb") as fh, mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
        metadata = parse_header(mapped)
        plan = ChunkingPlan.for_metadata(metadata, max_chunk_bytes, len(mapped))
        with memoryview(mapped) as view:
            for index, (start, end) in enumerate(_plan_ranges(plan, view, metadata, vad)):
                chunk_path = out_dir / CHUNK_FILENAME_TEMPLATE.format(index=index)
                _write_chunk(
                    chunk_path,
                    write_header(metadata, end - start),
                    view,
                    metadata.header_size + start,
                    metadata.header_size + end,
                )
                chunk_paths.append(chunk_path)

    if not chunk_paths:
        raise ChunkingError(f"WAV file has no audio payload to split: {path}")
    logger.info("Split %s into %d chunks in %s", path.name, len(chunk_paths), out_dir)
    return chunk_paths


def concatenate_wav_files(input_paths: Sequence[StrPath], output_path: StrPath) -> Path:
    """Join WAV files sharing one encoding into ``output_path``.

    The first file is copied whole, later files contribute only their PCM
    payload, then the output's size fields are corrected in place.
    """
    valid_paths = [Path(p) for p in input_paths if Path(p).is_file() and Path(p).stat().st_size > WAV_HEADER_SIZE]
    if not valid_paths:
        raise InputValidationError("no valid audio files to merge")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("wb") as out:
        for position, input_path in enumerate(valid_paths):
            with input_path.open("rb") as fh, mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
                start = 0 if position == 0 else parse_header(mapped).header_size
                with memoryview(mapped) as view:
                    _copy_range(out, view, start, len(mapped))

    if len(valid_paths) > 1:
        rewrite_size_fields(output_path)
    return output_path


def collect_chunk_paths(out_dir: Path) -> list[Path]:
    chunk_paths = sorted(path for path in out_dir.iterdir() if path.is_file())
    if not chunk_paths:
        raise ChunkingError(f"no chunk files were produced in {out_dir}")

    indices: list[int] = []
    for path in chunk_paths:
        match = _CHUNK_NAME_RE.fullmatch(path.name)
        if match is None:
            raise ChunkingError(f"unexpected chunk filename: {path.name}")
        indices.append(int(match.group(1)))

    if indices != list(range(len(indices))):
        raise ChunkingError(f"chunk filenames must be contiguous and zero-based in {out_dir}")
    return chunk_paths


def prepare_out_dir(out_dir: Path) -> Path:
    if out_dir.exists() and any(out_dir.iterdir()):
        raise ChunkingError(f"chunk output directory must be empty: {out_dir}")
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


def _write_chunk(chunk_path: Path, header: bytes, view: memoryview, start: int, end: int) -> None:
    with chunk_path.open("wb") as out:
        out.write(header)
        _copy_range(out, view, start, end)


def _copy_range(out: Any, view: memoryview, start: int, end: int) -> None:
    for block_start in range(start, end, _COPY_BLOCK_BYTES):
        with view[block_start : min(block_start + _COPY_BLOCK_BYTES, end)] as block:
            out.write(block)


__all__ = [
    "API_LIMIT_BYTES",
    "CHUNK_FILENAME_TEMPLATE",
    "MAX_CHUNK_BYTES",
    "ChunkingPlan",
    "chunk_ranges",
    "collect_chunk_paths",
    "concatenate_wav_files",
    "needs_split",
    "payload_length",
    "prepare_out_dir",
    "silence_aware_chunk_ranges",
    "split_wav_buffer",
    "split_wav_file",
]
