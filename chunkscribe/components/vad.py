"""Silence detection over PCM payloads, used to place chunk boundaries between words.

Loudness is measured as the RMS of short analysis windows. With the adaptive
threshold, anything under three times the 10th-percentile window RMS counts
as silence, so a noisy room does not read as continuous speech.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass
from typing import Any

import numpy as np

from chunkscribe.contracts.artifacts import WavMetadata
from chunkscribe.contracts.errors import InvalidContainerError


logger = logging.getLogger(__name__)

ANALYSIS_WINDOW_MS = 20
NOISE_FLOOR_PERCENTILE = 10
NOISE_FLOOR_FACTOR = 3.0
_WINDOWS_PER_BLOCK = 3000


@dataclass(frozen=True, slots=True)
class VadConfig:
    silence_threshold: float = 0.01
    min_silence_duration_ms: int = 700
    chunk_overlap_ms: int = 200
    use_adaptive_threshold: bool = True

    def __post_init__(self) -> None:
        if self.silence_threshold <= 0:
            raise ValueError("silence_threshold must be > 0")
        if self.min_silence_duration_ms < ANALYSIS_WINDOW_MS:
            raise ValueError(f"min_silence_duration_ms must be >= {ANALYSIS_WINDOW_MS}")
        if self.chunk_overlap_ms < 0:
            raise ValueError("chunk_overlap_ms must be >= 0")


@dataclass(frozen=True, slots=True)
class SilenceRegion:
    start_ms: int
    end_ms: int
    avg_rms: float

    @property
    def midpoint_ms(self) -> int:
        return (self.start_ms + self.end_ms) // 2


def decode_pcm(data: Any, bits_per_sample: int) -> np.ndarray:
    """Decode little-endian integer PCM into float32 samples in ``[-1, 1)``."""
    if bits_per_sample == 8:
        raw = np.frombuffer(data, dtype=np.uint8)
        return (raw.astype(np.float32) - 128.0) / 128.0
    if bits_per_sample == 16:
        return np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0
    if bits_per_sample == 24:
        triplets = np.frombuffer(data, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        values = triplets[:, 0] | (triplets[:, 1] << 8) | (triplets[:, 2] << 16)
        values = np.where(values >= 1 << 23, values - (1 << 24), values)
        return values.astype(np.float32) / float(1 << 23)
    if bits_per_sample == 32:
        return (np.frombuffer(data, dtype="<i4").astype(np.float64) / 2147483648.0).astype(np.float32)
    raise InvalidContainerError(f"unsupported PCM sample width for silence detection: {bits_per_sample} bits")


def window_rms(payload: Any, metadata: WavMetadata, window_ms: int = ANALYSIS_WINDOW_MS) -> np.ndarray:
    """RMS of every whole analysis window in ``payload``, all channels pooled.

    The payload is decoded in blocks so a large mapped file never has to be
    converted to floats all at once.
    """
    samples_per_window = metadata.sample_rate * window_ms // 1000
    window_bytes = samples_per_window * metadata.frame_size
    if window_bytes <= 0:
        return np.empty(0, dtype=np.float32)

    window_count = len(payload) // window_bytes
    rms = np.empty(window_count, dtype=np.float32)
    with memoryview(payload) as view:
        for first in range(0, window_count, _WINDOWS_PER_BLOCK):
            last = min(first + _WINDOWS_PER_BLOCK, window_count)
            samples = decode_pcm(view[first * window_bytes : last * window_bytes], metadata.bits_per_sample)
            windows = samples.reshape(last - first, -1)
            rms[first:last] = np.sqrt(np.mean(windows**2, axis=1))
    return rms


def estimate_noise_floor(rms_values: np.ndarray, config: VadConfig) -> float:
    if len(rms_values) == 0:
        return config.silence_threshold
    floor = float(np.percentile(rms_values, NOISE_FLOOR_PERCENTILE, method="lower"))
    return max(floor * NOISE_FLOOR_FACTOR, config.silence_threshold * 0.5)


def detect_silence_regions(
    rms_values: np.ndarray,
    config: VadConfig,
    window_ms: int = ANALYSIS_WINDOW_MS,
) -> list[SilenceRegion]:
    """Runs of quiet windows lasting at least ``min_silence_duration_ms``, in time order."""
    if len(rms_values) == 0:
        return []
    threshold = estimate_noise_floor(rms_values, config) if config.use_adaptive_threshold else config.silence_threshold

    silent = np.concatenate(([False], rms_values < threshold, [False]))
    edges = np.flatnonzero(np.diff(silent.astype(np.int8)))
    regions: list[SilenceRegion] = []
    for start, end in zip(edges[0::2], edges[1::2]):
        if (end - start) * window_ms < config.min_silence_duration_ms:
            continue
        regions.append(
            SilenceRegion(
                start_ms=int(start) * window_ms,
                end_ms=int(end) * window_ms,
                avg_rms=float(np.mean(rms_values[start:end])),
            )
        )
    logger.debug("Detected %d silence regions (threshold %.4f)", len(regions), threshold)
    return regions


def silence_aware_ranges(
    usable_bytes: int,
    metadata: WavMetadata,
    silences: list[SilenceRegion],
    max_payload_bytes: int,
    overlap_ms: int,
) -> list[tuple[int, int]]:
    """Payload ``[start, end)`` ranges cut at the latest silence that fits each chunk.

    Cuts land at silence midpoints, and neighbouring chunks share
    ``overlap_ms`` of audio on either side of a cut. A stretch with no usable
    silence is cut hard at ``max_payload_bytes`` without overlap. Every bound
    is a whole number of frames and no range exceeds ``max_payload_bytes``.
    """
    frame_size = metadata.frame_size

    def to_bytes(ms: int) -> int:
        return (ms * metadata.byte_rate // 1000) // frame_size * frame_size

    overlap = to_bytes(overlap_ms)
    cuts = sorted({to_bytes(silence.midpoint_ms) for silence in silences})

    ranges: list[tuple[int, int]] = []
    start = 0
    while start < usable_bytes:
        limit = start + max_payload_bytes
        if limit >= usable_bytes:
            ranges.append((start, usable_bytes))
            break
        candidate = bisect_right(cuts, limit - overlap) - 1
        if candidate >= 0 and cuts[candidate] - overlap > start:
            cut = cuts[candidate]
            ranges.append((start, cut + overlap))
            start = cut - overlap
        else:
            ranges.append((start, limit))
            start = limit
    return ranges


__all__ = [
    "ANALYSIS_WINDOW_MS",
    "SilenceRegion",
    "VadConfig",
    "decode_pcm",
    "detect_silence_regions",
    "estimate_noise_floor",
    "silence_aware_ranges",
    "window_rms",
]
