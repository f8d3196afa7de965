from __future__ import annotations

from pathlib import Path
import math
import struct
import tempfile
import unittest

from chunkscribe.components.chunking import (
    MAX_CHUNK_BYTES,
    ChunkingPlan,
    chunk_ranges,
    collect_chunk_paths,
    concatenate_wav_files,
    needs_split,
    payload_length,
    prepare_out_dir,
    split_wav_buffer,
    split_wav_file,
)
from chunkscribe.components.wav_codec import parse_header, read_header, write_header
from chunkscribe.contracts.artifacts import WavMetadata
from chunkscribe.contracts.errors import ChunkingError, InputValidationError, InvalidContainerError


def _wav(payload: bytes, *, channels: int = 1, bits: int = 16, sample_rate: int = 16000, declared: int | None = None) -> bytes:
    metadata = WavMetadata(
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits,
        data_size=0,
        header_size=44,
    )
    header = bytearray(write_header(metadata, len(payload)))
    if declared is not None:
        struct.pack_into("<I", header, 40, declared)
    return bytes(header) + payload


def _payload(size: int) -> bytes:
    pattern = bytes(range(256))
    return (pattern * (size // 256 + 1))[:size]


class ChunkingPlanTests(unittest.TestCase):
    def test_aligned_max_rounds_down_to_whole_frames(self) -> None:
        plan = ChunkingPlan(max_chunk_bytes=44 + 100, frame_size=6, total_data_bytes=1000)
        self.assertEqual(plan.aligned_max_per_chunk, 96)

    def test_rejects_zero_frame_size_as_malformed_container(self) -> None:
        with self.assertRaises(InvalidContainerError):
            ChunkingPlan(max_chunk_bytes=1000, frame_size=0, total_data_bytes=10)

    def test_split_of_header_without_channels_is_malformed_container(self) -> None:
        buffer = bytearray(_wav(_payload(400)))
        struct.pack_into("<H", buffer, 22, 0)

        with self.assertRaises(InvalidContainerError):
            split_wav_buffer(bytes(buffer), max_chunk_bytes=44 + 100)

    def test_rejects_ceiling_smaller_than_header_and_one_frame(self) -> None:
        with self.assertRaises(ChunkingError):
            ChunkingPlan(max_chunk_bytes=44 + 3, frame_size=4, total_data_bytes=10)

    def test_ranges_are_contiguous_and_frame_aligned(self) -> None:
        plan = ChunkingPlan(max_chunk_bytes=44 + 100, frame_size=4, total_data_bytes=1000)
        ranges = chunk_ranges(plan)

        self.assertEqual(ranges[0], (0, 100))
        self.assertEqual(ranges[-1], (900, 1000))
        for (_, end), (start, _) in zip(ranges, ranges[1:]):
            self.assertEqual(end, start)

    def test_trailing_partial_frame_is_dropped_with_warning(self) -> None:
        plan = ChunkingPlan(max_chunk_bytes=44 + 100, frame_size=4, total_data_bytes=1003)
        with self.assertLogs("chunkscribe.components.chunking", level="WARNING") as logs:
            ranges = chunk_ranges(plan)

        self.assertEqual(ranges[-1], (900, 1000))
        self.assertEqual(sum(end - start for start, end in ranges), 1000)
        self.assertIn("Dropping 3 trailing bytes", logs.output[0])


class PayloadLengthTests(unittest.TestCase):
    def _meta(self, data_size: int) -> WavMetadata:
        return WavMetadata(sample_rate=16000, channels=1, bits_per_sample=16, data_size=data_size, header_size=44)

    def test_uses_declared_size_when_consistent(self) -> None:
        self.assertEqual(payload_length(self._meta(100), 44 + 200), 100)

    def test_zero_or_oversized_declaration_uses_available_bytes(self) -> None:
        self.assertEqual(payload_length(self._meta(0), 44 + 200), 200)
        self.assertEqual(payload_length(self._meta(0xFFFFFFFF), 44 + 200), 200)


class SplitWavBufferTests(unittest.TestCase):
    def test_needs_split_is_strictly_greater_than_ceiling(self) -> None:
        self.assertFalse(needs_split(MAX_CHUNK_BYTES))
        self.assertTrue(needs_split(MAX_CHUNK_BYTES + 1))
        self.assertFalse(needs_split(100, max_chunk_bytes=100))

    def test_small_buffer_is_returned_unmodified(self) -> None:
        buffer = _wav(_payload(501))
        chunks = split_wav_buffer(buffer, max_chunk_bytes=len(buffer))

        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].index, 0)
        self.assertEqual(chunks[0].data, buffer)

    def test_chunks_are_frame_aligned_for_many_lengths_and_frame_sizes(self) -> None:
        formats = [(1, 8), (1, 16), (1, 24), (2, 16), (3, 16), (2, 32)]
        max_chunk_bytes = 44 + 100
        for channels, bits in formats:
            frame_size = channels * bits // 8
            for length in range(101, 1200, 37):
                with self.subTest(channels=channels, bits=bits, length=length):
                    payload = _payload(length)
                    chunks = split_wav_buffer(_wav(payload, channels=channels, bits=bits), max_chunk_bytes)

                    usable = (length // frame_size) * frame_size
                    self.assertEqual(b"".join(chunk.data[44:] for chunk in chunks), payload[:usable])
                    self.assertEqual([chunk.index for chunk in chunks], list(range(len(chunks))))
                    for chunk in chunks:
                        self.assertLessEqual(len(chunk.data), max_chunk_bytes)
                        self.assertEqual(chunk.payload_size % frame_size, 0)
                        header = parse_header(chunk.data)
                        self.assertEqual(header.data_size, chunk.payload_size)
                        self.assertEqual(header.channels, channels)
                        self.assertEqual(header.bits_per_sample, bits)

    def test_streaming_placeholder_size_splits_all_bytes(self) -> None:
        payload = _payload(400)
        chunks = split_wav_buffer(_wav(payload, declared=0xFFFFFFFF), max_chunk_bytes=44 + 100)

        self.assertEqual(len(chunks), 4)
        self.assertEqual(b"".join(chunk.data[44:] for chunk in chunks), payload)

    def test_oversized_non_wav_buffer_is_rejected(self) -> None:
        with self.assertRaises(InvalidContainerError):
            split_wav_buffer(b"ID3" + bytes(500), max_chunk_bytes=100)


def test_hundred_megabyte_buffer_reassembles_byte_for_byte() -> None:
    payload = bytes(range(256)) * (100 * 1024 * 1024 // 256)
    buffer = _wav(payload, channels=2, bits=16, sample_rate=44100)

    chunks = split_wav_buffer(buffer, MAX_CHUNK_BYTES)

    aligned = ((MAX_CHUNK_BYTES - 44) // 4) * 4
    assert len(chunks) == math.ceil(len(payload) / aligned)
    offset = 0
    for chunk in chunks:
        assert len(chunk.data) <= MAX_CHUNK_BYTES
        size = chunk.payload_size
        assert size % 4 == 0
        assert chunk.data[44:] == payload[offset : offset + size]
        offset += size
    assert offset == len(payload)


class SplitWavFileTests(unittest.TestCase):
    def test_writes_numbered_chunk_files_that_concatenate_back(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            source = root / "long.wav"
            original = _wav(_payload(10_000))
            source.write_bytes(original)

            paths = split_wav_file(source, root / "chunks", max_chunk_bytes=44 + 1000)

            self.assertEqual([p.name for p in paths], [f"chunk_{i:04d}.wav" for i in range(10)])
            for path in paths:
                self.assertEqual(read_header(path).data_size, 1000)

            merged = concatenate_wav_files(paths, root / "merged.wav")
            self.assertEqual(merged.read_bytes(), original)

    def test_rejects_files_smaller_than_a_header(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            source = root / "tiny.wav"
            source.write_bytes(b"RIFF")
            with self.assertRaises(InvalidContainerError):
                split_wav_file(source, root / "chunks", max_chunk_bytes=100)

    def test_header_only_file_has_nothing_to_split(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            source = root / "empty.wav"
            source.write_bytes(_wav(b""))
            with self.assertRaises(ChunkingError):
                split_wav_file(source, root / "chunks", max_chunk_bytes=100)

    def test_concatenate_requires_at_least_one_valid_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            header_only = root / "h.wav"
            header_only.write_bytes(_wav(b""))
            with self.assertRaises(InputValidationError):
                concatenate_wav_files([root / "missing.wav", header_only], root / "out.wav")

    def test_concatenate_single_file_copies_it(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            one = root / "one.wav"
            one.write_bytes(_wav(_payload(64)))
            out = concatenate_wav_files([one], root / "nested" / "out.wav")
            self.assertEqual(out.read_bytes(), one.read_bytes())


class ChunkDirectoryTests(unittest.TestCase):
    def test_collect_chunk_paths_sorts_and_checks_contiguity(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out_dir = Path(tmp)
            for name in ["chunk_0002.wav", "chunk_0000.wav", "chunk_0001.wav"]:
                (out_dir / name).write_bytes(b"wav")

            self.assertEqual(
                collect_chunk_paths(out_dir),
                [out_dir / "chunk_0000.wav", out_dir / "chunk_0001.wav", out_dir / "chunk_0002.wav"],
            )

    def test_collect_chunk_paths_rejects_gaps_and_stray_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            gap_dir = Path(tmp) / "gap"
            gap_dir.mkdir()
            (gap_dir / "chunk_0000.wav").write_bytes(b"wav")
            (gap_dir / "chunk_0002.wav").write_bytes(b"wav")
            with self.assertRaises(ChunkingError):
                collect_chunk_paths(gap_dir)

            stray_dir = Path(tmp) / "stray"
            stray_dir.mkdir()
            (stray_dir / "notes.txt").write_text("x")
            with self.assertRaises(ChunkingError):
                collect_chunk_paths(stray_dir)

    def test_prepare_out_dir_requires_empty_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out_dir = Path(tmp) / "chunks"
            self.assertEqual(prepare_out_dir(out_dir), out_dir)
            (out_dir / "leftover.wav").write_bytes(b"x")
            with self.assertRaises(ChunkingError):
                prepare_out_dir(out_dir)
