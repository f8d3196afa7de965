from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable

from chunkscribe.adapters.ffmpeg import ExternalSplitter, FFMPEG_INSTALL_HINT
from chunkscribe.adapters.transcription import TranscriptionProvider
from chunkscribe.components.chunking import MAX_CHUNK_BYTES, needs_split, split_wav_buffer, split_wav_file
from chunkscribe.components.merging import merge_transcripts
from chunkscribe.components.progress import ProgressCallback, ProgressReporter
from chunkscribe.components.vad import VadConfig
from chunkscribe.components.validation import validate_audio_file
from chunkscribe.components.wav_codec import StrPath, is_wav
from chunkscribe.contracts.artifacts import ChunkTranscript, ProgressPhase, TranscriptArtifact
from chunkscribe.contracts.errors import (
    ExternalToolUnavailableError,
    InputValidationError,
    TranscriptionCancelledError,
)
from chunkscribe.utils.retry import STANDARD_RETRY_POLICY, RetryPolicy, execute, logging_retry_hook


logger = logging.getLogger(__name__)

_TEMP_DIR_PREFIX = "chunkscribe-split-"


class TranscriptionOrchestrator:
    """Validate, split when needed, transcribe chunk by chunk, and merge.

    Chunks are transcribed strictly in order, each through the retry policy.
    Temporary chunk files live in a private directory that is removed on
    every exit path. With ``vad`` set, WAV input is cut inside pauses and
    the overlapping chunk texts are de-duplicated when merged.
    """

    def __init__(
        self,
        provider: TranscriptionProvider,
        *,
        max_chunk_bytes: int = MAX_CHUNK_BYTES,
        splitter: ExternalSplitter | None = None,
        retry_policy: RetryPolicy = STANDARD_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
        temp_root: Path | None = None,
        vad: VadConfig | None = None,
    ) -> None:
        if max_chunk_bytes <= 0:
            raise ValueError("max_chunk_bytes must be > 0")
        self._provider = provider
        self._max_chunk_bytes = max_chunk_bytes
        self._splitter = splitter
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._temp_root = temp_root
        self._vad = vad

    @property
    def provider(self) -> TranscriptionProvider:
        return self._provider

    def transcribe(
        self,
        path: StrPath,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscriptArtifact:
        progress = ProgressReporter(on_progress)

        progress.emit(ProgressPhase.VALIDATING, 0, 1)
        audio_path = validate_audio_file(path)
        split = needs_split(audio_path.stat().st_size, self._max_chunk_bytes)
        if split and not is_wav(audio_path):
            self._require_splitter()
        progress.emit(ProgressPhase.VALIDATING, 1, 1)

        temp_dir: Path | None = None
        try:
            if split:
                progress.emit(ProgressPhase.SPLITTING, 0, 1)
                temp_dir = Path(tempfile.mkdtemp(prefix=_TEMP_DIR_PREFIX, dir=self._temp_root))
                chunk_paths = self._split(audio_path, temp_dir / "chunks")
                progress.emit(ProgressPhase.SPLITTING, 1, 1)
            else:
                chunk_paths = [audio_path]

            logger.info("Transcribing %s in %d chunk(s) with %s", audio_path.name, len(chunk_paths), self._provider.name)
            results = self._transcribe_each(
                [lambda p=p: self._provider.transcribe_file(p) for p in chunk_paths],
                progress,
                cancel_event,
            )
        finally:
            if temp_dir is not None:
                shutil.rmtree(temp_dir, ignore_errors=True)
                logger.debug("Removed temporary chunk directory %s", temp_dir)

        return TranscriptArtifact(
            text=merge_transcripts(results, overlapping=split and self._vad is not None and is_wav(audio_path)),
            chunk_count=len(results),
            provider=self._provider.name,
            source_path=audio_path,
            split=split,
            chunks=results,
        )

    def transcribe_buffer(
        self,
        data: bytes,
        filename: str = "audio.wav",
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscriptArtifact:
        """Transcribe an in-memory WAV file without touching the filesystem."""
        progress = ProgressReporter(on_progress)

        progress.emit(ProgressPhase.VALIDATING, 0, 1)
        if not data:
            raise InputValidationError("audio buffer is empty")
        split = needs_split(len(data), self._max_chunk_bytes)
        progress.emit(ProgressPhase.VALIDATING, 1, 1)

        if split:
            progress.emit(ProgressPhase.SPLITTING, 0, 1)
        chunks = split_wav_buffer(data, self._max_chunk_bytes, vad=self._vad)
        if split:
            progress.emit(ProgressPhase.SPLITTING, 1, 1)

        stem = Path(filename).stem or "audio"
        operations = [
            lambda c=c: self._provider.transcribe_buffer(
                c.data, filename if len(chunks) == 1 else f"{stem}_{c.index:04d}.wav"
            )
            for c in chunks
        ]
        results = self._transcribe_each(operations, progress, cancel_event)
        return TranscriptArtifact(
            text=merge_transcripts(results, overlapping=split and self._vad is not None),
            chunk_count=len(results),
            provider=self._provider.name,
            split=split,
            chunks=results,
        )

    def _require_splitter(self) -> ExternalSplitter:
        if self._splitter is None or not self._splitter.is_available():
            raise ExternalToolUnavailableError(
                f"files larger than {self._max_chunk_bytes} bytes in non-WAV formats need ffmpeg to be split",
                remediation=FFMPEG_INSTALL_HINT,
            )
        return self._splitter

    def _split(self, audio_path: Path, out_dir: Path) -> list[Path]:
        if is_wav(audio_path):
            return split_wav_file(audio_path, out_dir, self._max_chunk_bytes, vad=self._vad)
        splitter = self._require_splitter()
        return splitter.split(audio_path, out_dir, splitter.segment_seconds_for(self._max_chunk_bytes))

    def _transcribe_each(
        self,
        operations: list[Callable[[], str]],
        progress: ProgressReporter,
        cancel_event: threading.Event | None,
    ) -> list[ChunkTranscript]:
        total = len(operations)
        results: list[ChunkTranscript] = []
        progress.emit(ProgressPhase.TRANSCRIBING, 0, total)
        for index, operation in enumerate(operations):
            if cancel_event is not None and cancel_event.is_set():
                raise TranscriptionCancelledError(f"transcription cancelled before chunk {index + 1}/{total}")
            text = execute(
                operation,
                self._retry_policy,
                on_retry=logging_retry_hook(f"chunk {index + 1}/{total}", logger),
                sleep=self._sleep,
            )
            results.append(ChunkTranscript(chunk_index=index, text=text))
            progress.emit(ProgressPhase.TRANSCRIBING, index + 1, total)
        return results


__all__ = ["TranscriptionOrchestrator"]
