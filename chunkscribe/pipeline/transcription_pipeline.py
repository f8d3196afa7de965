from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable

from openai import OpenAI

from chunkscribe.adapters.fallback import TranscriptionMode, create_transcription_provider
from chunkscribe.adapters.ffmpeg import ExternalSplitter, FfmpegSplitter
from chunkscribe.adapters.openai_transcription import OpenAITranscriptionAdapter
from chunkscribe.adapters.transcription import TranscriptionProvider
from chunkscribe.adapters.whisper_cpp import WhisperCppTranscriber
from chunkscribe.adapters.whisper_models import DownloadProgressCallback, WhisperModelStore
from chunkscribe.components.chunking import MAX_CHUNK_BYTES
from chunkscribe.components.progress import ProgressCallback
from chunkscribe.components.transcription import TranscriptionOrchestrator
from chunkscribe.components.vad import VadConfig
from chunkscribe.contracts.artifacts import ProgressEvent, TranscriptArtifact
from chunkscribe.contracts.errors import ComponentError, PipelineError
from chunkscribe.pipeline.config import TranscriptionSettings
from chunkscribe.utils.retry import STANDARD_RETRY_POLICY, RetryPolicy


logger = logging.getLogger(__name__)

type ClientFactory = Callable[[str], Any]


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    provider: TranscriptionProvider
    splitter: ExternalSplitter | None = None
    max_chunk_bytes: int = MAX_CHUNK_BYTES
    retry_policy: RetryPolicy = STANDARD_RETRY_POLICY
    output_path: Path | None = None
    chunks_json_path: Path | None = None
    vad: VadConfig | None = None


def _load_openai_client(api_key: str) -> Any:
    return OpenAI(api_key=api_key)


def build_provider(
    settings: TranscriptionSettings,
    *,
    client_factory: ClientFactory = _load_openai_client,
    model_store: WhisperModelStore | None = None,
    on_download_progress: DownloadProgressCallback | None = None,
) -> TranscriptionProvider:
    """Assemble the provider strategy selected by ``settings.mode``."""
    remote: TranscriptionProvider | None = None
    if settings.openai_api_key:
        remote = OpenAITranscriptionAdapter(
            client_factory(settings.openai_api_key),
            model=settings.openai_model,
            language=settings.language,
            vocabulary=settings.vocabulary,
        )

    local: TranscriptionProvider | None = None
    if settings.mode is not TranscriptionMode.API:
        store = model_store or WhisperModelStore(settings.whisper_models_dir)
        if settings.mode is TranscriptionMode.LOCAL or settings.auto_download:
            model_path = store.ensure(
                settings.whisper_model,
                download=settings.auto_download,
                on_progress=on_download_progress,
            )
        else:
            # A missing model surfaces at transcription time and triggers the remote fallback.
            model_path = store.model_path(settings.whisper_model)
        local = WhisperCppTranscriber(
            model_path,
            bin_path=settings.whisper_cpp_bin,
            language=settings.language or "auto",
            vocabulary=settings.vocabulary,
            timeout_s=settings.local_timeout_s,
        )

    provider = create_transcription_provider(settings.mode, local=local, remote=remote)
    logger.info("Using transcription provider %s", provider.name)
    return provider


def build_pipeline_config(
    settings: TranscriptionSettings,
    *,
    output_path: Path | None = None,
    chunks_json_path: Path | None = None,
    client_factory: ClientFactory = _load_openai_client,
    on_download_progress: DownloadProgressCallback | None = None,
) -> PipelineConfig:
    return PipelineConfig(
        provider=build_provider(settings, client_factory=client_factory, on_download_progress=on_download_progress),
        splitter=FfmpegSplitter(timeout_s=settings.ffmpeg_timeout_s),
        max_chunk_bytes=settings.max_chunk_bytes,
        retry_policy=STANDARD_RETRY_POLICY,
        output_path=output_path,
        chunks_json_path=chunks_json_path,
        vad=VadConfig() if settings.use_vad else None,
    )


def run(
    input_path: Path,
    config: PipelineConfig,
    on_progress: ProgressCallback | None = None,
    *,
    cancel_event: threading.Event | None = None,
) -> TranscriptArtifact:
    orchestrator = TranscriptionOrchestrator(
        config.provider,
        max_chunk_bytes=config.max_chunk_bytes,
        splitter=config.splitter,
        retry_policy=config.retry_policy,
        vad=config.vad,
    )

    phase = "validating"

    def track(event: ProgressEvent) -> None:
        nonlocal phase
        phase = event.phase.value
        if on_progress is not None:
            on_progress(event)

    try:
        transcript = orchestrator.transcribe(Path(input_path), on_progress=track, cancel_event=cancel_event)
    except ComponentError as exc:
        raise PipelineError(f"transcription failed while {phase}: {exc}") from exc

    write_outputs(transcript, output_path=config.output_path, chunks_json_path=config.chunks_json_path)
    return transcript


def write_outputs(
    transcript: TranscriptArtifact,
    *,
    output_path: Path | None = None,
    chunks_json_path: Path | None = None,
) -> None:
    """Write the merged text and the per-chunk JSON, each replacing its target in one step.

    A reader never sees a half-written transcript: the bytes go to a sibling
    temp file that is renamed over the target.
    """
    if output_path is not None:
        _replace_file(Path(output_path), (transcript.text.rstrip() + "\n").encode("utf-8"))
        logger.info("Transcript written to %s", output_path)
    if chunks_json_path is not None:
        chunks = [asdict(chunk) for chunk in transcript.chunks]
        _replace_file(Path(chunks_json_path), json.dumps(chunks, indent=2, ensure_ascii=False).encode("utf-8"))
        logger.info("Chunk transcripts written to %s", chunks_json_path)


def _replace_file(target: Path, payload: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=target.parent, prefix=f".{target.name}.", delete=False) as staged:
        staged_path = Path(staged.name)
    try:
        staged_path.write_bytes(payload)
        os.replace(staged_path, target)
    except OSError:
        staged_path.unlink(missing_ok=True)
        raise


__all__ = [
    "PipelineConfig",
    "build_pipeline_config",
    "build_provider",
    "run",
    "write_outputs",
]
