from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Sequence

from chunkscribe.adapters.fallback import TranscriptionMode
from chunkscribe.contracts.artifacts import ProgressEvent, TranscriptArtifact
from chunkscribe.pipeline.config import TranscriptionSettings, parse_vocabulary, settings_from_env
from chunkscribe.pipeline.transcription_pipeline import PipelineConfig, build_pipeline_config, run as run_pipeline
from chunkscribe.utils.logging_setup import configure_logging
from chunkscribe.utils.time import Timer


logger = logging.getLogger(__name__)

type Argv = Sequence[str]

_MIB = 1024 * 1024


@dataclass(frozen=True, slots=True)
class CliRunResult:
    transcript: TranscriptArtifact
    output_path: Path | None


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {value}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Transcribe an audio file of any size, splitting it into chunks when needed.")
    parser.add_argument("--input", dest="input_path", type=Path, required=True, help="Input audio file path.")
    parser.add_argument("--output", dest="output_path", type=Path, default=None, help="Transcript text file (stdout if omitted).")
    parser.add_argument("--chunks-json", type=Path, default=None, help="Optional JSON file with per-chunk transcripts.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in TranscriptionMode],
        default=None,
        help="Provider strategy (default: CHUNKSCRIBE_MODE or auto).",
    )
    parser.add_argument("--language", default=None, help="Transcription language code (e.g. en).")
    parser.add_argument("--max-chunk-mb", type=_positive_float, default=None, help="Chunk size ceiling in MiB.")
    parser.add_argument("--vocabulary", default=None, help="Comma-separated terms to bias recognition.")
    parser.add_argument("--download-model", action="store_true", help="Download the whisper.cpp model if missing.")
    parser.add_argument("--vad", action="store_true", help="Cut WAV chunks inside pauses and de-duplicate overlapping text.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser.add_argument("--quiet", action="store_true", help="Do not print progress to stderr.")
    return parser


def parse_args(argv: Argv | None = None) -> argparse.Namespace:
    return build_parser().parse_args(list(argv) if argv is not None else None)


def apply_overrides(settings: TranscriptionSettings, args: argparse.Namespace) -> TranscriptionSettings:
    """Command-line flags take precedence over environment settings."""
    overrides: dict[str, object] = {}
    if args.mode is not None:
        overrides["mode"] = TranscriptionMode(args.mode)
    if args.language is not None:
        overrides["language"] = args.language
    if args.max_chunk_mb is not None:
        overrides["max_chunk_bytes"] = int(args.max_chunk_mb * _MIB)
    if args.vocabulary is not None:
        overrides["vocabulary"] = parse_vocabulary(args.vocabulary)
    if args.download_model:
        overrides["auto_download"] = True
    if args.vad:
        overrides["use_vad"] = True
    return replace(settings, **overrides) if overrides else settings


def print_progress(event: ProgressEvent) -> None:
    print(f"[{event.phase.value}] {event.current}/{event.total} ({event.percent}%)", file=sys.stderr)


def _print_download_progress(downloaded: int, total: int) -> None:
    percent = 0 if total <= 0 else min(100, round(100 * downloaded / total))
    print(f"\r[download] {downloaded // _MIB}/{total // _MIB} MiB ({percent}%)", end="", file=sys.stderr)


def _build_config(args: argparse.Namespace) -> PipelineConfig:
    settings = apply_overrides(settings_from_env(), args)
    return build_pipeline_config(
        settings,
        output_path=args.output_path,
        chunks_json_path=args.chunks_json,
        on_download_progress=None if args.quiet else _print_download_progress,
    )


def run_from_args(args: argparse.Namespace) -> CliRunResult:
    config = _build_config(args)
    transcript = run_pipeline(Path(args.input_path), config, None if args.quiet else print_progress)
    return CliRunResult(transcript=transcript, output_path=config.output_path)


def main(argv: Argv | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    timer = Timer.start()
    try:
        result = run_from_args(args)
    except Exception as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("error: interrupted", file=sys.stderr)
        return 130

    logger.info("Transcribed %d chunk(s) in %s", result.transcript.chunk_count, timer.format_elapsed())
    if result.output_path is None:
        print(result.transcript.text)
    else:
        print(f"transcript_path={result.output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
