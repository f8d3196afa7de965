from __future__ import annotations

from dataclasses import replace
import json
from pathlib import Path
import tempfile
import unittest

from chunkscribe.adapters.fallback import AutoFallbackProvider, LocalOnlyProvider, RemoteOnlyProvider, TranscriptionMode
from chunkscribe.adapters.whisper_models import WhisperModelStore
from chunkscribe.components.transcription import TranscriptionOrchestrator
from chunkscribe.components.vad import VadConfig
from chunkscribe.components.wav_codec import write_header
from chunkscribe.contracts.artifacts import ChunkTranscript, ProgressEvent, TranscriptArtifact, WavMetadata
from chunkscribe.contracts.errors import ConfigError, InputValidationError, PipelineError, ProviderError
from chunkscribe.pipeline.config import TranscriptionSettings
from chunkscribe.pipeline.transcription_pipeline import (
    PipelineConfig,
    build_pipeline_config,
    build_provider,
    run,
    write_outputs,
)
from chunkscribe.utils.retry import STANDARD_RETRY_POLICY


def _wav_bytes(payload_size: int) -> bytes:
    metadata = WavMetadata(sample_rate=16000, channels=1, bits_per_sample=16, data_size=0, header_size=44)
    return write_header(metadata, payload_size) + bytes(payload_size)


class _FakeProvider:
    name = "fake"

    def __init__(self, texts: list[str]) -> None:
        self._texts = list(texts)

    def transcribe_file(self, path):  # type: ignore[no-untyped-def]
        return self._texts.pop(0)

    def transcribe_buffer(self, data, filename=None):  # type: ignore[no-untyped-def]
        return self._texts.pop(0)


class _UnavailableProvider:
    name = "unavailable"

    def __init__(self) -> None:
        self.calls = 0

    def transcribe_file(self, path):  # type: ignore[no-untyped-def]
        return self.transcribe_buffer(b"")

    def transcribe_buffer(self, data, filename=None):  # type: ignore[no-untyped-def]
        self.calls += 1
        raise ProviderError("service unavailable", status_code=503)


class BuildProviderTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.models_dir = Path(self._tmp.name) / "models"
        self.clients: list[str] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _client_factory(self, api_key: str) -> object:
        self.clients.append(api_key)
        return object()

    def _settings(self, **kwargs) -> TranscriptionSettings:  # type: ignore[no-untyped-def]
        kwargs.setdefault("whisper_models_dir", self.models_dir)
        return TranscriptionSettings(**kwargs)

    def test_api_mode_builds_remote_only_provider(self) -> None:
        provider = build_provider(
            self._settings(mode=TranscriptionMode.API, openai_api_key="sk-test"),
            client_factory=self._client_factory,
        )

        self.assertIsInstance(provider, RemoteOnlyProvider)
        self.assertEqual(provider.name, "api:openai")
        self.assertEqual(self.clients, ["sk-test"])

    def test_api_mode_without_key_is_a_config_error(self) -> None:
        with self.assertRaises(ConfigError):
            build_provider(self._settings(mode=TranscriptionMode.API), client_factory=self._client_factory)

    def test_auto_mode_without_key_or_model_still_builds(self) -> None:
        provider = build_provider(self._settings(), client_factory=self._client_factory)

        self.assertIsInstance(provider, AutoFallbackProvider)
        self.assertFalse(provider.has_remote)
        self.assertEqual(self.clients, [])

    def test_auto_mode_with_key_has_remote_fallback(self) -> None:
        provider = build_provider(self._settings(openai_api_key="sk-test"), client_factory=self._client_factory)

        self.assertIsInstance(provider, AutoFallbackProvider)
        self.assertTrue(provider.has_remote)

    def test_local_mode_requires_downloaded_model(self) -> None:
        with self.assertRaises(InputValidationError):
            build_provider(self._settings(mode=TranscriptionMode.LOCAL), client_factory=self._client_factory)

        self.models_dir.mkdir(parents=True)
        (self.models_dir / "ggml-base.bin").write_bytes(b"model")
        provider = build_provider(
            self._settings(mode=TranscriptionMode.LOCAL),
            client_factory=self._client_factory,
            model_store=WhisperModelStore(self.models_dir),
        )
        self.assertIsInstance(provider, LocalOnlyProvider)

    def test_pipeline_config_uses_standard_retry_policy_in_every_mode(self) -> None:
        self.models_dir.mkdir(parents=True)
        (self.models_dir / "ggml-base.bin").write_bytes(b"model")
        configs = {
            mode: build_pipeline_config(
                self._settings(mode=mode, openai_api_key="sk-test", max_chunk_bytes=1000),
                client_factory=self._client_factory,
            )
            for mode in TranscriptionMode
        }

        for mode, config in configs.items():
            with self.subTest(mode=mode):
                self.assertIs(config.retry_policy, STANDARD_RETRY_POLICY)
                self.assertEqual(config.max_chunk_bytes, 1000)
                self.assertIsNotNone(config.splitter)

    def test_pipeline_config_enables_silence_detection_on_request(self) -> None:
        plain = build_pipeline_config(self._settings(), client_factory=self._client_factory)
        with_vad = build_pipeline_config(self._settings(use_vad=True), client_factory=self._client_factory)

        self.assertIsNone(plain.vad)
        self.assertEqual(with_vad.vad, VadConfig())

    def test_api_mode_gives_up_after_three_attempts_per_chunk(self) -> None:
        config = build_pipeline_config(
            self._settings(mode=TranscriptionMode.API, openai_api_key="sk-test"),
            client_factory=self._client_factory,
        )
        provider = _UnavailableProvider()
        delays: list[float] = []
        orchestrator = TranscriptionOrchestrator(provider, retry_policy=config.retry_policy, sleep=delays.append)

        with self.assertRaises(ProviderError):
            orchestrator.transcribe_buffer(_wav_bytes(10))

        self.assertEqual(provider.calls, 3)
        self.assertEqual(len(delays), 2)
        self.assertTrue(all(delay <= 10.0 for delay in delays))


class RunPipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_run_writes_transcript_and_chunk_json(self) -> None:
        source = self.root / "long.wav"
        source.write_bytes(_wav_bytes(300))
        config = PipelineConfig(
            provider=_FakeProvider(["one", "two", "three"]),
            max_chunk_bytes=44 + 100,
            output_path=self.root / "out" / "transcript.txt",
            chunks_json_path=self.root / "out" / "chunks.json",
        )
        events: list[ProgressEvent] = []

        transcript = run(source, config, events.append)

        self.assertEqual(transcript.text, "one two three")
        self.assertEqual((self.root / "out" / "transcript.txt").read_text(encoding="utf-8"), "one two three\n")
        chunks = json.loads((self.root / "out" / "chunks.json").read_text(encoding="utf-8"))
        self.assertEqual(chunks, [{"chunk_index": i, "text": t} for i, t in enumerate(["one", "two", "three"])])
        self.assertEqual(events[-1].percent, 100)

    def test_run_without_output_path_only_returns_transcript(self) -> None:
        source = self.root / "short.wav"
        source.write_bytes(_wav_bytes(10))

        transcript = run(source, PipelineConfig(provider=_FakeProvider(["hi"])))

        self.assertEqual(transcript.text, "hi")
        self.assertEqual(sorted(p.name for p in self.root.iterdir()), ["short.wav"])

    def test_component_errors_become_pipeline_errors_naming_the_phase(self) -> None:
        config = PipelineConfig(provider=_FakeProvider([]), output_path=self.root / "transcript.txt")

        with self.assertRaises(PipelineError) as ctx:
            run(self.root / "missing.wav", config)

        self.assertIn("while validating", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, InputValidationError)
        self.assertFalse((self.root / "transcript.txt").exists())

    def test_pipeline_config_is_immutable(self) -> None:
        config = PipelineConfig(provider=_FakeProvider([]))
        updated = replace(config, max_chunk_bytes=123)

        self.assertEqual(updated.max_chunk_bytes, 123)
        with self.assertRaises(AttributeError):
            config.max_chunk_bytes = 5  # type: ignore[misc]


def test_write_outputs_replaces_existing_files_without_leftovers(tmp_path: Path) -> None:
    transcript = TranscriptArtifact(
        text="안녕하세요 world  ",
        chunk_count=2,
        provider="fake",
        chunks=[ChunkTranscript(chunk_index=0, text="안녕하세요"), ChunkTranscript(chunk_index=1, text="world")],
    )
    output_path = tmp_path / "transcript.txt"
    output_path.write_text("stale", encoding="utf-8")

    write_outputs(transcript, output_path=output_path, chunks_json_path=tmp_path / "nested" / "chunks.json")

    assert output_path.read_text(encoding="utf-8") == "안녕하세요 world\n"
    chunks = json.loads((tmp_path / "nested" / "chunks.json").read_text(encoding="utf-8"))
    assert chunks[0] == {"chunk_index": 0, "text": "안녕하세요"}
    assert sorted(p.name for p in tmp_path.iterdir()) == ["nested", "transcript.txt"]
    assert [p.name for p in (tmp_path / "nested").iterdir()] == ["chunks.json"]
