"""Local ggml model storage for whisper.cpp, with streamed downloads from Hugging Face."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import requests

from chunkscribe.contracts.errors import InputValidationError, ProviderError, classify_status


logger = logging.getLogger(__name__)

type DownloadProgressCallback = Callable[[int, int], None]

_HF_BASE_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"
_DOWNLOAD_BLOCK_BYTES = 1024 * 1024
_DOWNLOAD_TIMEOUT_S = 60

DEFAULT_MODELS_DIR = Path.home() / ".chunkscribe" / "models" / "whisper"


@dataclass(frozen=True, slots=True)
class ModelInfo:
    name: str
    filename: str
    size_bytes: int

    @property
    def url(self) -> str:
        return f"{_HF_BASE_URL}/{self.filename}"


MODELS: dict[str, ModelInfo] = {
    "tiny": ModelInfo("tiny", "ggml-tiny.bin", 75_000_000),
    "base": ModelInfo("base", "ggml-base.bin", 142_000_000),
    "small": ModelInfo("small", "ggml-small.bin", 466_000_000),
    "medium": ModelInfo("medium", "ggml-medium.bin", 1_500_000_000),
    "large": ModelInfo("large", "ggml-large.bin", 2_900_000_000),
}


def model_info(model: str) -> ModelInfo:
    try:
        return MODELS[model]
    except KeyError:
        raise InputValidationError(
            f"unknown whisper model: {model}",
            remediation=f"choose one of: {', '.join(MODELS)}",
        ) from None


class WhisperModelStore:
    def __init__(self, models_dir: Path | None = None, *, session: Any | None = None) -> None:
        self.models_dir = Path(models_dir) if models_dir is not None else DEFAULT_MODELS_DIR
        self._session = session

    def model_path(self, model: str) -> Path:
        return self.models_dir / model_info(model).filename

    def is_downloaded(self, model: str) -> bool:
        return self.model_path(model).is_file()

    def list_models(self) -> list[dict[str, Any]]:
        return [
            {
                "model": info.name,
                "downloaded": self.is_downloaded(info.name),
                "path": self.model_path(info.name),
                "size_bytes": info.size_bytes,
            }
            for info in MODELS.values()
        ]

    def ensure(self, model: str, *, download: bool, on_progress: DownloadProgressCallback | None = None) -> Path:
        if self.is_downloaded(model):
            return self.model_path(model)
        if not download:
            raise InputValidationError(
                f"whisper model '{model}' is not downloaded",
                remediation="rerun with --download-model or set CHUNKSCRIBE_AUTO_DOWNLOAD=1",
            )
        return self.download(model, on_progress=on_progress)

    def download(self, model: str, *, on_progress: DownloadProgressCallback | None = None) -> Path:
        info = model_info(model)
        destination = self.model_path(model)
        self.models_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Downloading whisper model %s from %s", model, info.url)
        http = self._session if self._session is not None else requests
        fd, tmp_name = tempfile.mkstemp(prefix=f"{info.filename}.", suffix=".part", dir=self.models_dir)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                try:
                    with http.get(info.url, stream=True, timeout=_DOWNLOAD_TIMEOUT_S) as response:
                        response.raise_for_status()
                        total = int(response.headers.get("content-length") or info.size_bytes)
                        downloaded = 0
                        for block in response.iter_content(chunk_size=_DOWNLOAD_BLOCK_BYTES):
                            if not block:
                                continue
                            out.write(block)
                            downloaded += len(block)
                            if on_progress is not None:
                                on_progress(downloaded, total)
                except requests.RequestException as exc:
                    status_code = getattr(getattr(exc, "response", None), "status_code", None)
                    retryable = isinstance(exc, (requests.ConnectionError, requests.Timeout)) or classify_status(status_code)
                    raise ProviderError(
                        f"failed to download whisper model {model}: {exc}",
                        status_code=status_code,
                        retryable=retryable,
                    ) from exc
            os.replace(tmp_path, destination)
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info("Whisper model %s saved to %s", model, destination)
        return destination


__all__ = [
    "DEFAULT_MODELS_DIR",
    "MODELS",
    "DownloadProgressCallback",
    "ModelInfo",
    "WhisperModelStore",
    "model_info",
]
