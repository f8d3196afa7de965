"""Local provider: whisper.cpp's ``whisper-cli`` run as a subprocess."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from os import PathLike
from pathlib import Path
from typing import Callable

from chunkscribe.contracts.errors import ExternalToolUnavailableError, InputValidationError, ProviderError


logger = logging.getLogger(__name__)

DEFAULT_BINARY = "whisper-cli"
WHISPER_INSTALL_HINT = "build whisper.cpp and put whisper-cli on PATH, or set CHUNKSCRIBE_WHISPER_CPP_BIN"


def resolve_binary(bin_path: str | None, which: Callable[[str], str | None] = shutil.which) -> str | None:
    candidate = bin_path or DEFAULT_BINARY
    if Path(candidate).is_file():
        return str(Path(candidate))
    return which(candidate)


class WhisperCppTranscriber:
    """Offline transcription through a whisper.cpp binary and a ggml model file."""

    name = "whisper_cpp"

    def __init__(
        self,
        model_path: str | PathLike[str],
        *,
        bin_path: str | None = None,
        language: str = "auto",
        vocabulary: list[str] | None = None,
        timeout_s: float = 600,
        no_gpu: bool = False,
        which: Callable[[str], str | None] = shutil.which,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._model_path = Path(model_path)
        self._bin_path = bin_path
        self._language = language
        self._vocabulary = list(vocabulary or [])
        self._timeout_s = timeout_s
        self._no_gpu = no_gpu
        self._which = which
        self._runner = runner

    def is_ready(self) -> bool:
        return resolve_binary(self._bin_path, self._which) is not None and self._model_path.is_file()

    def transcribe_file(self, path: str | PathLike[str]) -> str:
        path = Path(path)
        if not path.is_file():
            raise InputValidationError(f"audio file not found: {path}")
        binary = self._require_binary()
        self._require_model()

        cmd = [
            binary,
            "-m",
            str(self._model_path),
            "-f",
            str(path),
            "-l",
            self._language,
            "--no-timestamps",
            "--no-prints",
        ]
        if self._no_gpu:
            cmd.insert(1, "-ng")
        if self._vocabulary:
            cmd.extend(["--prompt", ", ".join(self._vocabulary)])

        logger.debug("Running whisper.cpp on %s with model %s", path.name, self._model_path.name)
        try:
            result = self._runner(cmd, capture_output=True, text=True, timeout=self._timeout_s, check=False)
        except subprocess.TimeoutExpired as exc:
            raise ProviderError(f"whisper.cpp timed out after {self._timeout_s:g}s on {path.name}", retryable=True) from exc
        except OSError as exc:
            raise ExternalToolUnavailableError(f"failed to launch whisper.cpp: {exc}", remediation=WHISPER_INSTALL_HINT) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            message = stderr[:200] if stderr else f"exit code {result.returncode}"
            raise ProviderError(f"local transcription failed: {message}", retryable=False)

        return " ".join((result.stdout or "").split())

    def transcribe_buffer(self, data: bytes, filename: str | None = None) -> str:
        suffix = Path(filename).suffix if filename else ".wav"
        fd, tmp_name = tempfile.mkstemp(prefix="chunkscribe-whisper-", suffix=suffix or ".wav")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(data)
            return self.transcribe_file(tmp_path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def _require_binary(self) -> str:
        binary = resolve_binary(self._bin_path, self._which)
        if binary is None:
            raise ExternalToolUnavailableError(
                f"whisper.cpp binary not found: {self._bin_path or DEFAULT_BINARY}",
                remediation=WHISPER_INSTALL_HINT,
            )
        return binary

    def _require_model(self) -> None:
        if not self._model_path.is_file():
            raise ExternalToolUnavailableError(
                f"whisper.cpp model not found: {self._model_path}",
                remediation="rerun with --download-model or set CHUNKSCRIBE_AUTO_DOWNLOAD=1",
            )


__all__ = ["DEFAULT_BINARY", "WHISPER_INSTALL_HINT", "WhisperCppTranscriber", "resolve_binary"]
