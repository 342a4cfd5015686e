"""
src/pipeline.py
================
Audio Pipeline Orchestrator — Scribe

Responsibility:
    1. Convert the uploaded file into its archival and working forms
    2. Normalize the working PCM into a mono float32 16 kHz signal
    3. Resolve the shared model from the registry
    4. Transcribe the signal in overlapping windows
    5. Persist the MP3 + TXT pair and return the boundary payload

Step order:
    Step 1: Signal Converter      → mp3 bytes + temp WAV
    Step 2: Normalizer            → NormalizedSignal
    Step 3: Model Registry        → model handle
    Step 4: Transcription Engine  → transcript text
    Step 5: Artifact Writer       → filenames + public URLs

Nothing is written to the public directories until a transcript exists, so
a failure in steps 1–4 leaves no artifacts behind. The temporary WAV is
removed on every exit path. If that removal fails after a stage error, it
is logged and the stage error propagates; if it fails after a successful
run, the artifact pair is withdrawn and ArtifactIOError is raised.

This layer MUST NOT:
    - Retry any stage
    - Delete the uploaded source file (owned by the HTTP layer)
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from src.audio.converter import convert, remove_temp_file
from src.audio.normalizer import normalize_wav
from src.config import Settings
from src.errors import ArtifactIOError
from src.storage.artifact_writer import ArtifactWriter
from src.stt.model_registry import ModelRegistry
from src.stt.transcriber import transcribe

logger = logging.getLogger("scribe.pipeline")


def preprocess_and_transcribe(
    input_path: str | Path,
    original_filename: str,
    *,
    registry: ModelRegistry,
    writer: ArtifactWriter,
    settings: Settings,
) -> dict[str, Any]:
    """
    Run the full audio pipeline for one uploaded file.

    Args:
        input_path:        Path of the uploaded file on disk.
        original_filename: Client-supplied filename (used for the stem).
        registry:          Shared model registry.
        writer:            Artifact writer for the public directories.
        settings:          Service settings.

    Returns:
        Dict with keys ``text``, ``mp3Filename``, ``audioFilename``,
        ``audioUrl``, ``txtFilename``, ``transcriptionUrl``.

    Raises:
        DecodeError, EncodeError, ModelLoadError, InferenceError,
        ArtifactIOError: the first stage failure, unchanged. ArtifactIOError
        is also raised when the temporary WAV cannot be removed after a
        successful run; the artifacts written by that run are removed first.
    """
    wav_path: Path | None = None
    try:
        # ==============================================================
        # STEP 1 — Signal conversion
        # ==============================================================
        logger.info("=" * 60)
        logger.info("STEP 1: Signal conversion (%s)", original_filename)
        logger.info("=" * 60)

        converted = convert(input_path, settings=settings)
        wav_path = converted.wav_path

        # ==============================================================
        # STEP 2 — Downmix / resample
        # ==============================================================
        logger.info("STEP 2: Normalizing working PCM")
        signal = normalize_wav(wav_path, target_rate=settings.sample_rate)

        # ==============================================================
        # STEP 3 — Model resolution
        # ==============================================================
        logger.info("STEP 3: Resolving model (state=%s)", registry.state.value)
        model = registry.resolve()

        # ==============================================================
        # STEP 4 — Transcription
        # ==============================================================
        logger.info("STEP 4: Transcription")
        result = transcribe(
            signal, model, settings=settings, inference_lock=registry.inference_lock(),
        )

        # ==============================================================
        # STEP 5 — Artifacts
        # ==============================================================
        logger.info("STEP 5: Writing artifacts")
        refs = writer.write(converted.mp3_bytes, result.text, original_filename)
    except BaseException:
        # The stage error is what the caller sees; cleanup failures are only logged
        _discard_working_wav(wav_path)
        raise

    try:
        remove_temp_file(wav_path)
    except OSError as exc:
        logger.error("Failed to remove temporary WAV %s: %s", wav_path, exc)
        writer.discard(refs)
        raise ArtifactIOError(f"Failed to remove temporary file: {exc}") from exc

    logger.info(
        "Pipeline complete: %s (%.1fs audio, %d window(s), %.1fs inference).",
        refs.stem, result.audio_seconds, result.window_count, result.elapsed_seconds,
    )
    return {
        "text": result.text,
        "mp3Filename": refs.mp3_filename,
        "audioFilename": refs.mp3_filename,
        "audioUrl": refs.audio_url,
        "txtFilename": refs.txt_filename,
        "transcriptionUrl": refs.transcription_url,
    }


def _discard_working_wav(wav_path: Path | None) -> None:
    try:
        remove_temp_file(wav_path)
    except OSError as exc:
        logger.error("Failed to remove temporary WAV %s: %s", wav_path, exc)


async def run_pipeline(
    input_path: str | Path,
    original_filename: str,
    *,
    registry: ModelRegistry,
    writer: ArtifactWriter,
    settings: Settings,
) -> dict[str, Any]:
    """
    Awaitable entry point: runs the blocking pipeline on a worker thread.

    No timeout or cancellation is applied. If the awaiting request goes
    away, the worker thread still completes and writes its artifacts.
    """
    return await asyncio.to_thread(
        preprocess_and_transcribe,
        input_path,
        original_filename,
        registry=registry,
        writer=writer,
        settings=settings,
    )
