"""
src/stt/transcriber.py
=======================
Transcription Engine — Scribe pipeline step 4

Responsibility:
    - Feed a NormalizedSignal to the resolved ASR model
    - Request windowed inference: 30 s windows with a 5 s stride on each
      side, so words at window edges are seen in full by a neighbour
    - Trim the reassembled text and report elapsed / window information

The model (a transformers ASR pipeline) owns the reassembly of overlapping
windows into one continuous text.

This module does NOT:
    - Load or cache the model (see src/stt/model_registry.py)
    - Detect the language — it is fixed by configuration
    - Mutate any shared state
"""

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Any

from src.audio.normalizer import NormalizedSignal
from src.config import Settings
from src.errors import InferenceError

logger = logging.getLogger("scribe.stt.transcriber")


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    elapsed_seconds: float
    audio_seconds: float
    window_count: int


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plan_windows(
    sample_count: int,
    sample_rate: int,
    chunk_length_s: float,
    stride_length_s: float,
) -> list[tuple[int, int]]:
    """
    Compute the ``(start, end)`` sample ranges the model will visit.

    Mirrors the chunking done by the transformers ASR pipeline: each window
    is ``chunk_length_s`` long and consecutive windows advance by
    ``chunk_length_s - 2 * stride_length_s``, so neighbours share exactly
    ``2 * stride_length_s`` of audio. A signal no longer than one window
    yields a single range.
    """
    if sample_count <= 0:
        return []

    chunk = int(round(chunk_length_s * sample_rate))
    stride = int(round(stride_length_s * sample_rate))
    step = chunk - 2 * stride
    if step <= 0:
        raise ValueError("chunk_length_s must exceed twice stride_length_s")

    windows: list[tuple[int, int]] = []
    for start in range(0, sample_count, step):
        end = min(start + chunk, sample_count)
        windows.append((start, end))
        if end >= sample_count:
            break
    return windows


def transcribe(
    signal: NormalizedSignal,
    model: Any,
    *,
    settings: Settings,
    inference_lock: contextlib.AbstractContextManager | None = None,
) -> TranscriptionResult:
    """
    Transcribe a normalized signal with the shared model.

    Args:
        signal:         Mono float32 samples at the model rate.
        model:          Callable ASR pipeline returned by the registry.
        settings:       Window/stride lengths and target language.
        inference_lock: Held around the model call when inference must be
                        serialized; ``None`` means the model is reentrant.

    Returns:
        TranscriptionResult with whitespace-trimmed text.

    Raises:
        InferenceError: Empty signal, model failure or unusable output.
    """
    if len(signal) == 0:
        raise InferenceError("Cannot transcribe an empty signal.")

    windows = plan_windows(
        len(signal), signal.sample_rate, settings.chunk_length_s, settings.stride_length_s,
    )
    logger.info(
        "Transcribing %.1fs of audio in %d window(s) (%.0fs window, %.0fs stride).",
        signal.duration_seconds, len(windows), settings.chunk_length_s, settings.stride_length_s,
    )

    start = time.monotonic()
    try:
        with inference_lock or contextlib.nullcontext():
            output = model(
                {"raw": signal.samples, "sampling_rate": signal.sample_rate},
                chunk_length_s=settings.chunk_length_s,
                stride_length_s=settings.stride_length_s,
                generate_kwargs={"language": settings.asr_language, "task": "transcribe"},
            )
    except Exception as exc:
        raise InferenceError(f"Transcription failed: {exc}") from exc
    elapsed = time.monotonic() - start

    text = _extract_text(output).strip()
    logger.info(
        "Transcription complete in %.1fs (%.2fx realtime): %d chars.",
        elapsed, elapsed / max(signal.duration_seconds, 1e-6), len(text),
    )
    if not text:
        logger.warning("Model returned an empty transcript.")

    return TranscriptionResult(
        text=text,
        elapsed_seconds=round(elapsed, 3),
        audio_seconds=round(signal.duration_seconds, 3),
        window_count=len(windows),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extract_text(output: Any) -> str:
    """Pull the text field out of a pipeline result (dict or attribute)."""
    if isinstance(output, dict):
        text = output.get("text")
    else:
        text = getattr(output, "text", None)
    if not isinstance(text, str):
        raise InferenceError(
            f"Model output has no text field (got {type(output).__name__})."
        )
    return text
