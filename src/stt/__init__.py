# src/stt/__init__.py
# ====================
# Speech-to-Text Layer — Scribe
#
# Pipeline:
#   1. Resolve the shared ASR model (single-flight, cached for the process)
#   2. Transcribe a normalized signal in 30 s windows with a 5 s stride
#   3. Return the trimmed transcript
#
# Public API:
#   ModelRegistry(factory).resolve() → model
#   transcribe(signal, model, settings=...) → TranscriptionResult

from src.stt.model_registry import ModelRegistry, ModelState, default_registry  # noqa: F401
from src.stt.transcriber import TranscriptionResult, plan_windows, transcribe  # noqa: F401

__all__ = [
    "ModelRegistry",
    "ModelState",
    "default_registry",
    "TranscriptionResult",
    "plan_windows",
    "transcribe",
]
