"""
src/stt/model_registry.py
==========================
Model Registry — Scribe pipeline step 3

Responsibility:
    - Lazily construct the speech-recognition model on first use
    - Cache it for the process lifetime and hand the same instance to every
      transcription call
    - Guarantee at most one construction in flight (single-flight): callers
      arriving while the model is loading wait for that attempt and observe
      the same handle or the same ModelLoadError
    - Return to UNLOADED after a failed construction so the next call retries
    - Optionally serialize inference behind a second, independent lock

State machine:
    UNLOADED -> LOADING -> READY
    LOADING  -> UNLOADED   (construction failed)

This module does NOT:
    - Run inference (see src/stt/transcriber.py)
    - Unload the model; teardown happens implicitly at process exit
"""

import asyncio
import contextlib
import logging
import threading
import time
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable

from src.config import Settings
from src.errors import ModelLoadError

logger = logging.getLogger("scribe.stt.model_registry")

ProgressCallback = Callable[[dict[str, Any]], None]
ModelFactory = Callable[[], Any]


class ModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


# ---------------------------------------------------------------------------
# Default factory: HuggingFace transformers ASR pipeline
# ---------------------------------------------------------------------------


def build_asr_pipeline(settings: Settings) -> ModelFactory:
    """
    Return a factory that builds a transformers ASR pipeline.

    torch and transformers are imported inside the factory so that importing
    this module stays cheap.
    """

    def _factory() -> Any:
        import torch
        from transformers import pipeline

        device = settings.asr_device
        if device is None:
            device = "cuda:0" if torch.cuda.is_available() else "cpu"
        torch_dtype = torch.float16 if device.startswith("cuda") else torch.float32

        return pipeline(
            "automatic-speech-recognition",
            model=settings.asr_model,
            device=device,
            torch_dtype=torch_dtype,
        )

    return _factory


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ModelRegistry:
    """
    Single-flight owner of the shared recognition model.

    Parameters
    ----------
    factory : callable
        Zero-argument callable building the model. May take seconds.
    model_name : str
        Label used in logs and ``info()``.
    device : str
        Device the factory targets, as reported by ``info()``; ``"auto"``
        when the factory picks it at load time.
    serialize_inference : bool
        Set when the model implementation is not reentrant; inference calls
        then hold ``inference_lock()`` one at a time.
    on_progress : callable, optional
        Receives ``{"status": ..., "model": ..., "elapsed_seconds": ...}``
        events for ``loading``, ``ready`` and ``failed``.
    """

    def __init__(
        self,
        factory: ModelFactory,
        *,
        model_name: str = "asr-model",
        device: str = "auto",
        serialize_inference: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._factory = factory
        self._model_name = model_name
        self._device = device
        self._on_progress = on_progress

        self._lock = threading.Lock()
        self._state = ModelState.UNLOADED
        self._model: Any = None
        self._inflight: Future | None = None
        self._load_seconds: float | None = None

        self._inference_lock = threading.Lock() if serialize_inference else None

    # ---- state ------------------------------------------------------------

    @property
    def state(self) -> ModelState:
        with self._lock:
            return self._state

    def is_ready(self) -> bool:
        return self.state is ModelState.READY

    def info(self) -> dict[str, Any]:
        with self._lock:
            return {
                "model": self._model_name,
                "device": self._device,
                "state": self._state.value,
                "loaded": self._state is ModelState.READY,
                "load_time_seconds": self._load_seconds,
                "serialize_inference": self._inference_lock is not None,
            }

    # ---- resolution ---------------------------------------------------------

    def resolve(self) -> Any:
        """
        Return the ready model, constructing it on the first call.

        Raises:
            ModelLoadError: Construction failed. Every caller that waited on
                the same attempt receives this same exception instance.
        """
        with self._lock:
            if self._state is ModelState.READY:
                return self._model
            if self._state is ModelState.LOADING:
                future = self._inflight
                owner = False
            else:
                future = Future()
                self._inflight = future
                self._state = ModelState.LOADING
                owner = True

        if not owner:
            logger.debug("Model %s is loading — waiting for in-flight attempt.", self._model_name)
            return future.result()

        return self._construct(future)

    async def resolve_async(self) -> Any:
        """Awaitable form of :meth:`resolve`."""
        return await asyncio.to_thread(self.resolve)

    def inference_lock(self) -> contextlib.AbstractContextManager:
        """Lock to hold around model calls; a no-op when inference is reentrant."""
        if self._inference_lock is None:
            return contextlib.nullcontext()
        return self._inference_lock

    # ---- internals ----------------------------------------------------------

    def _construct(self, future: Future) -> Any:
        start = time.monotonic()
        logger.info("Loading model %s (first request, will be cached)...", self._model_name)
        self._emit("loading", 0.0)

        try:
            model = self._factory()
        except BaseException as exc:
            # Waiters must be released even on KeyboardInterrupt / SystemExit
            elapsed = time.monotonic() - start
            reason = str(exc) or type(exc).__name__
            error = ModelLoadError(f"Failed to load model {self._model_name}: {reason}")
            with self._lock:
                self._state = ModelState.UNLOADED
                self._inflight = None
            logger.error("Model %s failed to load after %.1fs: %s", self._model_name, elapsed, reason)
            self._emit("failed", elapsed)
            future.set_exception(error)
            if not isinstance(exc, Exception):
                raise
            raise error from exc

        elapsed = time.monotonic() - start
        with self._lock:
            self._model = model
            self._load_seconds = round(elapsed, 3)
            self._state = ModelState.READY
            self._inflight = None
        logger.info("Model %s loaded and cached in %.1fs.", self._model_name, elapsed)
        self._emit("ready", elapsed)
        future.set_result(model)
        return model

    def _emit(self, status: str, elapsed: float) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(
                {"status": status, "model": self._model_name, "elapsed_seconds": round(elapsed, 3)}
            )
        except Exception:
            logger.warning("Progress callback raised — ignoring.", exc_info=True)


def default_registry(settings: Settings, on_progress: ProgressCallback | None = None) -> ModelRegistry:
    """Build the registry backing the service's transformers pipeline."""
    return ModelRegistry(
        build_asr_pipeline(settings),
        model_name=settings.asr_model,
        device=settings.asr_device or "auto",
        serialize_inference=settings.serialize_inference,
        on_progress=on_progress,
    )
