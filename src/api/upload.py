"""
src/api/upload.py
==================
API Upload Endpoint — Scribe

Responsibility:
    - Expose POST /api/upload (multipart/form-data: ``file`` + ``type``)
    - Reject missing files, non-audio types and disallowed extensions
    - Store the upload in the temp directory, delegate to
      src.pipeline.run_pipeline, and always delete the upload afterwards
    - Serve artifacts read-only under /audio and /transcriptions
    - Report model state on GET /health

Error payloads:
    400 — request validation (``{"detail": ...}``)
    422 — DecodeError          (``{"error": "Processing failed", "details": ...}``)
    500 — every other pipeline failure, same shape as 422
"""

import asyncio
import logging
import os
import random
import shutil
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from src.config import ALLOWED_EXTENSIONS, Settings
from src.errors import DecodeError, PipelineError
from src.pipeline import run_pipeline
from src.storage.artifact_writer import ArtifactWriter
from src.stt.model_registry import ModelRegistry, default_registry

logger = logging.getLogger("scribe.api")

UPLOAD_FIELD = "file"
SUPPORTED_TYPES = ("audio",)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    registry: ModelRegistry | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    ``settings`` defaults to ``Settings.from_env()``; ``registry`` defaults to
    the transformers-backed registry. The registry is created here, once, and
    shared by every request through ``app.state``.
    """
    settings = settings or Settings.from_env()
    registry = registry or default_registry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for directory in (settings.audio_dir, settings.transcripts_dir, settings.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Scribe ready | audio=%s | transcripts=%s | model=%s",
            settings.audio_dir, settings.transcripts_dir, settings.asr_model,
        )
        if settings.preload_model:
            await registry.resolve_async()
        yield
        logger.info("Scribe shutting down.")

    app = FastAPI(
        title="Scribe",
        description="Audio upload → MP3 archive + speech-to-text transcript.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.writer = ArtifactWriter(settings.audio_dir, settings.transcripts_dir)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.mount("/audio", StaticFiles(directory=settings.audio_dir, check_dir=False), name="audio")
    app.mount(
        "/transcriptions",
        StaticFiles(directory=settings.transcripts_dir, check_dir=False),
        name="transcriptions",
    )

    app.add_api_route("/", index, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])
    app.add_api_route("/api/upload", upload, methods=["POST"])
    return app


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


async def index():
    return {
        "message": "Scribe API is running!",
        "endpoints": ["POST /api/upload", "GET /health"],
    }


async def health(request: Request):
    """Model registry state; the service is usable before the model loads."""
    return {"status": "ok", "model": request.app.state.registry.info()}


async def upload(
    request: Request,
    file: UploadFile | None = File(None),
    type: str | None = Form(None),
):
    """
    Accept an audio upload and return its transcript and artifact URLs.

    Args:
        file: Uploaded audio (.mp3, .wav, .m4a, .ogg, .flac, .aac, .mkv).
        type: Upload kind; only ``audio`` is handled by this service.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    upload_type = type or "audio"
    if upload_type not in SUPPORTED_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f'Missing or invalid "type". Must be one of: {", ".join(SUPPORTED_TYPES)}',
        )

    ext = Path(file.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f'Invalid file extension for "{upload_type}". Allowed: {", ".join(ALLOWED_EXTENSIONS)}',
        )

    state = request.app.state
    logger.info("Audio file received: %s", file.filename)

    upload_path: Path | None = None
    try:
        upload_path = await asyncio.to_thread(_store_upload, file, state.settings.temp_dir, ext)
        result = await run_pipeline(
            upload_path,
            file.filename,
            registry=state.registry,
            writer=state.writer,
            settings=state.settings,
        )
    except DecodeError as exc:
        logger.warning("Upload %s could not be decoded: %s", file.filename, exc.message)
        return _error_response(422, exc.message)
    except PipelineError as exc:
        logger.error("Upload processing error: %s", exc.message)
        return _error_response(500, exc.message)
    except OSError as exc:
        logger.error("Upload I/O error for %s: %s", file.filename, exc)
        return _error_response(500, str(exc))
    except Exception as exc:
        logger.error("Pipeline unexpected error: %s", exc, exc_info=True)
        return _error_response(500, str(exc))
    finally:
        if upload_path is not None:
            _discard_upload(upload_path)

    return {
        "success": True,
        "type": upload_type,
        "message": "File processed successfully",
        "text": result["text"],
        "audioUrl": result["audioUrl"],
        "mp3Filename": result["mp3Filename"],
        "txtFilename": result["txtFilename"],
        "transcriptionUrl": result["transcriptionUrl"],
        "originalFilename": file.filename,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _store_upload(file: UploadFile, temp_dir: Path, ext: str) -> Path:
    """Copy the upload into ``temp_dir`` under a unique name; no partial file survives a failure."""
    temp_dir.mkdir(parents=True, exist_ok=True)
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    path = temp_dir / f"{UPLOAD_FIELD}-{unique_suffix}{ext}"
    try:
        with open(path, "wb") as out:
            shutil.copyfileobj(file.file, out)
    except OSError:
        _discard_upload(path)
        raise
    logger.info("File size: %.2f KB", path.stat().st_size / 1024)
    return path


def _discard_upload(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("Failed to delete temp file %s: %s", path, exc)


def _error_response(status_code: int, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": "Processing failed", "details": details},
    )
