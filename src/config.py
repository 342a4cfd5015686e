"""
src/config.py
==============
Service Configuration — Scribe

Responsibility:
    - Read service settings from the environment (``.env`` is loaded by
      ``main.py`` before this module is used)
    - Provide one immutable ``Settings`` object passed explicitly to the
      pipeline stages

This module does NOT:
    - Create directories or touch the filesystem
    - Import or load the speech-recognition model
"""

import os
from dataclasses import dataclass
from pathlib import Path


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_ASR_MODEL = "openai/whisper-small"
DEFAULT_LANGUAGE = "english"
DEFAULT_SAMPLE_RATE = 16000          # Hz, model input rate
DEFAULT_CHUNK_LENGTH_S = 30.0        # inference window
DEFAULT_STRIDE_LENGTH_S = 5.0        # overlap on each side of a window
DEFAULT_MP3_BITRATE = "128k"
DEFAULT_MAX_AUDIO_SECONDS = 1800     # 30 minutes

ALLOWED_EXTENSIONS = (".mp3", ".wav", ".m4a", ".ogg", ".flac", ".aac", ".mkv")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Resolved service settings."""

    audio_dir: Path
    transcripts_dir: Path
    temp_dir: Path
    asr_model: str = DEFAULT_ASR_MODEL
    asr_language: str = DEFAULT_LANGUAGE
    asr_device: str | None = None
    sample_rate: int = DEFAULT_SAMPLE_RATE
    chunk_length_s: float = DEFAULT_CHUNK_LENGTH_S
    stride_length_s: float = DEFAULT_STRIDE_LENGTH_S
    mp3_bitrate: str = DEFAULT_MP3_BITRATE
    max_audio_seconds: float = DEFAULT_MAX_AUDIO_SECONDS
    serialize_inference: bool = False
    preload_model: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        public_dir = Path(os.environ.get("PUBLIC_DIR", "public"))
        stride = _env_float("STRIDE_LENGTH_S", DEFAULT_STRIDE_LENGTH_S)
        chunk = _env_float("CHUNK_LENGTH_S", DEFAULT_CHUNK_LENGTH_S)
        if chunk <= 2 * stride:
            raise ValueError(
                f"CHUNK_LENGTH_S ({chunk}) must exceed twice STRIDE_LENGTH_S ({stride})."
            )

        return cls(
            audio_dir=Path(os.environ.get("AUDIO_DIR", public_dir / "audio")),
            transcripts_dir=Path(
                os.environ.get("TRANSCRIPTS_DIR", public_dir / "transcriptions")
            ),
            temp_dir=Path(os.environ.get("TEMP_DIR", "temp")),
            asr_model=os.environ.get("ASR_MODEL", DEFAULT_ASR_MODEL),
            asr_language=os.environ.get("ASR_LANGUAGE", DEFAULT_LANGUAGE),
            asr_device=os.environ.get("ASR_DEVICE") or None,
            sample_rate=int(_env_float("TARGET_SAMPLE_RATE", DEFAULT_SAMPLE_RATE)),
            chunk_length_s=chunk,
            stride_length_s=stride,
            mp3_bitrate=os.environ.get("MP3_BITRATE", DEFAULT_MP3_BITRATE),
            max_audio_seconds=_env_float("MAX_AUDIO_SECONDS", DEFAULT_MAX_AUDIO_SECONDS),
            serialize_inference=_env_bool("SERIALIZE_INFERENCE", False),
            preload_model=_env_bool("PRELOAD_MODEL", False),
            host=os.environ.get("HOST", "127.0.0.1"),
            port=int(_env_float("PORT", 8000)),
        )
