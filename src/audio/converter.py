"""
src/audio/converter.py
=======================
Signal Converter — Scribe pipeline step 1

Responsibility:
    - Decode an uploaded audio file of any container/codec ffmpeg supports
    - Produce the archival form: mono, 16 kHz, 128 kbit/s MP3 (in memory)
    - Produce the working form: mono, 16 kHz, 16-bit PCM WAV (temp file)
    - Surface decode and encode faults as DecodeError / EncodeError

Both forms are derived from the same decoded segment, so a codec problem
shows up identically for each of them.

This module does NOT:
    - Write anything to the public artifact directories
    - Convert bit depth to float or downmix (see src/audio/normalizer.py)
    - Delete the uploaded source file (owned by the caller)
"""

import asyncio
import io
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from src.config import Settings
from src.errors import DecodeError, EncodeError

logger = logging.getLogger("scribe.audio.converter")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_CHANNELS = 1  # mono
PCM_SAMPLE_WIDTH = 2  # bytes, pcm_s16le
ARCHIVAL_FORMAT = "mp3"
ARCHIVAL_CODEC = "libmp3lame"
WORKING_FORMAT = "wav"


@dataclass(frozen=True)
class ConvertedAudio:
    """Both derived forms of one uploaded file."""

    mp3_bytes: bytes
    wav_path: Path
    duration_seconds: float


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def convert(input_path: str | Path, *, settings: Settings) -> ConvertedAudio:
    """
    Decode ``input_path`` once and re-encode it to both target forms.

    Steps:
        1. Decode (pydub → ffmpeg)
        2. Validate duration
        3. Downmix to mono and resample to the model rate
        4. Export archival MP3 into memory
        5. Export working WAV into the temp directory

    Args:
        input_path: Path to the uploaded audio file.
        settings:   Service settings (sample rate, bitrate, temp dir).

    Returns:
        ConvertedAudio holding the MP3 bytes and the temp WAV path. The
        caller owns the WAV file and must delete it.

    Raises:
        DecodeError: The input could not be decoded or is empty/too long.
        EncodeError: One of the two exports failed; ``target`` names it.
    """
    source = _decode(Path(input_path), settings)

    segment = source
    if segment.channels != TARGET_CHANNELS:
        segment = segment.set_channels(TARGET_CHANNELS)
    if segment.frame_rate != settings.sample_rate:
        segment = segment.set_frame_rate(settings.sample_rate)

    mp3_bytes = _export_archival(segment, settings.mp3_bitrate)
    wav_path = _export_working(segment, settings.temp_dir)

    duration = len(segment) / 1000.0
    logger.info(
        "Converted %s: %.1fs | source %d Hz %d ch -> %d Hz mono | mp3=%.1f KB",
        Path(input_path).name, duration, source.frame_rate, source.channels,
        settings.sample_rate, len(mp3_bytes) / 1024,
    )
    return ConvertedAudio(mp3_bytes=mp3_bytes, wav_path=wav_path, duration_seconds=duration)


async def convert_async(input_path: str | Path, *, settings: Settings) -> ConvertedAudio:
    """Awaitable form of :func:`convert`; decoding runs on a worker thread."""
    return await asyncio.to_thread(convert, input_path, settings=settings)


def remove_temp_file(path: str | Path | None) -> None:
    """
    Remove a temporary file if it exists.

    Missing files are ignored; any other OS failure propagates.
    """
    if path is None:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decode(path: Path, settings: Settings) -> AudioSegment:
    """Decode the source file and run the basic sanity checks."""
    if not path.is_file():
        raise DecodeError(f"Audio file not found: {path.name}")
    if path.stat().st_size == 0:
        raise DecodeError("Audio file is empty.")

    try:
        audio = AudioSegment.from_file(str(path))
    except CouldntDecodeError as exc:
        raise DecodeError("Audio file is corrupt or could not be decoded.") from exc
    except Exception as exc:
        raise DecodeError(f"Unexpected error decoding audio: {exc}") from exc

    duration_seconds = len(audio) / 1000.0
    if duration_seconds == 0:
        raise DecodeError("Audio file has zero duration.")
    if duration_seconds > settings.max_audio_seconds:
        raise DecodeError(
            f"Audio duration ({duration_seconds:.1f}s) exceeds the "
            f"maximum allowed ({settings.max_audio_seconds:.0f}s)."
        )
    return audio


def _export_archival(segment: AudioSegment, bitrate: str) -> bytes:
    try:
        buffer = io.BytesIO()
        segment.export(buffer, format=ARCHIVAL_FORMAT, codec=ARCHIVAL_CODEC, bitrate=bitrate)
        return buffer.getvalue()
    except Exception as exc:
        raise EncodeError("archival", str(exc)) from exc


def _export_working(segment: AudioSegment, temp_dir: Path) -> Path:
    temp_dir.mkdir(parents=True, exist_ok=True)
    wav_path = temp_dir / f"temp_{uuid.uuid4()}.wav"
    try:
        # 16-bit samples make pydub write pcm_s16le natively
        segment.set_sample_width(PCM_SAMPLE_WIDTH).export(str(wav_path), format=WORKING_FORMAT)
    except Exception as exc:
        remove_temp_file(wav_path)
        raise EncodeError("working", str(exc)) from exc
    return wav_path
