"""
src/audio/normalizer.py
========================
Downmix / Resample Normalizer — Scribe pipeline step 2

Responsibility:
    - Read the working PCM WAV produced by the converter
    - Convert bit depth to 32-bit float in [-1.0, 1.0)
    - Resample every channel to the model rate (16 kHz)
    - Fold two channels into one with the energy-preserving rule
          mono[i] = sqrt(2) * (left[i] + right[i]) / 2
    - Return the result as a NormalizedSignal (never persisted)

Bit-depth and sample-rate conversion always run before the downmix.

This module does NOT:
    - Decode compressed codecs (see src/audio/converter.py)
    - Apply gain, filtering or silence trimming
    - Average more than two channels: channels beyond the second are
      ignored and a warning is logged
"""

import logging
import math
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
from scipy.signal import resample_poly

from src.errors import DecodeError

logger = logging.getLogger("scribe.audio.normalizer")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
SCALING_FACTOR = math.sqrt(2)

# Full-scale divisor per PCM sample width (bytes)
_NORM_MAP = {1: 128.0, 2: 32768.0, 3: 8388608.0, 4: 2147483648.0}


@dataclass(frozen=True)
class NormalizedSignal:
    """Single-channel float32 samples at a fixed sample rate."""

    samples: np.ndarray
    sample_rate: int = TARGET_SAMPLE_RATE

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / float(self.sample_rate)

    def __len__(self) -> int:
        return len(self.samples)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def pcm_to_float32(raw_pcm: bytes, sample_width: int, channel_count: int) -> list[np.ndarray]:
    """
    Convert interleaved little-endian PCM frames to per-channel floats.

    8-bit WAV data is unsigned; 16-, 24- and 32-bit data is signed.

    Args:
        raw_pcm:       Interleaved frame bytes as returned by ``readframes``.
        sample_width:  Bytes per sample (1–4).
        channel_count: Number of interleaved channels.

    Returns:
        One float32 array per channel.

    Raises:
        ValueError: Unsupported sample width or truncated frame data.
    """
    if sample_width not in _NORM_MAP:
        raise ValueError(f"Unsupported PCM sample width: {sample_width} bytes")
    if channel_count < 1:
        raise ValueError("channel_count must be at least 1")

    frame_size = sample_width * channel_count
    if len(raw_pcm) % frame_size:
        raise ValueError("PCM data does not contain a whole number of frames")

    if sample_width == 1:
        ints = np.frombuffer(raw_pcm, dtype=np.uint8).astype(np.int32) - 128
    elif sample_width == 2:
        ints = np.frombuffer(raw_pcm, dtype="<i2").astype(np.int32)
    elif sample_width == 3:
        b = np.frombuffer(raw_pcm, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        ints = np.where(ints & 0x800000, ints - 0x1000000, ints)
    else:
        ints = np.frombuffer(raw_pcm, dtype="<i4").astype(np.int64)

    floats = (ints / _NORM_MAP[sample_width]).astype(np.float32)
    interleaved = floats.reshape(-1, channel_count)
    return [np.ascontiguousarray(interleaved[:, ch]) for ch in range(channel_count)]


def resample(samples: np.ndarray, source_rate: int, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Polyphase resample one channel; identity when the rates already match."""
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError("Sample rates must be positive")
    if source_rate == target_rate:
        return np.asarray(samples, dtype=np.float32)

    g = math.gcd(source_rate, target_rate)
    up, down = target_rate // g, source_rate // g
    return resample_poly(np.asarray(samples, dtype=np.float32), up, down).astype(np.float32)


def downmix(channels: Sequence[np.ndarray], channel_count: int) -> np.ndarray:
    """
    Fold ``channel_count`` channel buffers into one mono buffer.

    One channel passes through unchanged. With two or more, only the first
    two are combined; the sum is evaluated in float64 and cast to float32.

    Raises:
        ValueError: Fewer buffers than ``channel_count`` or mismatched lengths.
    """
    if channel_count < 1:
        raise ValueError("channel_count must be at least 1")
    if len(channels) < channel_count:
        raise ValueError(
            f"Expected {channel_count} channel buffers, got {len(channels)}"
        )

    if channel_count == 1:
        return np.asarray(channels[0], dtype=np.float32)

    if channel_count > 2:
        logger.warning(
            "Downmixing %d channels: only the first two are combined, %d ignored.",
            channel_count, channel_count - 2,
        )

    left = np.asarray(channels[0], dtype=np.float64)
    right = np.asarray(channels[1], dtype=np.float64)
    if left.shape != right.shape:
        raise ValueError(
            f"Channel length mismatch: {left.shape[0]} vs {right.shape[0]} samples"
        )

    return (SCALING_FACTOR * (left + right) / 2).astype(np.float32)


def normalize_wav(path: str | Path, target_rate: int = TARGET_SAMPLE_RATE) -> NormalizedSignal:
    """
    Load a PCM WAV file and normalize it for inference.

    Args:
        path:        Path to a PCM WAV file.
        target_rate: Sample rate required by the model.

    Returns:
        NormalizedSignal (mono, float32, ``target_rate``).

    Raises:
        DecodeError: The file is not a readable PCM WAV.
    """
    try:
        with wave.open(str(path), "rb") as wf:
            source_rate = wf.getframerate()
            channel_count = wf.getnchannels()
            sample_width = wf.getsampwidth()
            raw_pcm = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError, OSError) as exc:
        raise DecodeError(f"Failed to read working WAV: {exc}") from exc

    try:
        channels = pcm_to_float32(raw_pcm, sample_width, channel_count)
    except ValueError as exc:
        raise DecodeError(str(exc)) from exc

    channels = [resample(ch, source_rate, target_rate) for ch in channels]
    mono = downmix(channels, channel_count)

    logger.info(
        "Normalized signal: %d samples (%.1fs) | source %d Hz %d ch %d-bit",
        len(mono), len(mono) / float(target_rate), source_rate, channel_count,
        sample_width * 8,
    )
    return NormalizedSignal(samples=mono, sample_rate=target_rate)
