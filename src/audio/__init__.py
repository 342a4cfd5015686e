# src/audio/__init__.py
# ======================
# Audio Processing Layer — Scribe
#
# Responsibility:
#   - Decode uploads and derive the archival MP3 + working WAV (converter)
#   - Convert working PCM to mono float32 at 16 kHz (normalizer)
#
# Public API:
#   convert(input_path, settings=...)  → ConvertedAudio
#   normalize_wav(path)            → NormalizedSignal
#   downmix(channels, count)       → np.ndarray

from src.audio.converter import ConvertedAudio, convert, convert_async  # noqa: F401
from src.audio.normalizer import NormalizedSignal, downmix, normalize_wav  # noqa: F401

__all__ = [
    "ConvertedAudio",
    "convert",
    "convert_async",
    "NormalizedSignal",
    "downmix",
    "normalize_wav",
]
