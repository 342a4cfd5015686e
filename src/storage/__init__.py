# src/storage/__init__.py
# ========================
# Artifact Storage Layer — Scribe
#
# Responsibility:
#   - Persist the archival MP3 and the transcript TXT under a shared stem
#   - Expose their public URLs (/audio, /transcriptions)
#
# Public API:
#   ArtifactWriter(audio_dir, transcripts_dir).write(...) → ArtifactRefs

from src.storage.artifact_writer import ArtifactRefs, ArtifactWriter  # noqa: F401

__all__ = ["ArtifactRefs", "ArtifactWriter"]
