"""
src/storage/artifact_writer.py
===============================
Artifact Writer — Scribe pipeline step 5

Responsibility:
    - Generate a collision-free stem ``{cleanBaseName}_{uuid4}`` per call
    - Write ``{stem}.mp3`` to the audio directory and ``{stem}.txt`` (UTF-8)
      to the transcripts directory, creating both directories if absent
    - Return the filenames and their public-facing URLs
    - Leave nothing behind when either write fails
    - Withdraw a written pair on request (discard)

Uniqueness comes from the random token; files are opened in exclusive
mode so an existing file is never overwritten.

This module does NOT:
    - List or expire previously written artifacts
    - Lock the filesystem
"""

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePath

from src.errors import ArtifactIOError

logger = logging.getLogger("scribe.storage.artifact_writer")


@dataclass(frozen=True)
class ArtifactRefs:
    """Filenames and public URLs of one invocation's artifacts."""

    stem: str
    mp3_filename: str
    audio_url: str
    txt_filename: str
    transcription_url: str


def clean_base_name(original_filename: str) -> str:
    """
    Strip directories and the final extension from an uploaded filename.

    Both POSIX and Windows separators are treated as directories so a
    client-supplied name can never escape the output directory.
    """
    name = PurePath(original_filename.replace("\\", "/")).name
    stem, dot, _ext = name.rpartition(".")
    base = stem if dot and stem else name
    base = base.strip().lstrip(".")
    return base or "audio"


class ArtifactWriter:
    """Writes the audio/transcript pair for one pipeline invocation."""

    def __init__(
        self,
        audio_dir: str | Path,
        transcripts_dir: str | Path,
        *,
        audio_url_prefix: str = "/audio",
        transcripts_url_prefix: str = "/transcriptions",
    ) -> None:
        self.audio_dir = Path(audio_dir)
        self.transcripts_dir = Path(transcripts_dir)
        self.audio_url_prefix = audio_url_prefix.rstrip("/")
        self.transcripts_url_prefix = transcripts_url_prefix.rstrip("/")

    def write(self, audio_bytes: bytes, transcript: str, original_filename: str) -> ArtifactRefs:
        """
        Persist both artifacts under a shared, freshly generated stem.

        Raises:
            ArtifactIOError: A directory or file could not be written; any
                artifact already written by this call has been removed.
        """
        stem = f"{clean_base_name(original_filename)}_{uuid.uuid4()}"
        mp3_filename = f"{stem}.mp3"
        txt_filename = f"{stem}.txt"
        mp3_path = self.audio_dir / mp3_filename
        txt_path = self.transcripts_dir / txt_filename

        written: list[Path] = []
        try:
            self.audio_dir.mkdir(parents=True, exist_ok=True)
            self.transcripts_dir.mkdir(parents=True, exist_ok=True)

            with open(mp3_path, "xb") as f:
                written.append(mp3_path)
                f.write(audio_bytes)
            logger.info("Saved MP3: %s", mp3_filename)

            with open(txt_path, "x", encoding="utf-8") as f:
                written.append(txt_path)
                f.write(transcript)
            logger.info("Saved transcription TXT: %s", txt_filename)
        except OSError as exc:
            self._rollback(written)
            raise ArtifactIOError(f"Failed to write artifacts for {stem}: {exc}") from exc

        return ArtifactRefs(
            stem=stem,
            mp3_filename=mp3_filename,
            audio_url=f"{self.audio_url_prefix}/{mp3_filename}",
            txt_filename=txt_filename,
            transcription_url=f"{self.transcripts_url_prefix}/{txt_filename}",
        )

    def discard(self, refs: ArtifactRefs) -> None:
        """Remove both artifacts of an earlier ``write`` so their URLs stop resolving."""
        self._rollback(
            [self.audio_dir / refs.mp3_filename, self.transcripts_dir / refs.txt_filename]
        )

    @staticmethod
    def _rollback(paths: list[Path]) -> None:
        for path in paths:
            try:
                os.remove(path)
                logger.warning("Removed partial artifact %s", path.name)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error("Could not remove partial artifact %s: %s", path, exc)
