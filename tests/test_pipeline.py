"""
tests/test_pipeline.py
=======================
Pipeline Orchestrator Tests

Test categories:
    1. OFFLINE — converter patched to return a real temp WAV
       - Boundary payload shape and shared artifact stem
       - Temp WAV removed on success and on every failure
       - A failed temp WAV removal never masks the stage error and never
         leaves a reachable artifact pair
       - No artifacts written when any stage before the writer fails

    2. END-TO-END — require ffmpeg on PATH (skipped otherwise)
       - 10 s stereo 44.1 kHz WAV → 16 kHz mono MP3 + non-empty TXT
       - Corrupt upload → DecodeError and no artifacts
"""

import asyncio
import os
import shutil
import sys
import tempfile
import unittest
import wave
from pathlib import Path
from unittest.mock import patch

import numpy as np

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.audio.converter import ConvertedAudio
from src.config import Settings
from src.errors import ArtifactIOError, DecodeError, InferenceError, ModelLoadError
from src.pipeline import preprocess_and_transcribe, run_pipeline
from src.storage.artifact_writer import ArtifactWriter
from src.stt.model_registry import ModelRegistry

HAS_FFMPEG = shutil.which("ffmpeg") is not None


# ===================================================================
# Fixtures
# ===================================================================


def _write_wav(path: Path, seconds: float, rate: int, channels: int) -> None:
    t = np.arange(int(seconds * rate)) / rate
    tone = (0.3 * 32767 * np.sin(2 * np.pi * 440 * t)).astype(np.int16)
    frames = np.stack([tone] * channels, axis=1).astype("<i2")
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(frames.tobytes())


class _FakeAsr:
    """Stands in for the transformers pipeline."""

    def __init__(self, text=" Hello from the fake model. "):
        self.text = text
        self.inputs = []

    def __call__(self, inputs, **kwargs):
        self.inputs.append(inputs)
        if isinstance(self.text, Exception):
            raise self.text
        return {"text": self.text}


class _PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.settings = Settings(
            audio_dir=root / "public" / "audio",
            transcripts_dir=root / "public" / "transcriptions",
            temp_dir=root / "temp",
        )
        self.settings.temp_dir.mkdir(parents=True)
        self.writer = ArtifactWriter(self.settings.audio_dir, self.settings.transcripts_dir)
        self.model = _FakeAsr()
        self.registry = ModelRegistry(lambda: self.model, model_name="fake")
        self.upload = root / "upload.wav"

    def tearDown(self):
        self._tmp.cleanup()

    def _artifact_count(self) -> int:
        count = 0
        for directory in (self.settings.audio_dir, self.settings.transcripts_dir):
            if directory.exists():
                count += len(os.listdir(directory))
        return count

    def _run(self, filename="meeting.wav", registry=None):
        return preprocess_and_transcribe(
            self.upload,
            filename,
            registry=registry or self.registry,
            writer=self.writer,
            settings=self.settings,
        )


# ===================================================================
# 1. OFFLINE
# ===================================================================


class TestPipelineOffline(_PipelineTestCase):

    def setUp(self):
        super().setUp()
        self.working_wav = self.settings.temp_dir / "temp_working.wav"
        _write_wav(self.working_wav, seconds=2.0, rate=16000, channels=1)
        patcher = patch(
            "src.pipeline.convert",
            return_value=ConvertedAudio(
                mp3_bytes=b"ID3fake", wav_path=self.working_wav, duration_seconds=2.0,
            ),
        )
        self.convert = patcher.start()
        self.addCleanup(patcher.stop)

    def test_payload_shape(self):
        result = self._run()

        self.assertEqual(result["text"], "Hello from the fake model.")
        self.assertEqual(result["audioFilename"], result["mp3Filename"])
        self.assertEqual(result["audioUrl"], f"/audio/{result['mp3Filename']}")
        self.assertEqual(
            result["transcriptionUrl"], f"/transcriptions/{result['txtFilename']}"
        )
        self.assertTrue(result["mp3Filename"].startswith("meeting_"))

    def test_artifacts_share_stem(self):
        result = self._run()

        mp3_stem, mp3_ext = os.path.splitext(result["mp3Filename"])
        txt_stem, txt_ext = os.path.splitext(result["txtFilename"])
        self.assertEqual(mp3_stem, txt_stem)
        self.assertEqual((mp3_ext, txt_ext), (".mp3", ".txt"))

        txt_path = self.settings.transcripts_dir / result["txtFilename"]
        self.assertEqual(txt_path.read_text(encoding="utf-8"), result["text"])
        mp3_path = self.settings.audio_dir / result["mp3Filename"]
        self.assertEqual(mp3_path.read_bytes(), b"ID3fake")

    def test_model_receives_normalized_signal(self):
        self._run()

        (inputs,) = self.model.inputs
        self.assertEqual(inputs["sampling_rate"], 16000)
        self.assertEqual(inputs["raw"].dtype, np.float32)
        self.assertEqual(len(inputs["raw"]), 32000)

    def test_temp_wav_removed_on_success(self):
        self._run()
        self.assertFalse(self.working_wav.exists())

    def test_model_load_failure_leaves_nothing(self):
        def broken():
            raise RuntimeError("no network")

        registry = ModelRegistry(broken)
        with self.assertRaises(ModelLoadError):
            self._run(registry=registry)

        self.assertFalse(self.working_wav.exists())
        self.assertEqual(self._artifact_count(), 0)

    def test_inference_failure_leaves_nothing(self):
        self.model.text = RuntimeError("model exploded")

        with self.assertRaises(InferenceError):
            self._run()

        self.assertFalse(self.working_wav.exists())
        self.assertEqual(self._artifact_count(), 0)

    @patch("src.pipeline.remove_temp_file", side_effect=PermissionError(13, "denied"))
    def test_temp_wav_removal_failure_withdraws_artifacts(self, _remove):
        with self.assertRaises(ArtifactIOError) as ctx:
            self._run()

        self.assertIn("denied", ctx.exception.message)
        self.assertEqual(self._artifact_count(), 0)

    @patch("src.pipeline.remove_temp_file", side_effect=PermissionError(13, "denied"))
    def test_stage_error_survives_temp_wav_removal_failure(self, _remove):
        self.model.text = RuntimeError("model exploded")

        with self.assertLogs("scribe.pipeline", level="ERROR"):
            with self.assertRaises(InferenceError) as ctx:
                self._run()

        self.assertIn("model exploded", ctx.exception.message)
        self.assertEqual(self._artifact_count(), 0)

    def test_model_resolved_once_across_uploads(self):
        calls = []

        def factory():
            calls.append(1)
            return self.model

        registry = ModelRegistry(factory)
        for _ in range(3):
            _write_wav(self.working_wav, seconds=1.0, rate=16000, channels=1)
            self._run(registry=registry)

        self.assertEqual(len(calls), 1)
        self.assertEqual(self._artifact_count(), 6)

    def test_run_pipeline_is_awaitable(self):
        result = asyncio.run(
            run_pipeline(
                self.upload, "a.mp3",
                registry=self.registry, writer=self.writer, settings=self.settings,
            )
        )
        self.assertEqual(result["text"], "Hello from the fake model.")


class TestPipelineDecodeFailure(_PipelineTestCase):

    @patch("src.pipeline.convert", side_effect=DecodeError("Audio file is corrupt."))
    def test_decode_error_propagates_without_artifacts(self, _convert):
        with self.assertRaises(DecodeError):
            self._run()
        self.assertEqual(self._artifact_count(), 0)
        self.assertEqual(self.model.inputs, [])


# ===================================================================
# 2. END-TO-END
# ===================================================================


@unittest.skipUnless(HAS_FFMPEG, "ffmpeg not available")
class TestPipelineEndToEnd(_PipelineTestCase):

    def test_stereo_44k_upload(self):
        _write_wav(self.upload, seconds=10.0, rate=44100, channels=2)

        result = self._run("standup.wav")

        from pydub import AudioSegment

        mp3 = AudioSegment.from_file(
            str(self.settings.audio_dir / result["mp3Filename"]), format="mp3",
        )
        self.assertEqual(mp3.frame_rate, 16000)
        self.assertEqual(mp3.channels, 1)

        transcript = (self.settings.transcripts_dir / result["txtFilename"]).read_text(
            encoding="utf-8"
        )
        self.assertTrue(transcript)
        self.assertEqual(os.listdir(self.settings.temp_dir), [])

        (inputs,) = self.model.inputs
        self.assertAlmostEqual(len(inputs["raw"]) / 16000, 10.0, places=1)

    def test_corrupt_upload(self):
        self.upload.write_bytes(b"\x00\x01 this is not audio at all " * 64)

        with self.assertRaises(DecodeError):
            self._run("broken.wav")

        self.assertEqual(self._artifact_count(), 0)
        self.assertEqual(os.listdir(self.settings.temp_dir), [])


if __name__ == "__main__":
    unittest.main()
