"""
src/errors.py
==============
Pipeline Error Taxonomy — Scribe

Responsibility:
    - Define the single family of exceptions raised by the audio pipeline
    - Carry a human-readable message suitable for an API error payload

Every stage raises exactly one of these types; the HTTP layer maps them to
status codes. Nothing in this package retries on any of them.
"""


class PipelineError(Exception):
    """Base class for every failure surfaced by the transcription pipeline."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DecodeError(PipelineError):
    """Input audio is unreadable or uses an unsupported codec."""
    pass


class EncodeError(PipelineError):
    """Writing one of the derived audio forms failed."""

    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(f"Failed to encode {target} audio: {message}")


class ModelLoadError(PipelineError):
    """The speech-recognition model could not be constructed."""
    pass


class InferenceError(PipelineError):
    """The model failed while transcribing a valid signal."""
    pass


class ArtifactIOError(PipelineError):
    """Writing an artifact or removing a temporary file failed."""
    pass
