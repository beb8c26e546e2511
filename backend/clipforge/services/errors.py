"""
Error taxonomy for the processing pipeline
"""
from typing import List, Optional


class PipelineError(Exception):
    """Base error for the clip processing pipeline."""


class MediaToolError(PipelineError):
    """Raised when an external media tool invocation fails."""

    stage = "media"

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ProbeError(MediaToolError):
    """Raised when a file cannot be parsed (corrupt or unsupported container)."""
    stage = "probe"


class CutError(MediaToolError):
    """Raised when cutting a segment fails."""
    stage = "cut"


class MuxError(MediaToolError):
    """Raised when replacing a video's audio track fails."""
    stage = "mux"


class SubtitleBurnError(MediaToolError):
    """Raised when burning subtitles fails. Absorbed by the adapter."""
    stage = "subtitles"


class NormalizeError(MediaToolError):
    """Raised when re-encoding to the canonical format fails."""
    stage = "normalize"


class ConcatError(MediaToolError):
    """Raised when stream concatenation fails."""
    stage = "concat"

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "",
                 failed_inputs: Optional[List[str]] = None):
        super().__init__(message, returncode, stderr)
        self.failed_inputs = failed_inputs or []


class ResizeError(MediaToolError):
    stage = "resize"


class ExtractAudioError(MediaToolError):
    stage = "extract_audio"


class MergeAudioError(MediaToolError):
    stage = "merge_audio"


class AudioNormalizeError(MediaToolError):
    stage = "normalize_audio"


class OptimizeError(MediaToolError):
    stage = "optimize"


class UnknownStyleError(PipelineError, KeyError):
    """Raised when a subtitle preset ID is not in the catalog."""

    def __str__(self):
        return Exception.__str__(self)


class AlreadyRunningError(PipelineError):
    """Raised when start() is called on an orchestrator that is processing."""


class NotFoundError(PipelineError):
    """Raised when a job ID is neither live nor persisted."""


class ValidationError(PipelineError, ValueError):
    """Raised when processing options are unusable (e.g. no input videos)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class JobStateError(PipelineError):
    """Raised on an illegal job status transition."""


class TooManyJobsError(PipelineError):
    """Raised when the registry is at its concurrent job limit."""
