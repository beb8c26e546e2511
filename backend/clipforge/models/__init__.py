from .jobs import JobStatus, JobInfo, ProcessResult, ResultStatus, ProgressEvent, EventType
from .subtitles import SubtitlePosition, SubtitleStyle, SubtitleSettings, ResolvedStyle
from .processing import (
    VideoFile,
    AssetFile,
    ProcessingConfig,
    ProcessingOptions,
    StartJobRequest,
    StartJobResponse
)

__all__ = [
    "JobStatus",
    "JobInfo",
    "ProcessResult",
    "ResultStatus",
    "ProgressEvent",
    "EventType",
    "SubtitlePosition",
    "SubtitleStyle",
    "SubtitleSettings",
    "ResolvedStyle",
    "VideoFile",
    "AssetFile",
    "ProcessingConfig",
    "ProcessingOptions",
    "StartJobRequest",
    "StartJobResponse"
]
