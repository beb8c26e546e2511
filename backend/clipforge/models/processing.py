"""
Processing request models
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from clipforge.core.config import settings
from clipforge.models.jobs import JOB_ID_PATTERN
from clipforge.models.subtitles import SubtitleSettings


class VideoFile(BaseModel):
    """Uploaded source video"""
    path: str = Field(..., description="Stored location of the upload")
    original_name: str = Field(..., description="File name as uploaded")
    relative_path: Optional[str] = Field(
        None,
        description="Path within the uploaded folder, file name included; used when the stored path has no videos/ segment",
    )

    model_config = {"frozen": True}


class AssetFile(BaseModel):
    """Single audio or trailer asset"""
    path: str
    original_name: Optional[str] = None

    model_config = {"frozen": True}


class ProcessingConfig(BaseModel):
    """Per-job processing configuration"""
    segment_duration: float = Field(
        default_factory=lambda: settings.DEFAULT_SEGMENT_DURATION,
        gt=0,
        description="Segment length in seconds",
    )
    subtitle_path: str = Field(
        default_factory=lambda: settings.DEFAULT_SUBTITLE_PATH,
        description="Directory holding candidate subtitle files",
    )
    subtitle_style_id: str = Field(
        default_factory=lambda: settings.DEFAULT_SUBTITLE_STYLE,
        description="Subtitle preset identifier",
    )
    subtitle_settings: SubtitleSettings = Field(default_factory=SubtitleSettings)

    model_config = {"frozen": True}


class ProcessingOptions(BaseModel):
    """Immutable input bundle for one job"""
    videos: List[VideoFile] = Field(default_factory=list)
    audio_file: Optional[AssetFile] = None
    trailer_video: Optional[AssetFile] = None
    config: ProcessingConfig = Field(default_factory=ProcessingConfig)

    model_config = {"frozen": True}

    @field_validator('videos')
    @classmethod
    def validate_videos(cls, v):
        names = [video.original_name for video in v]
        if any(not name.strip() for name in names):
            raise ValueError("Every video needs an original file name")
        return v


class StartJobRequest(BaseModel):
    """Start job request model"""
    job_id: Optional[str] = Field(
        None,
        pattern=JOB_ID_PATTERN,
        description="Caller-supplied job ID (letters, digits, _ and -); generated when absent",
    )
    options: ProcessingOptions


class StartJobResponse(BaseModel):
    """Start job response model"""
    job_id: str
    status: str
    total_files: int
    message: str
