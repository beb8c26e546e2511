"""
Job status models
"""
import re
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


# job IDs name directories under the output root
JOB_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"
_JOB_ID_RE = re.compile(JOB_ID_PATTERN)


def is_valid_job_id(job_id: str) -> bool:
    return isinstance(job_id, str) and _JOB_ID_RE.fullmatch(job_id) is not None


class JobStatus(str, Enum):
    """Job status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


class ResultStatus(str, Enum):
    """Outcome of one source video"""
    SUCCESS = "success"
    ERROR = "error"


class ProcessResult(BaseModel):
    """Result of processing one source video"""
    id: str
    original_file: str
    output_file: str = ""  # human-readable summary
    status: ResultStatus
    error: Optional[str] = None
    segments: List[str] = Field(default_factory=list)  # relative to <job>/videos

    model_config = {"frozen": True}


class JobInfo(BaseModel):
    """Job information model"""
    job_id: str
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0  # 0 to 100
    total_files: int = 0
    processed_files: int = 0
    current_file: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False  # status stays "error" when stopped by the user
    results: List[ProcessResult] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class EventType(str, Enum):
    """Events pushed to job subscribers"""
    STATUS_UPDATE = "status-update"
    FILE_PROCESSED = "file-processed"
    PROCESS_COMPLETE = "process-complete"


class ProgressEvent(BaseModel):
    """Event delivered to subscribers of one job"""
    event: EventType
    job_id: str
    data: Dict[str, Any]
