"""
Job state store
Holds per-job status in memory and mirrors every change to
<output>/<job_id>/status.json so status survives a process restart
"""
import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from clipforge.core.config import settings
from clipforge.models.jobs import JobInfo, JobStatus, ProcessResult, is_valid_job_id
from clipforge.services.errors import JobStateError, NotFoundError

logger = logging.getLogger(__name__)

STATUS_FILENAME = "status.json"


class JobStateStore:
    """
    In-memory job records with best-effort durable snapshots.
    Mutations update memory first, then await the status file write in a
    worker thread; `create` only registers the job so it can run before a
    loop exists, and `save` persists it.
    """

    def __init__(self, output_root: Optional[Path] = None):
        self._output_root = Path(output_root) if output_root else settings.output_root
        self._jobs: Dict[str, JobInfo] = {}

    @property
    def output_root(self) -> Path:
        return self._output_root

    def status_path(self, job_id: str) -> Path:
        return self._output_root / job_id / STATUS_FILENAME

    def create(self, job_id: str, total_files: int) -> JobInfo:
        """Register a new job as pending with zero progress"""
        if not is_valid_job_id(job_id):
            raise JobStateError(f"Invalid job ID {job_id!r}")
        now = datetime.now()
        job = JobInfo(
            job_id=job_id,
            status=JobStatus.PENDING,
            progress=0.0,
            total_files=total_files,
            processed_files=0,
            created_at=now,
            updated_at=now
        )
        self._jobs[job_id] = job
        return self.snapshot(job_id)

    async def save(self, job_id: str) -> None:
        await self._save(self.snapshot(job_id))

    async def transition_to_processing(self, job_id: str) -> JobInfo:
        job = self._get_live(job_id)
        if job.status != JobStatus.PENDING:
            raise JobStateError(f"Job {job_id} cannot start processing from status {job.status.value}")
        job.status = JobStatus.PROCESSING
        return await self._touch(job)

    async def record_file_start(self, job_id: str, file_name: str) -> JobInfo:
        job = self._get_processing(job_id)
        job.current_file = file_name
        return await self._touch(job)

    async def record_file_result(self, job_id: str, result: ProcessResult) -> JobInfo:
        """Append a file result and recompute progress (never decreasing)"""
        job = self._get_processing(job_id)
        job.processed_files += 1
        job.results.append(result)
        if job.total_files > 0:
            progress = min(100.0, job.processed_files / job.total_files * 100)
            job.progress = max(job.progress, progress)
        return await self._touch(job)

    async def finalize(self, job_id: str, success: bool, error_message: Optional[str] = None,
                       cancelled: bool = False) -> JobInfo:
        """Move the job to completed or error; terminal states are final"""
        job = self._get_live(job_id)
        if job.status.is_terminal:
            raise JobStateError(f"Job {job_id} already finished with status {job.status.value}")

        if success:
            job.status = JobStatus.COMPLETED
            job.progress = 100.0
            job.error = None
        else:
            job.status = JobStatus.ERROR
            job.error = error_message or "Processing failed"
        job.cancelled = cancelled
        job.current_file = None
        return await self._touch(job)

    def read(self, job_id: str) -> JobInfo:
        """
        Snapshot of a job, from memory when known to this process,
        otherwise from its persisted status file
        """
        if job_id in self._jobs:
            return self.snapshot(job_id)

        job = self.load(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def snapshot(self, job_id: str) -> JobInfo:
        return self._get_live(job_id).model_copy(deep=True)

    def load(self, job_id: str) -> Optional[JobInfo]:
        """Read the persisted status file, None if missing or unreadable"""
        if not is_valid_job_id(job_id):
            return None
        status_file = self.status_path(job_id)
        if not status_file.exists():
            return None

        try:
            with open(status_file, 'r', encoding='utf-8') as f:
                return JobInfo.model_validate(json.load(f))
        except Exception as e:
            logger.error(f"Error reading status {status_file}: {e}")
            return None

    def forget(self, job_id: str) -> None:
        """Drop the in-memory record; the status file stays on disk"""
        self._jobs.pop(job_id, None)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def _get_live(self, job_id: str) -> JobInfo:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise NotFoundError(f"Job {job_id} not found") from None

    def _get_processing(self, job_id: str) -> JobInfo:
        job = self._get_live(job_id)
        if job.status != JobStatus.PROCESSING:
            raise JobStateError(f"Job {job_id} is not processing (status {job.status.value})")
        return job

    async def _touch(self, job: JobInfo) -> JobInfo:
        job.updated_at = datetime.now()
        snapshot = job.model_copy(deep=True)
        await self._save(snapshot)
        return snapshot

    async def _save(self, job: JobInfo) -> None:
        await asyncio.to_thread(self._write, job)

    def _write(self, job: JobInfo) -> None:
        """Atomic write of the status file; failures are logged, never raised"""
        status_file = self.status_path(job.job_id)
        temp_file = status_file.with_name(STATUS_FILENAME + '.tmp')
        try:
            status_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                f.write(job.model_dump_json(indent=2))
            os.replace(temp_file, status_file)
        except Exception as e:
            logger.error(f"Could not save status for job {job.job_id} to {status_file}: {e}", exc_info=True)
