"""
Task registry
Maps job IDs to their orchestrators for the API layer
"""
import asyncio
import logging
import random
import uuid
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, Optional

from clipforge.core.config import settings
from clipforge.models.jobs import JobInfo, ProgressEvent, is_valid_job_id
from clipforge.models.processing import ProcessingOptions
from clipforge.services.broadcaster import ProgressBroadcaster
from clipforge.services.errors import (
    AlreadyRunningError,
    JobStateError,
    TooManyJobsError,
    ValidationError,
)
from clipforge.services.job_store import JobStateStore
from clipforge.services.media_tool import MediaToolAdapter
from clipforge.services.subtitle_catalog import SubtitleCatalog, subtitle_catalog
from clipforge.services.video_processor import PipelineOrchestrator

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    One orchestrator per job ID.
    Entries are created on start and dropped when stopped after finishing,
    or once a finished job has outlived the retention window; afterwards
    status is served from the persisted status file.
    """

    def __init__(
        self,
        store: Optional[JobStateStore] = None,
        broadcaster: Optional[ProgressBroadcaster] = None,
        media: Optional[MediaToolAdapter] = None,
        catalog: Optional[SubtitleCatalog] = None,
        rng_factory: Callable[[], random.Random] = random.Random,
        max_concurrent: Optional[int] = None,
        retention_seconds: Optional[int] = None,
    ):
        self.store = store or JobStateStore()
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self._media = media or MediaToolAdapter()
        self._catalog = catalog or subtitle_catalog
        self._rng_factory = rng_factory
        self._max_concurrent = max_concurrent if max_concurrent is not None else settings.MAX_CONCURRENT_JOBS
        self._ttl = timedelta(seconds=retention_seconds if retention_seconds is not None
                              else settings.JOB_RETENTION_SECONDS)
        self._tasks: Dict[str, PipelineOrchestrator] = {}
        self._finished_at: Dict[str, datetime] = {}

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._tasks

    def get(self, job_id: str) -> Optional[PipelineOrchestrator]:
        return self._tasks.get(job_id)

    @property
    def active_count(self) -> int:
        return sum(1 for orchestrator in self._tasks.values() if orchestrator.is_processing)

    def start(self, options: ProcessingOptions, job_id: Optional[str] = None) -> PipelineOrchestrator:
        """
        Create and start an orchestrator for a new job.
        Returns once validation passed and processing is scheduled.
        """
        self.cleanup_expired()
        job_id = job_id or str(uuid.uuid4())
        if not is_valid_job_id(job_id):
            raise ValidationError(f"Invalid job ID {job_id!r}", field="job_id")

        existing = self._tasks.get(job_id)
        if existing is not None:
            if existing.is_processing:
                raise AlreadyRunningError(f"Job {job_id} is already processing")
            raise JobStateError(f"Job ID {job_id} was already used")
        if job_id in self.store or self.store.load(job_id) is not None:
            raise JobStateError(f"Job ID {job_id} was already used")

        if self.active_count >= self._max_concurrent:
            raise TooManyJobsError("Maximum concurrent jobs reached. Please wait for a job to complete.")

        orchestrator = PipelineOrchestrator(
            job_id,
            self.store,
            self.broadcaster,
            media=self._media,
            catalog=self._catalog,
            rng=self._rng_factory(),
        )
        task = orchestrator.start(options)
        self._tasks[job_id] = orchestrator
        task.add_done_callback(lambda _task: self._on_finished(job_id))
        logger.info(f"Started job {job_id} with {len(options.videos)} videos")
        return orchestrator

    def stop(self, job_id: str) -> None:
        """Request a stop; a no-op for jobs that already finished"""
        orchestrator = self._tasks.get(job_id)
        if orchestrator is None:
            # finished and evicted, or from a previous process
            self.store.read(job_id)
            return

        orchestrator.stop()
        if not orchestrator.is_processing:
            self._remove(job_id)

    def status(self, job_id: str) -> JobInfo:
        orchestrator = self._tasks.get(job_id)
        if orchestrator is not None:
            return orchestrator.status()
        return self.store.read(job_id)

    def subscribe(self, job_id: str) -> asyncio.Queue:
        return self.broadcaster.subscribe(job_id)

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        self.broadcaster.unsubscribe(job_id, queue)

    def events(self, job_id: str, queue: asyncio.Queue) -> AsyncIterator[ProgressEvent]:
        return self.broadcaster.listen(job_id, queue)

    def cleanup_expired(self) -> None:
        """Drop finished jobs older than the retention window"""
        now = datetime.now()
        expired = [
            job_id for job_id, finished_at in self._finished_at.items()
            if now - finished_at > self._ttl
        ]
        for job_id in expired:
            self._remove(job_id)
            logger.info(f"Cleaned up expired job {job_id}")

    async def shutdown(self) -> None:
        """Stop every running job and wait for them to wind down"""
        tasks = []
        for orchestrator in self._tasks.values():
            if orchestrator.is_processing and orchestrator.task is not None:
                orchestrator.stop()
                tasks.append(orchestrator.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_finished(self, job_id: str) -> None:
        orchestrator = self._tasks.get(job_id)
        if orchestrator is None:
            return
        if orchestrator.stop_requested:
            self._remove(job_id)
        else:
            self._finished_at[job_id] = datetime.now()

    def _remove(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        self._finished_at.pop(job_id, None)
        self.store.forget(job_id)
