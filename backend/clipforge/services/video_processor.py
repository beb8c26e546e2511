"""
Pipeline orchestrator
Runs one job: every uploaded video is cut into segments and each segment is
dubbed, subtitled and joined with the trailer before landing in the job's
output tree
"""
import asyncio
import logging
import random
from pathlib import Path, PurePosixPath
from typing import List, Optional

from clipforge.models.jobs import JobInfo, ProcessResult, ResultStatus, is_valid_job_id
from clipforge.models.processing import ProcessingOptions, VideoFile
from clipforge.models.subtitles import ResolvedStyle
from clipforge.services.broadcaster import ProgressBroadcaster
from clipforge.services.errors import AlreadyRunningError, JobStateError, ValidationError
from clipforge.services.job_store import JobStateStore
from clipforge.services.media_tool import MediaToolAdapter
from clipforge.services.subtitle_catalog import SubtitleCatalog, subtitle_catalog
from clipforge.services.workspace import JobWorkspace, find_subtitle_files, relative_video_path

logger = logging.getLogger(__name__)

STOPPED_MESSAGE = "Processing was stopped by the user"


class PipelineOrchestrator:
    """
    Owns the lifecycle of a single job.

    start() validates synchronously and schedules the work as an asyncio
    task. Files and their segments are processed strictly in order; stop()
    is cooperative and only checked between files.
    """

    def __init__(
        self,
        job_id: str,
        store: JobStateStore,
        broadcaster: ProgressBroadcaster,
        media: Optional[MediaToolAdapter] = None,
        catalog: Optional[SubtitleCatalog] = None,
        rng: Optional[random.Random] = None,
    ):
        self.job_id = job_id
        self._store = store
        self._broadcaster = broadcaster
        self._media = media or MediaToolAdapter()
        self._catalog = catalog or subtitle_catalog
        self._rng = rng or random.Random()
        self._workspace = JobWorkspace(store.output_root, job_id)
        self._is_processing = False
        self._should_stop = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def stop_requested(self) -> bool:
        return self._should_stop

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self, options: ProcessingOptions) -> asyncio.Task:
        """
        Validate the options, register the job as pending and schedule
        processing. Must be called from a running event loop.
        """
        if self._is_processing:
            raise AlreadyRunningError(f"Job {self.job_id} is already processing")
        if self._task is not None:
            raise JobStateError(f"Job {self.job_id} already ran; start a new job ID")
        if not is_valid_job_id(self.job_id):
            raise ValidationError(f"Invalid job ID {self.job_id!r}", field="job_id")
        if not options.videos:
            raise ValidationError("No input videos supplied", field="options.videos")

        self._is_processing = True
        self._should_stop = False
        try:
            self._store.create(self.job_id, len(options.videos))
            self._task = asyncio.create_task(self._run(options), name=f"job-{self.job_id}")
        except Exception:
            self._is_processing = False
            raise
        return self._task

    def stop(self) -> None:
        """Request a stop; takes effect before the next file"""
        if self._is_processing:
            logger.info(f"Stop requested for job {self.job_id}")
        self._should_stop = True

    def status(self) -> JobInfo:
        return self._store.snapshot(self.job_id)

    async def wait(self) -> JobInfo:
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.status()

    async def _run(self, options: ProcessingOptions) -> JobInfo:
        job: Optional[JobInfo] = None
        try:
            job = await self._store.transition_to_processing(self.job_id)
            self._broadcaster.publish_status(job)
            logger.info(f"Processing job {self.job_id}: {len(options.videos)} videos, "
                        f"segment duration {options.config.segment_duration}s")

            await self._workspace.setup()
            style = self._catalog.resolve_or_default(
                options.config.subtitle_style_id,
                options.config.subtitle_settings
            )

            for index, video in enumerate(options.videos):
                if self._should_stop:
                    logger.info(f"Job {self.job_id} stopped before file {index + 1}/{len(options.videos)}")
                    break

                result = await self._process_video(video, options, index, style)
                job = await self._store.record_file_result(self.job_id, result)
                self._broadcaster.publish_status(job)
                self._broadcaster.publish_file_result(self.job_id, result)

            if self._should_stop:
                job = await self._store.finalize(self.job_id, success=False, error_message=STOPPED_MESSAGE,
                                                 cancelled=True)
            else:
                job = await self._store.finalize(self.job_id, success=True)
                logger.info(f"Job {self.job_id} completed: {job.processed_files} files processed")

        except asyncio.CancelledError:
            job = await self._fail(STOPPED_MESSAGE, cancelled=True)
            raise
        except Exception as e:
            logger.error(f"Error processing job {self.job_id}: {e}", exc_info=True)
            job = await self._fail(str(e) or e.__class__.__name__)
        finally:
            self._is_processing = False
            await self._workspace.cleanup_temp()
            if job is not None:
                self._broadcaster.publish_complete(job)
        return job

    async def _fail(self, message: str, cancelled: bool = False) -> Optional[JobInfo]:
        try:
            return await self._store.finalize(self.job_id, success=False, error_message=message, cancelled=cancelled)
        except JobStateError:
            # already terminal
            return self._store.snapshot(self.job_id)

    async def _process_video(self, video: VideoFile, options: ProcessingOptions, index: int,
                             style: ResolvedStyle) -> ProcessResult:
        """Process one upload; any failure becomes an error result"""
        result_id = f"{self.job_id}_{index}"
        temp_dir = self._workspace.temp_dir(index)
        try:
            job = await self._store.record_file_start(self.job_id, video.original_name)
            self._broadcaster.publish_status(job)

            relative_path = relative_video_path(video)
            output_dir = self._workspace.output_dir_for(relative_path)
            base_name = PurePosixPath(relative_path).stem
            await self._workspace.ensure_dir(output_dir)
            await self._workspace.ensure_dir(temp_dir)

            try:
                outputs = await self._process_segments(video, options, temp_dir, output_dir, base_name, style)
            finally:
                await self._workspace.remove_tree(temp_dir)

            if outputs:
                summary = f"Generated {len(outputs)} segments"
            else:
                summary = (f"Video shorter than {options.config.segment_duration:g}s, "
                           f"no segments generated")
            logger.info(f"Video {video.original_name}: {summary}")
            return ProcessResult(
                id=result_id,
                original_file=video.original_name,
                output_file=summary,
                status=ResultStatus.SUCCESS,
                segments=[self._workspace.relative_to_videos(p) for p in outputs]
            )

        except Exception as e:
            logger.error(f"Failed to process video {video.original_name}: {e}", exc_info=True)
            return ProcessResult(
                id=result_id,
                original_file=video.original_name,
                output_file="",
                status=ResultStatus.ERROR,
                error=str(e) or e.__class__.__name__
            )

    async def _process_segments(self, video: VideoFile, options: ProcessingOptions, temp_dir: Path,
                                output_dir: Path, base_name: str, style: ResolvedStyle) -> List[Path]:
        """cut -> dub -> subtitle -> trailer, one segment at a time"""
        config = options.config
        segments = await self._media.cut_by_duration(video.path, config.segment_duration, temp_dir)
        if not segments:
            return []

        subtitle_files = []
        if config.subtitle_path:
            subtitle_files = await asyncio.to_thread(find_subtitle_files, config.subtitle_path)

        outputs: List[Path] = []
        for seg_index, segment in enumerate(segments):
            current = Path(segment)

            if options.audio_file:
                dubbed = temp_dir / f"segment_{seg_index}_with_audio.mp4"
                await self._media.add_audio_track(current, options.audio_file.path, dubbed)
                current = dubbed

            if subtitle_files:
                subtitle = self._rng.choice(subtitle_files)
                subtitled = temp_dir / f"segment_{seg_index}_with_subtitle.mp4"
                await self._media.burn_subtitles(current, subtitle, subtitled, style)
                current = subtitled

            final_path = self._workspace.segment_path(output_dir, base_name, seg_index)
            if options.trailer_video:
                await self._media.concatenate([current, options.trailer_video.path], final_path)
            else:
                await self._media.copy_file(current, final_path)
            outputs.append(final_path)

        return outputs
