"""
Progress broadcaster
Fans job events out to per-job subscriber queues
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from clipforge.models.jobs import EventType, JobInfo, ProcessResult, ProgressEvent

logger = logging.getLogger(__name__)


class ProgressBroadcaster:
    """
    Fire-and-forget delivery to every subscriber of a job.
    Each subscriber owns an unbounded FIFO queue, so events for one job
    arrive in publish order; missed events are recovered by re-reading status.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, []).append(queue)
        logger.debug(f"Subscriber added for job {job_id}")
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(job_id)
        if not queues:
            return
        try:
            queues.remove(queue)
        except ValueError:
            pass
        if not queues:
            del self._subscribers[job_id]

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, []))

    def publish_status(self, job: JobInfo) -> None:
        self._publish(job.job_id, EventType.STATUS_UPDATE, job.model_dump(mode="json"))

    def publish_file_result(self, job_id: str, result: ProcessResult) -> None:
        self._publish(job_id, EventType.FILE_PROCESSED, result.model_dump(mode="json"))

    def publish_complete(self, job: JobInfo) -> None:
        self._publish(job.job_id, EventType.PROCESS_COMPLETE, job.model_dump(mode="json"))

    def _publish(self, job_id: str, event_type: EventType, data: Dict) -> None:
        event = ProgressEvent(event=event_type, job_id=job_id, data=data)
        for queue in list(self._subscribers.get(job_id, [])):
            queue.put_nowait(event)

    async def listen(self, job_id: str, queue: Optional[asyncio.Queue] = None) -> AsyncIterator[ProgressEvent]:
        """
        Yield a job's events until it reports completion.
        Pass a queue from subscribe() to keep events published before the
        first iteration; it is unsubscribed when iteration ends.
        """
        if queue is None:
            queue = self.subscribe(job_id)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.event == EventType.PROCESS_COMPLETE:
                    return
        finally:
            self.unsubscribe(job_id, queue)
