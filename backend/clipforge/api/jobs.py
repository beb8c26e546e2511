"""
Job API endpoints
Start jobs, read their status and follow their events
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
import logging

from clipforge.api.deps import get_registry
from clipforge.models.jobs import EventType, JobInfo
from clipforge.models.processing import StartJobRequest, StartJobResponse
from clipforge.services.errors import (
    AlreadyRunningError,
    JobStateError,
    NotFoundError,
    TooManyJobsError,
    ValidationError,
)
from clipforge.services.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(job_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "code": "JOB_NOT_FOUND",
            "message": f"Job {job_id} not found",
            "field": "job_id"
        }
    )


@router.post("/jobs", response_model=StartJobResponse)
async def start_job(request: StartJobRequest, registry: TaskRegistry = Depends(get_registry)):
    """
    Start a processing job
    """
    try:
        orchestrator = registry.start(request.options, job_id=request.job_id)
    except ValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": "VALIDATION_ERROR",
                "message": str(e),
                "field": e.field
            }
        )
    except (AlreadyRunningError, JobStateError) as e:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "code": "JOB_ID_IN_USE",
                "message": str(e),
                "field": "job_id"
            }
        )
    except TooManyJobsError as e:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "code": "TOO_MANY_JOBS",
                "message": str(e),
                "field": None
            }
        )

    return StartJobResponse(
        job_id=orchestrator.job_id,
        status="pending",
        total_files=len(request.options.videos),
        message="Processing started"
    )


@router.get("/jobs/{job_id}/status", response_model=JobInfo)
async def get_job_status(job_id: str, registry: TaskRegistry = Depends(get_registry)):
    """
    Get job status, from the live job or its persisted status file
    """
    try:
        return registry.status(job_id)
    except NotFoundError:
        return _not_found(job_id)


@router.post("/jobs/{job_id}/stop")
async def stop_job(job_id: str, registry: TaskRegistry = Depends(get_registry)):
    """
    Request a stop; the job halts after the file in progress
    """
    try:
        registry.stop(job_id)
    except NotFoundError:
        return _not_found(job_id)

    return {"success": True, "message": f"Stop requested for job {job_id}"}


@router.websocket("/jobs/{job_id}/events")
async def job_events(websocket: WebSocket, job_id: str):
    """
    Push status-update, file-processed and process-complete events
    """
    registry: TaskRegistry = websocket.app.state.registry
    await websocket.accept()
    queue = registry.subscribe(job_id)
    try:
        # current state first so late subscribers are in sync
        try:
            snapshot = registry.status(job_id)
        except NotFoundError:
            await websocket.send_json({
                "code": "JOB_NOT_FOUND",
                "message": f"Job {job_id} not found",
                "field": "job_id"
            })
            await websocket.close()
            return

        await websocket.send_json({
            "event": EventType.STATUS_UPDATE.value,
            "job_id": job_id,
            "data": snapshot.model_dump(mode="json")
        })
        if snapshot.status.is_terminal:
            await websocket.close()
            return

        async for event in registry.events(job_id, queue):
            await websocket.send_json(event.model_dump(mode="json"))
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug(f"Subscriber disconnected from job {job_id}")
    finally:
        registry.unsubscribe(job_id, queue)
