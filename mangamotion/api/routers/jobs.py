"""Jobs router: status and Server-Sent Events for background generations.

AI animation can run as a background job. Its progress is kept in a
module-level status table and pushed to SSE listeners through a queue per
job.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from mangamotion.core.logging_config import get_logger
from mangamotion.models.project import new_id

logger = get_logger("api.jobs")

router = APIRouter()

KEEPALIVE_SECONDS = 30.0
TERMINAL_EVENTS = ("complete", "error")

# Key: job_id, Value: status dict
job_status: Dict[str, Dict[str, Any]] = {}

_event_queues: Dict[str, asyncio.Queue] = {}
_job_complete: Dict[str, bool] = {}


class JobEvent(BaseModel):
    """SSE event structure."""
    event: str  # progress, complete, error
    data: dict


class JobStatus(BaseModel):
    job_id: str
    kind: str
    project_id: Optional[str] = None
    status: str  # idle, running, complete, failed
    progress: int = 0
    message: Optional[str] = None
    logs: List[str] = []
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


def create_job(kind: str, project_id: Optional[str] = None) -> str:
    """Register a running job and open its event queue."""
    job_id = new_id("job-")
    job_status[job_id] = {
        "job_id": job_id,
        "kind": kind,
        "project_id": project_id,
        "status": "running",
        "progress": 0,
        "message": "Starting...",
        "logs": [],
        "started_at": datetime.now().isoformat(),
    }
    _event_queues[job_id] = asyncio.Queue()
    _job_complete[job_id] = False
    return job_id


def emit_event(job_id: str, event_type: str, data: dict) -> None:
    """Push an event to the job's listeners."""
    queue = _event_queues.get(job_id)
    if queue is None:
        return
    queue.put_nowait(JobEvent(event=event_type, data=data))
    if event_type in TERMINAL_EVENTS:
        _job_complete[job_id] = True


def update_job(job_id: str, progress: int, message: str, logs: Optional[List[str]] = None) -> None:
    status = job_status.get(job_id)
    if status is None:
        return
    status["progress"] = max(status["progress"], progress)
    status["message"] = message
    if logs is not None:
        status["logs"] = list(logs)
    emit_event(job_id, "progress", {"progress": status["progress"], "message": message})


def complete_job(job_id: str, result: Dict[str, Any], message: str = "Complete") -> None:
    status = job_status[job_id]
    status.update(
        status="complete",
        progress=100,
        message=message,
        result=result,
        completed_at=datetime.now().isoformat(),
    )
    emit_event(job_id, "complete", {"result": result, "message": message})


def fail_job(job_id: str, error: str) -> None:
    status = job_status[job_id]
    status.update(status="failed", error=error, message=error, completed_at=datetime.now().isoformat())
    emit_event(job_id, "error", {"message": error})


def cleanup_job(job_id: str) -> None:
    _event_queues.pop(job_id, None)
    _job_complete.pop(job_id, None)


async def event_generator(job_id: str, request: Request) -> AsyncGenerator[str, None]:
    """Generate SSE events for a job."""
    queue = _event_queues.get(job_id)

    if not queue:
        yield f"event: error\ndata: {json.dumps({'message': 'Job not found'})}\n\n"
        return

    try:
        while True:
            if await request.is_disconnected():
                logger.info(f"SSE client disconnected from job {job_id}")
                break

            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                yield f"event: {event.event}\ndata: {json.dumps(event.data)}\n\n"

                if _job_complete.get(job_id, False) and queue.empty():
                    logger.info(f"Job {job_id} complete, closing SSE stream")
                    cleanup_job(job_id)
                    break

            except asyncio.TimeoutError:
                yield ": keepalive\n\n"

    except asyncio.CancelledError:
        logger.info(f"SSE stream cancelled for job {job_id}")


@router.get("/stream/{job_id}")
async def stream_job_events(job_id: str, request: Request):
    """Stream SSE events for a job.

    Event types:
    - progress: task status checked, carries progress and message
    - complete: job finished, carries the result
    - error: job failed
    """
    return StreamingResponse(
        event_generator(job_id, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )


@router.get("/status/{job_id}", response_model=JobStatus)
async def get_job_status(job_id: str):
    """Get status of a job by its ID."""
    if job_id in job_status:
        return JobStatus(**job_status[job_id])
    return JobStatus(job_id=job_id, kind="unknown", status="idle")
