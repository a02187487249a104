"""
Task poller for asynchronous AI animation jobs.

Drives a remote task from `pending` to a terminal state by checking its status
URL on a fixed interval. The sleep coroutine is injectable so the loop can be
driven in virtual time.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mangamotion.core.constants import TaskState
from mangamotion.core.exceptions import (
    ResponseShapeError,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
)
from mangamotion.core.logging_config import get_logger
from mangamotion.core.retry import PollConfig, Sleep
from mangamotion.proxy.normalize import ResultKind, TaskHandle, normalize_response

logger = get_logger("proxy.poller")

SERVICE_NAME = "ai-animation"

PENDING_PROGRESS = 10
RUNNING_PROGRESS_BASE = 15
RUNNING_PROGRESS_STEP = 2
RUNNING_PROGRESS_CAP = 90

StatusCheck = Callable[[str], Awaitable[Dict[str, Any]]]
UpdateCallback = Callable[["AsyncTask"], Any]


@dataclass
class AsyncTask:
    """Client-side view of a remote generation task."""
    task_id: str
    status_url: str
    model: Optional[str] = None
    state: TaskState = TaskState.PENDING
    attempts: int = 0
    progress: int = 0
    logs: List[str] = field(default_factory=list)
    video_url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_handle(cls, handle: TaskHandle) -> "AsyncTask":
        return cls(task_id=handle.task_id, status_url=handle.status_url, model=handle.model)

    def log(self, line: str) -> None:
        self.logs.append(line)
        logger.info(f"[{self.task_id}] {line}")

    def raise_progress(self, value: int) -> None:
        # Progress is monotonic.
        self.progress = max(self.progress, value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "statusUrl": self.status_url,
            "model": self.model,
            "state": self.state.value,
            "attempts": self.attempts,
            "progress": self.progress,
            "videoUrl": self.video_url,
            "error": self.error,
        }


class TaskPoller:
    """Polls a task until it is done, fails, or exhausts its attempt budget."""

    def __init__(
        self,
        check_status: StatusCheck,
        config: Optional[PollConfig] = None,
        sleep: Sleep = asyncio.sleep,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.check_status = check_status
        self.config = config or PollConfig()
        self.sleep = sleep
        self.on_update = on_update

    def _notify(self, task: AsyncTask) -> None:
        if self.on_update:
            self.on_update(task)

    async def poll(self, task: AsyncTask) -> AsyncTask:
        """
        Poll until the task reaches a terminal state.

        Args:
            task: Task to drive; mutated in place

        Returns:
            The task in state `done`, with `video_url` set and progress 100

        Raises:
            TaskFailedError: the remote reported an error
            ResponseShapeError: the remote reported done without a video
            TaskTimeoutError: `max_attempts` checks passed without a terminal state
        """
        task.state = TaskState.PENDING
        task.raise_progress(PENDING_PROGRESS)
        task.log(f"Polling task status for {task.model or 'remote'} task")
        self._notify(task)

        while task.attempts < self.config.max_attempts:
            await self.sleep(self.config.interval)
            task.attempts += 1

            try:
                data = await self.check_status(task.status_url)
            except TransportError as e:
                task.log(f"Status check {task.attempts} failed: {e.reason}")
                self._notify(task)
                continue

            if self._apply_status(task, data):
                self._notify(task)
                return task
            self._notify(task)

        task.state = TaskState.TIMEOUT
        error = TaskTimeoutError(SERVICE_NAME, task.attempts)
        task.error = error.reason
        task.log(error.reason)
        self._notify(task)
        raise error

    def _apply_status(self, task: AsyncTask, data: Dict[str, Any]) -> bool:
        """Fold one status document into the task; True once it is done."""
        status = str(data.get("status", "")).lower()
        task.log(f"Task status: {status or 'unknown'}")

        if status == TaskState.ERROR.value or data.get("error"):
            task.state = TaskState.ERROR
            task.error = str(data.get("error") or "Unknown error")
            task.log(f"Task failed: {task.error}")
            raise TaskFailedError(SERVICE_NAME, task.error)

        if status == TaskState.PENDING.value:
            task.raise_progress(PENDING_PROGRESS)
        elif status == TaskState.RUNNING.value:
            task.state = TaskState.RUNNING
            task.raise_progress(min(
                RUNNING_PROGRESS_BASE + task.attempts * RUNNING_PROGRESS_STEP,
                RUNNING_PROGRESS_CAP,
            ))
        elif status == TaskState.DONE.value:
            try:
                result = normalize_response(SERVICE_NAME, data.get("result"), [ResultKind.VIDEO])
            except ResponseShapeError:
                task.state = TaskState.ERROR
                task.error = "Task finished without a video"
                task.log(task.error)
                raise
            task.state = TaskState.DONE
            task.video_url = result.first
            task.progress = 100
            task.log("Video generation complete")
            return True

        return False
