"""Projects router: drives one manga page through the workflow.

Workflow precondition failures are answered with 409 and missing projects
with 404 by the exception handlers registered on the app.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mangamotion.core.artifacts import to_data_uri
from mangamotion.core.constants import AIModel, ManualEffect, WorkflowStep
from mangamotion.core.exceptions import MangaMotionError
from mangamotion.core.logging_config import get_logger
from mangamotion.models.project import (
    Animation,
    AnimationDraft,
    AnimeRequest,
    AnimeResult,
    Project,
    ProjectCreate,
    ProjectUpdate,
    StageResult,
    StepsResponse,
)
from mangamotion.proxy.poller import AsyncTask
from mangamotion.workflow.service import WorkflowService

from ..deps import generation_limit, get_workflow, limiter
from . import jobs

logger = get_logger("api.projects")

router = APIRouter()


class NavigateRequest(BaseModel):
    step: WorkflowStep


class SelectPanelRequest(BaseModel):
    index: int = Field(ge=0)


class ColorizeRequest(BaseModel):
    timestamp: Optional[str] = None
    retry: bool = False


class ManualAnimationRequest(BaseModel):
    effect: ManualEffect = ManualEffect.ZOOM
    timestamp: Optional[str] = None
    retry: bool = False


class AIAnimationRequest(BaseModel):
    prompt: str = ""
    model: AIModel = AIModel.WAN
    timestamp: Optional[str] = None
    retry: bool = False
    background: bool = False


class JobResponse(BaseModel):
    success: bool
    message: str
    job_id: str


@router.get("", response_model=List[Project])
async def list_projects(workflow: WorkflowService = Depends(get_workflow)):
    """List all projects."""
    return workflow.list_projects()


@router.post("", response_model=Project, status_code=201)
async def create_project(body: ProjectCreate, workflow: WorkflowService = Depends(get_workflow)):
    """Create an empty project."""
    return workflow.create_project(body.name)


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str, workflow: WorkflowService = Depends(get_workflow)):
    return workflow.get_project(project_id)


@router.patch("/{project_id}", response_model=Project)
async def rename_project(
    project_id: str,
    body: ProjectUpdate,
    workflow: WorkflowService = Depends(get_workflow),
):
    return workflow.rename_project(project_id, body.name)


@router.delete("/{project_id}")
async def delete_project(project_id: str, workflow: WorkflowService = Depends(get_workflow)):
    workflow.delete_project(project_id)
    return {"success": True, "message": f"Project {project_id} deleted"}


@router.get("/{project_id}/steps", response_model=StepsResponse)
async def get_steps(project_id: str, workflow: WorkflowService = Depends(get_workflow)):
    """Current step and the steps that cannot be entered yet."""
    return workflow.steps(project_id)


@router.post("/{project_id}/navigate", response_model=Project)
async def navigate(
    project_id: str,
    body: NavigateRequest,
    workflow: WorkflowService = Depends(get_workflow),
):
    """Move to another step. Moving back clears the artifacts that step produces."""
    return workflow.navigate(project_id, body.step)


@router.post("/{project_id}/image", response_model=Project)
async def upload_image(
    project_id: str,
    file: UploadFile = File(...),
    workflow: WorkflowService = Depends(get_workflow),
):
    """Upload a manga page. Replaces panels and every later artifact."""
    data = await file.read()
    if not data:
        return JSONResponse(status_code=400, content={"error": "No file provided"})
    return workflow.upload_image(project_id, to_data_uri(data, file.content_type or "image/png"))


@router.post("/{project_id}/panels/detect", response_model=StageResult)
@limiter.limit(generation_limit)
async def detect_panels(
    request: Request,
    project_id: str,
    retry: bool = Query(False),
    workflow: WorkflowService = Depends(get_workflow),
):
    return await workflow.detect_panels(project_id, retry=retry)


@router.post("/{project_id}/panels/select", response_model=Project)
async def select_panel(
    project_id: str,
    body: SelectPanelRequest,
    workflow: WorkflowService = Depends(get_workflow),
):
    return workflow.select_panel(project_id, body.index)


@router.post("/{project_id}/colorize", response_model=StageResult)
@limiter.limit(generation_limit)
async def colorize(
    request: Request,
    project_id: str,
    body: ColorizeRequest,
    workflow: WorkflowService = Depends(get_workflow),
):
    return await workflow.colorize(project_id, timestamp=body.timestamp, retry=body.retry)


@router.post("/{project_id}/colorize/skip", response_model=Project)
async def skip_colorize(project_id: str, workflow: WorkflowService = Depends(get_workflow)):
    return workflow.skip_colorize(project_id)


@router.post("/{project_id}/animate/manual", response_model=AnimationDraft)
@limiter.limit(generation_limit)
async def animate_manual(
    request: Request,
    project_id: str,
    body: ManualAnimationRequest,
    workflow: WorkflowService = Depends(get_workflow),
):
    return await workflow.animate_manual(
        project_id,
        effect=body.effect,
        timestamp=body.timestamp,
        retry=body.retry,
    )


async def run_ai_animation_job(
    job_id: str,
    workflow: WorkflowService,
    project_id: str,
    body: AIAnimationRequest,
):
    """Background task: generate an AI clip and report progress to the job."""

    def on_update(task: AsyncTask) -> None:
        message = task.logs[-1] if task.logs else task.state.value
        jobs.update_job(job_id, task.progress, message, task.logs)

    try:
        draft = await workflow.animate_ai(
            project_id,
            prompt=body.prompt,
            model=body.model,
            timestamp=body.timestamp,
            retry=body.retry,
            on_update=on_update,
        )
        message = draft.warning or "AI has created your animation"
        jobs.complete_job(job_id, draft.model_dump(by_alias=True, mode="json"), message)
    except MangaMotionError as e:
        logger.error(f"AI animation job {job_id} failed: {e}")
        jobs.fail_job(job_id, e.message)


@router.post("/{project_id}/animate/ai")
@limiter.limit(generation_limit)
async def animate_ai(
    request: Request,
    project_id: str,
    body: AIAnimationRequest,
    background_tasks: BackgroundTasks,
    workflow: WorkflowService = Depends(get_workflow),
):
    """Generate a clip with an AI model.

    With `background` set the generation runs as a job; follow it through
    /api/jobs/status/{job_id} or /api/jobs/stream/{job_id}.
    """
    if body.background:
        # Unknown projects are rejected before the job starts.
        workflow.get_project(project_id)
        job_id = jobs.create_job("ai-animation", project_id)
        background_tasks.add_task(run_ai_animation_job, job_id, workflow, project_id, body)
        return JobResponse(success=True, message="AI animation started", job_id=job_id)

    draft = await workflow.animate_ai(
        project_id,
        prompt=body.prompt,
        model=body.model,
        timestamp=body.timestamp,
        retry=body.retry,
    )
    return draft.model_dump(by_alias=True, mode="json")


@router.post("/{project_id}/animations", response_model=Animation, status_code=201)
async def save_animation(
    project_id: str,
    draft: AnimationDraft,
    workflow: WorkflowService = Depends(get_workflow),
):
    """Save a generated clip to the project's feed."""
    return workflow.save_animation(project_id, draft)


@router.delete("/{project_id}/animations/{animation_id}", response_model=Project)
async def delete_animation(
    project_id: str,
    animation_id: str,
    workflow: WorkflowService = Depends(get_workflow),
):
    return workflow.delete_animation(project_id, animation_id)


@router.post("/{project_id}/anime", response_model=AnimeResult)
@limiter.limit(generation_limit)
async def create_anime(
    request: Request,
    project_id: str,
    body: AnimeRequest,
    workflow: WorkflowService = Depends(get_workflow),
):
    """Merge the project's clips into one anime video."""
    return await workflow.create_anime(project_id, body)
