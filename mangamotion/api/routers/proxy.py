"""Proxy router: direct access to the remote inference services.

Each endpoint forwards one request, normalizes the answer and reports
failures in the response body so a client can fall back on its own.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from mangamotion.core.constants import AIModel, ManualEffect, NO_CACHE_HEADERS
from mangamotion.core.exceptions import (
    RemoteServiceError,
    RequestInProgressError,
    ResponseShapeError,
    TransportError,
)
from mangamotion.core.logging_config import get_logger
from mangamotion.proxy import panels as panel_split
from mangamotion.proxy.normalize import ResultKind
from mangamotion.proxy.service import ProxyService
from mangamotion.workflow.fallback import FallbackPolicy

from ..deps import generation_limit, get_fallback, get_proxy, limiter

logger = get_logger("api.proxy")

router = APIRouter()


class MergeRequest(BaseModel):
    videos: List[str] = []
    music: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)


def in_progress_response() -> JSONResponse:
    return JSONResponse(
        status_code=202,
        content={"status": "in_progress", "message": "This request is already being processed"},
    )


def parse_manual_effect(value: Optional[str]) -> ManualEffect:
    try:
        return ManualEffect((value or "").lower())
    except ValueError:
        return ManualEffect.ZOOM


def parse_model(value: Optional[str]) -> AIModel:
    try:
        return AIModel((value or "").lower())
    except ValueError:
        return AIModel.WAN


@router.post("/panels/detect")
@limiter.limit(generation_limit)
async def detect_panels(
    request: Request,
    file: UploadFile = File(...),
    proxy: ProxyService = Depends(get_proxy),
):
    """Detect panels on a manga page."""
    image = await file.read()
    logger.info(f"Received panel detection request: {file.content_type}, {len(image)} bytes")
    try:
        result = await proxy.detect_panels(image, file.content_type or "image/jpeg")
    except ResponseShapeError as e:
        logger.warning(f"No panels found in API response: {e.details.get('keys')}")
        return {"success": False, "error": "No panels found in API response", "details": e.reason, "panel_crops": []}
    except RemoteServiceError as e:
        return {"success": False, "error": "API error, using fallback", "details": e.reason, "panel_crops": []}

    key = "panel_crops" if result.shape == "panel_crops" else "panel_urls"
    return {"success": True, key: result.artifacts}


@router.post("/panels/split")
async def split_panels(file: UploadFile = File(...)):
    """Split a page locally into the full page and its four quadrants."""
    image = await file.read()
    if not image:
        return JSONResponse(status_code=400, content={"error": "No file provided"})
    try:
        crops = panel_split.split_quadrants(image)
    except ValueError as e:
        logger.error(f"Error processing image: {e}")
        return {
            "success": True,
            "panel_crops": panel_split.original_as_panel(image, file.content_type),
            "error": "Failed to process panels, using original image",
        }
    return {"success": True, "panel_crops": crops}


@router.post("/colorize")
@limiter.limit(generation_limit)
async def colorize(
    request: Request,
    file: UploadFile = File(...),
    timestamp: Optional[str] = Form(None),
    proxy: ProxyService = Depends(get_proxy),
):
    """Colorize one panel, retrying transport failures."""
    image = await file.read()
    try:
        colorized = await proxy.colorize(image, timestamp)
    except RequestInProgressError:
        return in_progress_response()
    except RemoteServiceError as e:
        attempts = proxy.colorize_retry.total_attempts
        return JSONResponse(
            status_code=500,
            content={"error": f"API error after {attempts} attempts: {e.reason}", "colorized_image": None},
        )
    return {"colorized_image": colorized}


@router.post("/animate/manual")
@limiter.limit(generation_limit)
async def animate_manual(
    request: Request,
    file: UploadFile = File(...),
    effect: Optional[str] = Form("zoom"),
    timestamp: Optional[str] = Form(None),
    proxy: ProxyService = Depends(get_proxy),
):
    """Render a zoom, reveal or shake clip from a panel."""
    image = await file.read()
    manual_effect = parse_manual_effect(effect)
    try:
        url = await proxy.animate_manual(image, manual_effect, timestamp)
    except RequestInProgressError:
        return in_progress_response()
    except RemoteServiceError as e:
        return JSONResponse(status_code=500, content={"error": f"API error: {e.reason}", "fallback": True})
    return {"file_url": url}


@router.post("/animate/ai")
@limiter.limit(generation_limit)
async def animate_ai(
    request: Request,
    file: UploadFile = File(...),
    prompt: str = Form(""),
    model: Optional[str] = Form("wan"),
    timestamp: Optional[str] = Form(None),
    proxy: ProxyService = Depends(get_proxy),
):
    """Start AI video generation.

    Task-based models answer with a task to poll through /animate/status.
    """
    image = await file.read()
    ai_model = parse_model(model)
    try:
        result = await proxy.start_ai_animation(image, prompt, ai_model, timestamp)
    except RequestInProgressError:
        return in_progress_response()
    except RemoteServiceError as e:
        return {
            "success": False,
            "error": e.reason,
            "status": "error",
            "fallback": True,
            "message": "Using fallback animation mode due to API unavailability",
            "timestamp": datetime.now().isoformat(),
        }

    if result.kind == ResultKind.TASK:
        return {
            "success": True,
            "task": {
                "id": result.task.task_id,
                "statusUrl": result.task.status_url,
                "model": result.task.model,
            },
        }
    return {"success": True, "video": {"url": result.first}}


@router.get("/animate/status")
async def animation_status(
    url: Optional[str] = Query(None),
    proxy: ProxyService = Depends(get_proxy),
):
    """Pass through the status document of an AI task."""
    if not url:
        return JSONResponse(status_code=400, content={"error": "No status URL provided"})
    try:
        return await proxy.check_task_status(url)
    except RemoteServiceError as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to check task status", "details": e.reason},
        )


@router.post("/anime/merge")
@limiter.limit(generation_limit)
async def merge_anime(
    request: Request,
    merge_request: MergeRequest,
    proxy: ProxyService = Depends(get_proxy),
    fallback: FallbackPolicy = Depends(get_fallback),
):
    """Merge clips and optional music into one video, or return a preview."""
    if not merge_request.videos:
        return JSONResponse(status_code=400, content={"error": "No video URLs provided"})
    try:
        result = await proxy.merge_videos(merge_request.videos, merge_request.music, merge_request.settings)
    except RemoteServiceError as e:
        fb = fallback.merge_preview(merge_request.videos, merge_request.settings, merge_request.music, e.reason)
        return {"success": False, "fallback": True, "preview": fb.artifact, "message": fb.warning}

    title = merge_request.settings.get("title") or "Untitled"
    return {
        "success": True,
        "file_url": result.first,
        "file_name": result.file_name,
        "message": f'Successfully created anime "{title}" with {len(merge_request.videos)} clips',
    }


@router.get("/images/proxy")
async def proxy_image(
    url: Optional[str] = Query(None),
    proxy: ProxyService = Depends(get_proxy),
):
    """Serve a remote image from this origin."""
    if not url:
        return JSONResponse(status_code=400, content={"error": "No URL provided"})
    try:
        content, content_type = await proxy.fetch_image(url)
    except TransportError as e:
        if e.status_code:
            return JSONResponse(
                status_code=e.status_code,
                content={"error": f"Failed to fetch image: {e.status_code}"},
            )
        return JSONResponse(status_code=500, content={"error": "Failed to fetch image", "details": e.reason})
    return Response(content=content, media_type=content_type, headers=NO_CACHE_HEADERS)
