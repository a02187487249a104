"""
Remote inference gateway.

Thin async clients for the panel-crop, colorize, animation and anime-merge
services. Each call encodes its multipart payload, applies the per-service
timeout and maps the upstream response to a NormalizedResult. Failures are
raised as TransportError (network, non-2xx, timeout, unreadable body) or
ResponseShapeError (body without a usable artifact); retries and fallbacks
live in the layers above.
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

import httpx

from mangamotion.core.config import Settings
from mangamotion.core.constants import (
    AIModel,
    DEFAULT_ANIME_FILE_NAME,
    ManualEffect,
    NO_CACHE_HEADERS,
    TASK_BASED_MODELS,
    UPLOAD_FILE_NAMES,
)
from mangamotion.core.exceptions import TransportError
from mangamotion.core.logging_config import get_logger
from mangamotion.proxy.normalize import NormalizedResult, ResultKind, normalize_response

logger = get_logger("proxy.gateway")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

AI_ENDPOINTS = {
    AIModel.VIDU: "/vidu_animate/",
    AIModel.WAN: "/wan_animate/",
    # CogVideoX has no endpoint of its own yet and shares the VIDU one.
    AIModel.COGVIDEOX: "/vidu_animate/",
}


def _join(base: str, path: str) -> str:
    return urljoin(base.rstrip("/") + "/", path.lstrip("/"))


class InferenceGateway:
    """HTTP client for the remote inference services."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self,
        service: str,
        method: str,
        url: str,
        timeout: float,
        **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await self.client.request(method, url, timeout=timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{service} request to {url} timed out after {timeout:.0f}s")
            raise TransportError(service, f"timed out after {timeout:.0f}s") from e
        except httpx.HTTPError as e:
            logger.error(f"{service} request to {url} failed: {e}")
            raise TransportError(service, str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            body = response.text[:200]
            logger.error(f"{service} responded with status: {response.status_code}")
            raise TransportError(
                service,
                f"API responded with status: {response.status_code} - {body}",
                status_code=response.status_code,
            )
        return response

    async def _post_json(
        self,
        service: str,
        url: str,
        timeout: float,
        **kwargs: Any
    ) -> Dict[str, Any]:
        headers = dict(NO_CACHE_HEADERS)
        headers.update(kwargs.pop("headers", {}))
        response = await self._send(service, "POST", url, timeout, headers=headers, **kwargs)
        return self._json(service, response)

    @staticmethod
    def _json(service: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise TransportError(service, "Invalid JSON response from API") from e

    @staticmethod
    def _image_file(name: str, image: bytes, content_type: str) -> Dict[str, Tuple[str, bytes, str]]:
        return {"file": (name, image, content_type)}

    def _normalize(self, service: str, data: Any, accept: Iterable[ResultKind]) -> NormalizedResult:
        result = normalize_response(service, data, accept)
        logger.info(f"{service} returned a '{result.shape}' response with {len(result.artifacts)} artifact(s)")
        return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def detect_panels(self, image: bytes, content_type: str = "image/jpeg") -> NormalizedResult:
        """Split a manga page into panel images."""
        url = _join(self.settings.panel_api_url, "/crop_panels/")
        logger.info("Proxying panel detection request to API")
        data = await self._post_json(
            "panel-crop",
            url,
            self.settings.panel_timeout,
            files=self._image_file(UPLOAD_FILE_NAMES["panels"], image, content_type),
            headers={"X-Preserve-Color": "true"},
        )
        return self._normalize("panel-crop", data, [ResultKind.PANELS])

    async def colorize(self, image: bytes, timestamp: Optional[str] = None) -> NormalizedResult:
        """Colorize one panel. Single attempt; see ProxyService for retries."""
        url = _join(self.settings.colorize_api_url, "/colorize/")
        form = {"timestamp": timestamp} if timestamp else {}
        data = await self._post_json(
            "colorize",
            url,
            self.settings.colorize_timeout,
            files=self._image_file(UPLOAD_FILE_NAMES["colorize"], image, "image/png"),
            data=form,
            headers={"Connection": "keep-alive"},
        )
        return self._normalize("colorize", data, [ResultKind.IMAGE])

    async def animate_manual(self, image: bytes, effect: ManualEffect) -> NormalizedResult:
        """Render a fixed camera effect over a panel."""
        url = _join(self.settings.animation_api_url, f"/manual_{effect.value}/")
        logger.info(f"Proxying manual animation request to {url} for effect: {effect.value}")
        data = await self._post_json(
            "manual-animation",
            url,
            self.settings.manual_animation_timeout,
            files=self._image_file(UPLOAD_FILE_NAMES["manual"], image, "image/png"),
            data={"effect": effect.value},
        )
        return self._normalize("manual-animation", data, [ResultKind.VIDEO])

    async def start_ai_animation(self, image: bytes, prompt: str, model: AIModel) -> NormalizedResult:
        """Start AI video generation.

        Task-based models answer with a TASK result whose status URL is
        absolute; the others answer with a finished VIDEO.
        """
        url = _join(self.settings.animation_api_url, AI_ENDPOINTS[model])
        logger.info(f"Calling {model.value} API at {url}")
        accept = [ResultKind.TASK] if model in TASK_BASED_MODELS else [ResultKind.VIDEO]
        data = await self._post_json(
            "ai-animation",
            url,
            self.settings.ai_animation_timeout,
            files=self._image_file(UPLOAD_FILE_NAMES["ai"], image, "image/png"),
            data={"prompt": prompt},
        )
        result = self._normalize("ai-animation", data, accept)
        if result.task is not None:
            result.task.model = model.value
            result.task.status_url = self.resolve_status_url(result.task.status_url)
            logger.info(f"Task created with ID: {result.task.task_id}")
        return result

    def resolve_status_url(self, status_url: str) -> str:
        if status_url.startswith("http://") or status_url.startswith("https://"):
            return status_url
        return _join(self.settings.animation_api_url, status_url)

    async def check_task_status(self, status_url: str) -> Dict[str, Any]:
        """Fetch the raw status document of an asynchronous task."""
        response = await self._send(
            "task-status",
            "GET",
            status_url,
            self.settings.status_timeout,
            headers=dict(NO_CACHE_HEADERS),
        )
        data = self._json("task-status", response)
        if not isinstance(data, dict):
            raise TransportError("task-status", "Status response is not an object")
        return data

    async def merge_videos(
        self,
        videos: List[str],
        music: Optional[str],
        settings: Dict[str, Any],
    ) -> NormalizedResult:
        """Merge clips (and optional music) into one anime video."""
        url = _join(self.settings.merge_api_url, "/create_anime/")
        payload = json.dumps({"videos": videos, "music": music, "settings": settings or {}})
        logger.info(f"Creating anime with {len(videos)} videos{' and music' if music else ''}")
        data = await self._send(
            "anime-merge",
            "POST",
            url,
            self.settings.merge_timeout,
            files={"file": (UPLOAD_FILE_NAMES["merge"], payload.encode("utf-8"), "application/json")},
            headers={"Accept": "application/json"},
        )
        result = self._normalize("anime-merge", self._json("anime-merge", data), [ResultKind.VIDEO])
        if not result.file_name:
            result.file_name = DEFAULT_ANIME_FILE_NAME
        return result

    async def fetch_image(self, url: str) -> Tuple[bytes, str]:
        """Download an image so it can be served from our own origin."""
        logger.info(f"Proxying image request for: {url}")
        response = await self._send(
            "image-proxy",
            "GET",
            url,
            self.settings.image_proxy_timeout,
            headers={"Accept": "image/*, */*", "User-Agent": BROWSER_USER_AGENT},
        )
        return response.content, response.headers.get("content-type", "image/jpeg")
