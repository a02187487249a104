"""
Proxy service.

Adds the per-operation policies on top of the raw gateway calls: the
in-flight guard for generation requests and the fixed-backoff retry for
colorization. Panel detection and manual animation are single attempts.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from mangamotion.core.config import Settings
from mangamotion.core.constants import AIModel, ManualEffect
from mangamotion.core.exceptions import TransportError
from mangamotion.core.logging_config import get_logger
from mangamotion.core.retry import RetryConfig, Sleep, retry_async_call
from mangamotion.proxy.gateway import InferenceGateway
from mangamotion.proxy.guard import InFlightRegistry, get_registry, request_token
from mangamotion.proxy.normalize import NormalizedResult

logger = get_logger("proxy.service")


class ProxyService:
    """Policy layer over InferenceGateway."""

    def __init__(
        self,
        gateway: InferenceGateway,
        settings: Settings,
        registry: Optional[InFlightRegistry] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.gateway = gateway
        self.settings = settings
        self.registry = registry if registry is not None else get_registry()
        self.sleep = sleep
        self.colorize_retry = RetryConfig.fixed(
            settings.colorize_attempts,
            settings.colorize_backoff,
            (TransportError,),
        )

    async def detect_panels(self, image: bytes, content_type: str = "image/jpeg") -> NormalizedResult:
        return await self.gateway.detect_panels(image, content_type)

    async def colorize(self, image: bytes, timestamp: Optional[str] = None) -> str:
        """
        Colorize a panel, retrying transport failures with a fixed pause.

        Returns:
            Colorized panel as a data URI or URL

        Raises:
            RequestInProgressError: same timestamp already in flight
            TransportError: every attempt failed
            ResponseShapeError: the service answered without an image
        """
        token = request_token("colorize", timestamp)
        async with self.registry.hold(token):
            logger.info("Proxying colorization request to API")

            def log_retry(error: Exception, attempt: int) -> None:
                logger.info(f"Waiting before retry {attempt + 2}...")

            result = await retry_async_call(
                self.gateway.colorize,
                image,
                timestamp,
                config=self.colorize_retry,
                on_retry=log_retry,
                sleep=self.sleep,
            )
            return result.first

    async def animate_manual(
        self,
        image: bytes,
        effect: ManualEffect = ManualEffect.ZOOM,
        timestamp: Optional[str] = None,
    ) -> str:
        """Render a manual effect; returns the clip URL."""
        token = request_token(f"manual-{effect.value}", timestamp)
        async with self.registry.hold(token):
            result = await self.gateway.animate_manual(image, effect)
            return result.first

    async def start_ai_animation(
        self,
        image: bytes,
        prompt: str,
        model: AIModel = AIModel.WAN,
        timestamp: Optional[str] = None,
    ) -> NormalizedResult:
        """Start AI generation; a TASK result for polled models, else a VIDEO."""
        token = request_token(f"ai-{model.value}", timestamp)
        async with self.registry.hold(token):
            return await self.gateway.start_ai_animation(image, prompt, model)

    async def check_task_status(self, status_url: str) -> Dict[str, Any]:
        return await self.gateway.check_task_status(status_url)

    async def merge_videos(
        self,
        videos: List[str],
        music: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> NormalizedResult:
        return await self.gateway.merge_videos(videos, music, settings or {})

    async def fetch_image(self, url: str) -> Tuple[bytes, str]:
        return await self.gateway.fetch_image(url)
