"""
Tests for the Proxy Service

Tests for mangamotion/proxy/service.py
"""

import asyncio

import httpx
import pytest

from mangamotion.core.constants import AIModel, ManualEffect
from mangamotion.core.exceptions import (
    RequestInProgressError,
    ResponseShapeError,
    TransportError,
)


class TestColorizeRetry:
    """Colorization retries transport failures with a fixed pause."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, proxy_service, remote, png_bytes, fake_sleep):
        remote.add(
            "/colorize/",
            httpx.Response(503, text="busy"),
            httpx.Response(503, text="busy"),
            {"colorized_image": "COLOR"},
        )

        colorized = await proxy_service.colorize(png_bytes, "1700000000000")

        assert colorized == "data:image/png;base64,COLOR"
        assert remote.count("/colorize/") == 3
        assert fake_sleep.delays == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_exhausts_three_attempts(self, proxy_service, remote, png_bytes, fake_sleep, registry):
        remote.add("/colorize/", httpx.Response(500, text="down"))

        with pytest.raises(TransportError):
            await proxy_service.colorize(png_bytes, "1700000000001")

        assert remote.count("/colorize/") == 3
        assert fake_sleep.delays == [5.0, 5.0]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_shape_error_is_not_retried(self, proxy_service, remote, png_bytes):
        remote.add("/colorize/", {"message": "done"})

        with pytest.raises(ResponseShapeError):
            await proxy_service.colorize(png_bytes, "1700000000002")

        assert remote.count("/colorize/") == 1

    @pytest.mark.asyncio
    async def test_timestamp_is_forwarded(self, proxy_service, remote, png_bytes):
        remote.add("/colorize/", {"colorized_image": "https://cdn.test/c.png"})

        await proxy_service.colorize(png_bytes, "1700000000003")

        assert b"1700000000003" in remote.requests_to("/colorize/")[0].content


class TestSingleAttemptOperations:
    """Panel detection and manual animation do not retry."""

    @pytest.mark.asyncio
    async def test_panel_detection_single_attempt(self, proxy_service, remote, png_bytes):
        remote.add("/crop_panels/", httpx.Response(500, text="down"))

        with pytest.raises(TransportError):
            await proxy_service.detect_panels(png_bytes)

        assert remote.count("/crop_panels/") == 1

    @pytest.mark.asyncio
    async def test_manual_animation_single_attempt(self, proxy_service, remote, png_bytes):
        remote.add("/manual_shake/", httpx.Response(500, text="down"))

        with pytest.raises(TransportError):
            await proxy_service.animate_manual(png_bytes, ManualEffect.SHAKE, "1")

        assert remote.count("/manual_shake/") == 1


class TestIdempotencyGuard:
    """Duplicate in-flight requests never reach the remote service."""

    @pytest.mark.asyncio
    async def test_duplicate_colorize_makes_one_remote_call(self, proxy_service, remote, png_bytes, registry):
        gate = asyncio.Event()
        original = proxy_service.gateway.colorize

        async def slow_colorize(image, timestamp=None):
            await gate.wait()
            return await original(image, timestamp)

        proxy_service.gateway.colorize = slow_colorize
        remote.add("/colorize/", {"colorized_image": "COLOR"})

        first = asyncio.create_task(proxy_service.colorize(png_bytes, "42"))
        await asyncio.sleep(0)

        with pytest.raises(RequestInProgressError):
            await proxy_service.colorize(png_bytes, "42")

        gate.set()
        assert await first == "data:image/png;base64,COLOR"
        assert remote.count("/colorize/") == 1
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_same_timestamp_different_models_do_not_collide(self, proxy_service, registry, png_bytes):
        registry.try_acquire("ai-vidu-42")

        # The wan token is free, so this reaches the (unscripted) remote.
        with pytest.raises(TransportError):
            await proxy_service.start_ai_animation(png_bytes, "zoom", AIModel.WAN, "42")

        with pytest.raises(RequestInProgressError):
            await proxy_service.start_ai_animation(png_bytes, "zoom", AIModel.VIDU, "42")

    @pytest.mark.asyncio
    async def test_token_released_after_completion(self, proxy_service, remote, registry, png_bytes):
        remote.add("/manual_zoom/", {"file_url": "https://v.test/z.mp4"})

        await proxy_service.animate_manual(png_bytes, ManualEffect.ZOOM, "7")
        await proxy_service.animate_manual(png_bytes, ManualEffect.ZOOM, "7")

        assert remote.count("/manual_zoom/") == 2
        assert "manual-zoom-7" not in registry
