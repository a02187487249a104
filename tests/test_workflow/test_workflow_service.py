"""
Tests for the Workflow Service

Tests for mangamotion/workflow/service.py, including complete runs of a
project through the workflow against stubbed remote services.
"""

import httpx
import pytest

from mangamotion.core.artifacts import can_download, offline_animation_type
from mangamotion.core.constants import (
    AIModel,
    AnimationEffect,
    ColorizationSource,
    ManualEffect,
    WorkflowStep,
)
from mangamotion.core.exceptions import (
    AnimationNotFoundError,
    RequestInProgressError,
    StaleResultError,
    StepBlockedError,
)
from mangamotion.models.project import AnimeRequest, AnimationDraft
from mangamotion.workflow import state_machine

PANEL_URLS = ["https://cdn.test/p1.png", "https://cdn.test/p2.png", "https://cdn.test/p3.png"]
VIDEO_DONE = {"status": "done", "result": {"video": {"url": "https://v.test/ai.mp4"}}}


@pytest.fixture
def page_project(workflow, png_data_uri):
    """A project with an uploaded page."""
    project = workflow.create_project("Chapter 1")
    workflow.upload_image(project.id, png_data_uri)
    return project


@pytest.fixture
def serve_panels(remote, png_bytes):
    """Stub the panel service with three panel URLs that can be downloaded."""
    remote.add("/crop_panels/", {"panel_urls": PANEL_URLS})
    for url in PANEL_URLS:
        remote.add(httpx.URL(url).path, httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"}))
    return remote


@pytest.fixture
def selected_project(workflow, page_project, serve_panels):
    """A project whose second panel has been selected."""

    async def build():
        await workflow.detect_panels(page_project.id)
        workflow.select_panel(page_project.id, 1)
        return workflow.get_project(page_project.id)

    return build


@pytest.fixture
def animate_ready(workflow, selected_project):
    """A project that skipped colorization and can animate."""

    async def build():
        project = await selected_project()
        return workflow.skip_colorize(project.id)

    return build


class TestPanelSelectionScenario:
    """Upload, detect, select, colorize, animate and save."""

    @pytest.mark.asyncio
    async def test_full_run(self, workflow, page_project, serve_panels, remote):
        remote.add("/colorize/", {"colorized_image": "COLORIZED"})
        remote.add("/manual_zoom/", {"file_url": "https://v.test/zoom.mp4"})

        detected = await workflow.detect_panels(page_project.id)
        assert detected.fallback is False
        assert detected.project.panels == PANEL_URLS

        project = workflow.select_panel(page_project.id, 1)
        assert project.selected_panel == PANEL_URLS[1]
        assert project.current_step == WorkflowStep.COLORIZE

        colorized = await workflow.colorize(page_project.id, timestamp="1")
        assert colorized.project.colorized_panel == "data:image/png;base64,COLORIZED"
        assert colorized.project.colorization_source == ColorizationSource.REMOTE
        assert colorized.project.current_step == WorkflowStep.ANIMATE
        # The selected panel URL was downloaded before upload
        assert remote.count("/p2.png") == 1

        draft = await workflow.animate_manual(page_project.id, ManualEffect.ZOOM, timestamp="2")
        assert draft.fallback is False
        assert draft.video_url == "https://v.test/zoom.mp4"

        animation = workflow.save_animation(page_project.id, draft)
        project = workflow.get_project(page_project.id)

        assert project.animations == [animation]
        assert animation.downloadable is True
        assert state_machine.check_invariants(project) == []

    @pytest.mark.asyncio
    async def test_select_index_out_of_range(self, workflow, page_project, serve_panels):
        await workflow.detect_panels(page_project.id)

        with pytest.raises(StepBlockedError):
            workflow.select_panel(page_project.id, 3)

    @pytest.mark.asyncio
    async def test_reselect_from_animate_clears_colorized(self, workflow, animate_ready):
        project = await animate_ready()

        project = workflow.select_panel(project.id, 0)

        assert project.selected_panel == PANEL_URLS[0]
        assert project.colorized_panel is None
        assert project.current_step == WorkflowStep.COLORIZE


class TestPanelDetectionFallback:
    """Panel detection failures fill the slots with the page itself."""

    @pytest.mark.asyncio
    async def test_failure_repeats_page(self, workflow, page_project, remote, png_data_uri):
        remote.add("/crop_panels/", httpx.Response(500, text="down"))

        result = await workflow.detect_panels(page_project.id)

        assert result.fallback is True
        assert result.warning
        assert result.project.panels == [png_data_uri] * 5
        assert result.project.current_step == WorkflowStep.CROP

    @pytest.mark.asyncio
    async def test_unrecognized_response_falls_back(self, workflow, page_project, remote):
        remote.add("/crop_panels/", {"panel_crops": []})

        result = await workflow.detect_panels(page_project.id)

        assert result.fallback is True
        assert len(result.project.panels) == 5

    @pytest.mark.asyncio
    async def test_fallback_mode_is_sticky_until_retry(self, workflow, page_project, remote):
        remote.add("/crop_panels/", httpx.Response(500, text="down"), {"panel_urls": PANEL_URLS})

        await workflow.detect_panels(page_project.id)
        second = await workflow.detect_panels(page_project.id)

        assert second.fallback is True
        assert remote.count("/crop_panels/") == 1

        retried = await workflow.detect_panels(page_project.id, retry=True)

        assert retried.fallback is False
        assert retried.project.panels == PANEL_URLS
        assert remote.count("/crop_panels/") == 2

    @pytest.mark.asyncio
    async def test_requires_image(self, workflow, remote):
        project = workflow.create_project()

        with pytest.raises(StepBlockedError):
            await workflow.detect_panels(project.id)

        assert remote.calls == []


class TestColorizeScenario:
    """Colorization retries, falls back and can be skipped."""

    @pytest.mark.asyncio
    async def test_retry_exhaustion_uses_selected_panel(self, workflow, selected_project, remote, fake_sleep):
        project = await selected_project()
        remote.add("/colorize/", httpx.Response(503, text="busy"))

        result = await workflow.colorize(project.id, timestamp="99")

        assert remote.count("/colorize/") == 3
        assert fake_sleep.delays == [5.0, 5.0]
        assert result.fallback is True
        assert result.warning
        assert result.project.colorized_panel == result.project.selected_panel
        assert result.project.colorization_source == ColorizationSource.FALLBACK
        assert result.project.current_step == WorkflowStep.ANIMATE

    @pytest.mark.asyncio
    async def test_fallback_mode_skips_remote_until_retry(self, workflow, selected_project, remote):
        project = await selected_project()
        remote.add(
            "/colorize/",
            httpx.Response(503, text="busy"),
            httpx.Response(503, text="busy"),
            httpx.Response(503, text="busy"),
            {"colorized_image": "https://cdn.test/color.png"},
        )

        await workflow.colorize(project.id, timestamp="1")
        again = await workflow.colorize(project.id, timestamp="2")

        assert again.fallback is True
        assert remote.count("/colorize/") == 3

        retried = await workflow.colorize(project.id, timestamp="3", retry=True)

        assert retried.fallback is False
        assert retried.project.colorized_panel == "https://cdn.test/color.png"
        assert remote.count("/colorize/") == 4

    @pytest.mark.asyncio
    async def test_skip_uses_selected_panel(self, workflow, selected_project, remote):
        project = await selected_project()

        project = workflow.skip_colorize(project.id)

        assert project.colorized_panel == PANEL_URLS[1]
        assert project.colorization_source == ColorizationSource.SKIPPED
        assert remote.count("/colorize/") == 0

    @pytest.mark.asyncio
    async def test_blocked_without_selection(self, workflow, page_project, remote):
        with pytest.raises(StepBlockedError):
            await workflow.colorize(page_project.id)

        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_in_flight_request_is_rejected(self, workflow, selected_project, registry):
        project = await selected_project()
        registry.try_acquire(f"colorize-{project.id}-5")

        with pytest.raises(RequestInProgressError):
            await workflow.colorize(project.id, timestamp="5")

        assert workflow.get_project(project.id).colorized_panel is None


class TestAnimationScenario:
    """Manual and AI animation, including the offline fallbacks."""

    @pytest.mark.asyncio
    async def test_blocked_before_colorize(self, workflow, selected_project, remote):
        project = await selected_project()
        calls_before = len(remote.calls)

        with pytest.raises(StepBlockedError):
            await workflow.animate_manual(project.id)

        assert len(remote.calls) == calls_before

    @pytest.mark.asyncio
    async def test_manual_failure_gives_offline_clip(self, workflow, animate_ready, remote):
        project = await animate_ready()
        remote.add("/manual_reveal/", httpx.Response(500, text="down"))

        draft = await workflow.animate_manual(project.id, ManualEffect.REVEAL)

        assert draft.fallback is True
        assert draft.effect == AnimationEffect.REVEAL
        assert draft.video_url == "data:video/mp4;base64,reveal-offline-animation"

    @pytest.mark.asyncio
    async def test_ai_task_is_polled_to_completion(self, workflow, animate_ready, remote, fake_sleep):
        project = await animate_ready()
        remote.add("/vidu_animate/", {"task_id": "t1", "status_url": "/task_status/t1"})
        remote.add(
            "/task_status/t1",
            {"status": "pending"},
            {"status": "running"},
            {"status": "running"},
            VIDEO_DONE,
        )
        updates = []

        draft = await workflow.animate_ai(
            project.id,
            "slow zoom on the hero",
            AIModel.VIDU,
            on_update=lambda task: updates.append(task.progress),
        )

        assert remote.count("/task_status/t1") == 4
        assert fake_sleep.delays == [5.0] * 4
        assert draft.fallback is False
        assert draft.progress == 100
        assert draft.settings == {
            "prompt": "slow zoom on the hero",
            "model": "vidu",
            "videoUrl": "https://v.test/ai.mp4",
        }
        assert updates == sorted(updates)

    @pytest.mark.asyncio
    async def test_wan_returns_video_directly(self, workflow, animate_ready, remote):
        project = await animate_ready()
        remote.add("/wan_animate/", {"file_url": "https://v.test/wan.mp4"})

        draft = await workflow.animate_ai(project.id, "pan across", AIModel.WAN)

        assert draft.video_url == "https://v.test/wan.mp4"
        assert remote.count("/task_status/") == 0

    @pytest.mark.asyncio
    async def test_ai_start_failure_uses_prompt_keyword(self, workflow, animate_ready, remote):
        project = await animate_ready()
        remote.add("/wan_animate/", httpx.Response(500, text="down"))

        draft = await workflow.animate_ai(project.id, "make the ground shake", AIModel.WAN)

        assert draft.fallback is True
        assert draft.video_url == "data:video/mp4;base64,shake-offline-animation"
        assert can_download(draft.video_url) is False

    @pytest.mark.asyncio
    async def test_poll_timeout_falls_back_once(self, workflow, animate_ready, remote, fake_sleep):
        project = await animate_ready()
        remote.add("/vidu_animate/", {"task_id": "t2", "status_url": "/task_status/t2"})
        remote.add("/task_status/t2", {"status": "running"})

        draft = await workflow.animate_ai(project.id, "the walls tremble", AIModel.VIDU)

        assert remote.count("/task_status/t2") == 120
        assert len(fake_sleep.delays) == 120
        assert draft.fallback is True
        assert offline_animation_type(draft.video_url) == "shake"
        assert "Task timed out after 120 status checks" in draft.logs

    @pytest.mark.asyncio
    async def test_transient_status_error_does_not_fall_back(self, workflow, animate_ready, remote, connection_refused):
        project = await animate_ready()
        remote.add("/vidu_animate/", {"task_id": "t3", "status_url": "/task_status/t3"})
        remote.add("/task_status/t3", {"status": "running"}, connection_refused(), VIDEO_DONE)

        draft = await workflow.animate_ai(project.id, "zoom", AIModel.VIDU)

        assert draft.fallback is False
        assert draft.video_url == "https://v.test/ai.mp4"


class TestAnimationsAndAnime:
    """Saving clips and merging them."""

    def _save(self, workflow, project_id, video_url):
        draft = AnimationDraft(
            image="https://cdn.test/p2.png",
            effect=AnimationEffect.ZOOM,
            settings={"videoUrl": video_url},
        )
        return workflow.save_animation(project_id, draft)

    def test_delete_animation(self, workflow, page_project):
        animation = self._save(workflow, page_project.id, "https://v.test/1.mp4")

        project = workflow.delete_animation(page_project.id, animation.id)

        assert project.animations == []
        with pytest.raises(AnimationNotFoundError):
            workflow.delete_animation(page_project.id, animation.id)

    @pytest.mark.asyncio
    async def test_merge_excludes_offline_clips(self, workflow, page_project, remote):
        self._save(workflow, page_project.id, "https://v.test/1.mp4")
        self._save(workflow, page_project.id, "data:video/mp4;base64,zoom-offline-animation")
        remote.add("/create_anime/", {"file_url": "https://v.test/anime.mp4", "file_name": "ep1.mp4"})

        result = await workflow.create_anime(page_project.id, AnimeRequest(music="track-2"))

        assert result.fallback is False
        assert result.file_url == "https://v.test/anime.mp4"
        assert result.file_name == "ep1.mp4"
        assert result.clips == 1
        body = remote.requests_to("/create_anime/")[0].content
        assert b"offline-animation" not in body
        # Track ids resolve to the track URL
        assert b"track2.mp3" in body

    @pytest.mark.asyncio
    async def test_all_offline_goes_straight_to_preview(self, workflow, page_project, remote):
        self._save(workflow, page_project.id, "data:video/mp4;base64,zoom-offline-animation")

        result = await workflow.create_anime(page_project.id, AnimeRequest(settings={"title": "Ep"}))

        assert result.fallback is True
        assert result.preview["mode"] == "preview"
        assert result.preview["settings"] == {"title": "Ep"}
        assert remote.count("/create_anime/") == 0

    @pytest.mark.asyncio
    async def test_merge_failure_returns_preview(self, workflow, page_project, remote):
        self._save(workflow, page_project.id, "https://v.test/1.mp4")
        remote.add("/create_anime/", httpx.Response(500, text="down"))

        result = await workflow.create_anime(page_project.id, AnimeRequest())

        assert result.fallback is True
        assert result.preview["videos"] == ["https://v.test/1.mp4"]
        assert result.warning.startswith("Using preview mode. API error:")

    @pytest.mark.asyncio
    async def test_merge_without_clips_is_blocked(self, workflow, page_project):
        with pytest.raises(StepBlockedError):
            await workflow.create_anime(page_project.id, AnimeRequest())


class TestProjectChangedDuringRemoteCall:
    """A result is only written if its input is still current when it arrives."""

    NEW_PAGE = "data:image/png;base64,TkVXIFBBR0U="

    @pytest.mark.asyncio
    async def test_reselect_during_colorize_discards_result(self, workflow, selected_project, remote):
        project = await selected_project()

        def colorize_after_reselect(request):
            workflow.select_panel(project.id, 0)
            return httpx.Response(200, json={"colorized_image": "COLORIZED-OF-P2"})

        remote.add("/colorize/", colorize_after_reselect)

        with pytest.raises(StaleResultError):
            await workflow.colorize(project.id, timestamp="1")

        project = workflow.get_project(project.id)
        assert project.selected_panel == PANEL_URLS[0]
        assert project.colorized_panel is None
        assert project.current_step == WorkflowStep.COLORIZE
        assert state_machine.check_invariants(project) == []

    @pytest.mark.asyncio
    async def test_step_left_during_failed_colorize_discards_fallback(self, workflow, selected_project, remote):
        project = await selected_project()

        def fail_after_leaving(request):
            workflow.navigate(project.id, WorkflowStep.CROP)
            return httpx.Response(503, text="busy")

        remote.add("/colorize/", fail_after_leaving)

        with pytest.raises(StaleResultError):
            await workflow.colorize(project.id, timestamp="1")

        project = workflow.get_project(project.id)
        assert project.current_step == WorkflowStep.CROP
        assert project.selected_panel is None
        assert project.colorized_panel is None

    @pytest.mark.asyncio
    async def test_upload_during_detection_discards_panels(self, workflow, page_project, remote):

        def detect_after_upload(request):
            workflow.upload_image(page_project.id, self.NEW_PAGE)
            return httpx.Response(200, json={"panel_urls": PANEL_URLS})

        remote.add("/crop_panels/", detect_after_upload)

        with pytest.raises(StaleResultError):
            await workflow.detect_panels(page_project.id)

        project = workflow.get_project(page_project.id)
        assert project.image == self.NEW_PAGE
        assert project.panels == []
        assert project.current_step == WorkflowStep.CROP

    @pytest.mark.asyncio
    async def test_unchanged_project_still_gets_result(self, workflow, selected_project, remote):
        project = await selected_project()
        remote.add("/colorize/", {"colorized_image": "https://cdn.test/c2.png"})

        result = await workflow.colorize(project.id, timestamp="1")

        assert result.project.colorized_panel == "https://cdn.test/c2.png"
        assert result.project.selected_panel == PANEL_URLS[1]
