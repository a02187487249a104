"""
Workflow service.

Runs one project through upload, panel detection, colorization and
animation. Every action checks that its step is reachable before any
network call, forwards to the proxy layer, turns remote failures into the
stage's fallback artifact and persists the project afterwards. A result is
only written if the project still holds the input it was computed from.

A stage that fell back stays in fallback mode for that project: later calls
go straight to the fallback until the caller asks for a retry.
"""

import asyncio
import time
from typing import Callable, List, Optional, Set, Tuple

from mangamotion.core.artifacts import (
    decode_data_uri,
    is_data_uri,
    is_offline_artifact,
    is_remote_url,
)
from mangamotion.core.constants import (
    AIModel,
    AnimationEffect,
    ColorizationSource,
    ManualEffect,
    WorkflowStep,
)
from mangamotion.core.exceptions import (
    AnimationNotFoundError,
    RemoteServiceError,
    StaleResultError,
    StepBlockedError,
    TransportError,
)
from mangamotion.core.logging_config import get_logger
from mangamotion.core.retry import PollConfig, Sleep
from mangamotion.models.project import (
    Animation,
    AnimationDraft,
    AnimeRequest,
    AnimeResult,
    Project,
    StageResult,
    StepsResponse,
)
from mangamotion.proxy.normalize import ResultKind
from mangamotion.proxy.poller import AsyncTask, TaskPoller
from mangamotion.proxy.service import ProxyService
from mangamotion.workflow import state_machine
from mangamotion.workflow.fallback import FallbackPolicy
from mangamotion.workflow.store import MusicLibrary, ProjectStore

logger = get_logger("workflow.service")

STAGE_PANELS = "panels"
STAGE_COLORIZE = "colorize"
STAGE_MANUAL = "manual"
STAGE_AI = "ai"

TaskCallback = Callable[[AsyncTask], None]


class WorkflowService:
    """Project-scoped orchestration of the manga-to-anime workflow."""

    def __init__(
        self,
        projects: ProjectStore,
        proxy: ProxyService,
        fallback: Optional[FallbackPolicy] = None,
        music: Optional[MusicLibrary] = None,
        poll_config: Optional[PollConfig] = None,
        route_budget: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.projects = projects
        self.proxy = proxy
        self.fallback = fallback or FallbackPolicy()
        self.music = music
        self.poll_config = poll_config or PollConfig()
        self.route_budget = route_budget
        self.sleep = sleep
        self._fallback_mode: Set[Tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self) -> List[Project]:
        return self.projects.list()

    def create_project(self, name: Optional[str] = None) -> Project:
        return self.projects.create(name)

    def get_project(self, project_id: str) -> Project:
        return self.projects.get(project_id)

    def rename_project(self, project_id: str, name: str) -> Project:
        project = self.projects.get(project_id)
        project.name = name
        return self.projects.save(project)

    def delete_project(self, project_id: str) -> None:
        self.projects.delete(project_id)
        self._fallback_mode = {key for key in self._fallback_mode if key[0] != project_id}

    def steps(self, project_id: str) -> StepsResponse:
        project = self.projects.get(project_id)
        return StepsResponse(
            current_step=project.current_step,
            blocked_steps=state_machine.ordered_blocked_steps(project),
        )

    def navigate(self, project_id: str, target: WorkflowStep) -> Project:
        project = self.projects.get(project_id)
        state_machine.navigate(project, target)
        return self.projects.save(project)

    # ------------------------------------------------------------------
    # Fallback mode
    # ------------------------------------------------------------------

    def in_fallback_mode(self, project_id: str, stage: str) -> bool:
        return (project_id, stage) in self._fallback_mode

    def _use_remote(self, project_id: str, stage: str, retry: bool) -> bool:
        if retry:
            self._fallback_mode.discard((project_id, stage))
            return True
        if self.in_fallback_mode(project_id, stage):
            logger.info(f"Project {project_id} is in fallback mode for {stage}, skipping remote call")
            return False
        return True

    def _mark(self, project_id: str, stage: str, failed: bool) -> None:
        if failed:
            self._fallback_mode.add((project_id, stage))
        else:
            self._fallback_mode.discard((project_id, stage))

    async def _within_budget(self, awaitable):
        if self.route_budget is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.route_budget)
        except asyncio.TimeoutError as e:
            raise TransportError("workflow", f"exceeded route budget of {self.route_budget:.0f}s") from e

    async def _image_bytes(self, reference: str) -> Tuple[bytes, str]:
        """Resolve a stored artifact reference to uploadable bytes."""
        if is_data_uri(reference):
            try:
                return decode_data_uri(reference)
            except ValueError as e:
                raise TransportError("workflow", f"unreadable image reference: {e}") from e
        if is_remote_url(reference):
            return await self.proxy.fetch_image(reference)
        raise TransportError("workflow", "image reference is neither a data URI nor a URL")

    def _current(
        self,
        project_id: str,
        stage: str,
        field: str,
        expected: Optional[str],
        step: Optional[WorkflowStep] = None,
    ) -> Project:
        """Re-read a project after a remote call; its result only applies to unchanged input."""
        project = self.projects.get(project_id)
        if getattr(project, field) != expected or (step is not None and project.current_step != step):
            logger.warning(f"Project {project_id} changed during {stage}, discarding result")
            raise StaleResultError(project_id, stage, field)
        return project

    @staticmethod
    def _token(project: Project, timestamp: Optional[str]) -> str:
        return f"{project.id}-{timestamp or int(time.time() * 1000)}"

    # ------------------------------------------------------------------
    # Upload and crop
    # ------------------------------------------------------------------

    def upload_image(self, project_id: str, image: str) -> Project:
        project = self.projects.get(project_id)
        state_machine.set_image(project, image)
        logger.info(f"Uploaded new page image to project {project_id}")
        return self.projects.save(project)

    async def detect_panels(self, project_id: str, retry: bool = False) -> StageResult:
        """Detect panels on the page image, or fill the panel slots with the page."""
        project = self.projects.get(project_id)
        if not project.image:
            raise StepBlockedError(WorkflowStep.CROP.value, "no page image uploaded")
        page = project.image

        panels = None
        reason = "Using fallback panel detection"
        if self._use_remote(project_id, STAGE_PANELS, retry):
            try:
                image, content_type = await self._image_bytes(page)
                result = await self._within_budget(self.proxy.detect_panels(image, content_type))
                panels = result.artifacts
                logger.info(f"Detected {len(panels)} panels for project {project_id}")
            except RemoteServiceError as e:
                logger.error(f"Panel detection failed for project {project_id}: {e}")
                reason = e.reason

        warning = None
        if panels is None:
            fb = self.fallback.panels(page, reason)
            panels, warning = fb.artifact, fb.warning
        self._mark(project_id, STAGE_PANELS, warning is not None)

        project = self._current(project_id, STAGE_PANELS, "image", page)
        state_machine.record_panels(project, panels)
        self.projects.save(project)
        return StageResult(project=project, fallback=warning is not None, warning=warning)

    def select_panel(self, project_id: str, index: int) -> Project:
        """Choose one detected panel and move on to colorization."""
        project = self.projects.get(project_id)
        if not project.panels:
            raise StepBlockedError(WorkflowStep.COLORIZE.value, "no panels detected")
        if not 0 <= index < len(project.panels):
            raise StepBlockedError(
                WorkflowStep.COLORIZE.value,
                f"panel index {index} out of range (0-{len(project.panels) - 1})",
            )
        if project.current_step != WorkflowStep.CROP:
            state_machine.navigate(project, WorkflowStep.CROP)
        state_machine.advance(project, project.panels[index])
        return self.projects.save(project)

    # ------------------------------------------------------------------
    # Colorize
    # ------------------------------------------------------------------

    def _enter_colorize(self, project: Project) -> None:
        if not state_machine.is_reachable(project, WorkflowStep.COLORIZE):
            raise StepBlockedError(WorkflowStep.COLORIZE.value, "no panel selected")
        if project.current_step != WorkflowStep.COLORIZE:
            state_machine.navigate(project, WorkflowStep.COLORIZE)

    async def colorize(
        self,
        project_id: str,
        timestamp: Optional[str] = None,
        retry: bool = False,
    ) -> StageResult:
        """
        Colorize the selected panel.

        Raises:
            StepBlockedError: no panel selected
            RequestInProgressError: the same request is already in flight
        """
        project = self.projects.get(project_id)
        self._enter_colorize(project)
        selected = project.selected_panel

        colorized = None
        reason = "Using fallback colorization"
        if self._use_remote(project_id, STAGE_COLORIZE, retry):
            try:
                image, _ = await self._image_bytes(selected)
                colorized = await self._within_budget(
                    self.proxy.colorize(image, self._token(project, timestamp))
                )
            except RemoteServiceError as e:
                logger.error(f"Colorization failed for project {project_id}: {e}")
                reason = e.reason

        warning = None
        source = ColorizationSource.REMOTE
        if colorized is None:
            fb = self.fallback.colorized(selected, reason)
            colorized, warning = fb.artifact, fb.warning
            source = ColorizationSource.FALLBACK
        self._mark(project_id, STAGE_COLORIZE, warning is not None)

        project = self._current(project_id, STAGE_COLORIZE, "selected_panel", selected, WorkflowStep.COLORIZE)
        state_machine.advance(project, colorized, source)
        self.projects.save(project)
        return StageResult(project=project, fallback=warning is not None, warning=warning)

    def skip_colorize(self, project_id: str) -> Project:
        """Use the selected panel as-is and move on to animation."""
        project = self.projects.get(project_id)
        self._enter_colorize(project)
        state_machine.advance(project, project.selected_panel, ColorizationSource.SKIPPED)
        logger.info(f"Skipped colorization for project {project_id}")
        return self.projects.save(project)

    # ------------------------------------------------------------------
    # Animate
    # ------------------------------------------------------------------

    def _animation_source(self, project: Project) -> str:
        if not state_machine.is_reachable(project, WorkflowStep.ANIMATE):
            raise StepBlockedError(WorkflowStep.ANIMATE.value, "panel has not been colorized or skipped")
        if project.current_step != WorkflowStep.ANIMATE:
            state_machine.navigate(project, WorkflowStep.ANIMATE)
            self.projects.save(project)
        return project.colorized_panel

    async def animate_manual(
        self,
        project_id: str,
        effect: ManualEffect = ManualEffect.ZOOM,
        timestamp: Optional[str] = None,
        retry: bool = False,
    ) -> AnimationDraft:
        """Render a manual camera effect over the colorized panel."""
        project = self.projects.get(project_id)
        panel = self._animation_source(project)

        video_url = None
        reason = None
        if self._use_remote(project_id, STAGE_MANUAL, retry):
            try:
                image, _ = await self._image_bytes(panel)
                video_url = await self._within_budget(
                    self.proxy.animate_manual(image, effect, self._token(project, timestamp))
                )
            except RemoteServiceError as e:
                logger.error(f"Manual animation failed for project {project_id}: {e}")
                reason = e.reason

        draft = AnimationDraft(image=panel, effect=AnimationEffect(effect.value))
        if video_url is None:
            fb = self.fallback.manual_animation(effect.value, reason)
            video_url, draft.warning, draft.fallback = fb.artifact, fb.warning, True
        self._mark(project_id, STAGE_MANUAL, draft.fallback)

        draft.settings = {"videoUrl": video_url}
        return draft

    async def animate_ai(
        self,
        project_id: str,
        prompt: str,
        model: AIModel = AIModel.WAN,
        timestamp: Optional[str] = None,
        retry: bool = False,
        on_update: Optional[TaskCallback] = None,
    ) -> AnimationDraft:
        """
        Generate a clip with an AI video model.

        Task-based models are polled until done; any failure, including a
        poll timeout, yields a single offline clip chosen from the prompt.
        """
        project = self.projects.get(project_id)
        panel = self._animation_source(project)
        draft = AnimationDraft(image=panel, effect=AnimationEffect.AI, progress=0)

        video_url = None
        reason = None
        if self._use_remote(project_id, STAGE_AI, retry):
            try:
                video_url = await self._within_budget(
                    self._generate_ai_video(project, panel, prompt, model, timestamp, draft, on_update)
                )
            except RemoteServiceError as e:
                logger.error(f"AI animation failed for project {project_id}: {e}")
                reason = e.reason

        if video_url is None:
            fb = self.fallback.ai_animation(prompt, reason)
            video_url, draft.warning, draft.fallback = fb.artifact, fb.warning, True
        self._mark(project_id, STAGE_AI, draft.fallback)

        draft.progress = 100
        draft.settings = {"prompt": prompt, "model": model.value, "videoUrl": video_url}
        return draft

    async def _generate_ai_video(
        self,
        project: Project,
        panel: str,
        prompt: str,
        model: AIModel,
        timestamp: Optional[str],
        draft: AnimationDraft,
        on_update: Optional[TaskCallback],
    ) -> str:
        image, _ = await self._image_bytes(panel)
        result = await self.proxy.start_ai_animation(image, prompt, model, self._token(project, timestamp))
        if result.kind != ResultKind.TASK:
            draft.logs.append("Video generated directly")
            return result.first

        task = AsyncTask.from_handle(result.task)
        poller = TaskPoller(
            self.proxy.check_task_status,
            self.poll_config,
            sleep=self.sleep,
            on_update=on_update,
        )
        try:
            await poller.poll(task)
        finally:
            draft.logs.extend(task.logs)
            draft.progress = task.progress
        return task.video_url

    # ------------------------------------------------------------------
    # Animations and anime
    # ------------------------------------------------------------------

    def save_animation(self, project_id: str, draft: AnimationDraft) -> Animation:
        project = self.projects.get(project_id)
        animation = draft.to_animation()
        project.animations.append(animation)
        self.projects.save(project)
        logger.info(f"Saved {animation.effect.value} animation {animation.id} to project {project_id}")
        return animation

    def delete_animation(self, project_id: str, animation_id: str) -> Project:
        project = self.projects.get(project_id)
        animation = project.find_animation(animation_id)
        if animation is None:
            raise AnimationNotFoundError(project_id, animation_id)
        project.animations.remove(animation)
        return self.projects.save(project)

    def _resolve_music(self, music: Optional[str]) -> Optional[str]:
        if not music or self.music is None:
            return music
        track = self.music.get(music)
        return track.url if track else music

    async def create_anime(self, project_id: str, request: AnimeRequest) -> AnimeResult:
        """
        Merge saved clips into one video.

        Offline clips cannot be merged remotely and are left out of the
        upload; when nothing remote is left the preview is returned directly.
        """
        project = self.projects.get(project_id)
        if request.animation_ids is None:
            animations = list(project.animations)
        else:
            animations = []
            for animation_id in request.animation_ids:
                animation = project.find_animation(animation_id)
                if animation is None:
                    raise AnimationNotFoundError(project_id, animation_id)
                animations.append(animation)

        videos = [a.video_url for a in animations if a.video_url]
        if not videos:
            raise StepBlockedError("anime", "no animations to merge")

        music = self._resolve_music(request.music)
        remote_videos = [v for v in videos if not is_offline_artifact(v)]

        reason = "all clips are offline animations"
        if remote_videos:
            try:
                result = await self._within_budget(
                    self.proxy.merge_videos(remote_videos, music, request.settings)
                )
                logger.info(f"Created anime for project {project_id} with {len(remote_videos)} clips")
                return AnimeResult(
                    file_url=result.first,
                    file_name=result.file_name,
                    clips=len(remote_videos),
                )
            except RemoteServiceError as e:
                logger.error(f"Anime merge failed for project {project_id}: {e}")
                reason = e.reason

        fb = self.fallback.merge_preview(videos, request.settings, music, reason)
        return AnimeResult(fallback=True, preview=fb.artifact, warning=fb.warning, clips=len(videos))
