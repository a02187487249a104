"""
Project Models

Projects, their saved animations and the unsaved animation drafts returned by
the animate actions. Field names are camelCase on the wire and in storage.
"""

import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mangamotion.core.artifacts import can_download, is_offline_artifact
from mangamotion.core.constants import (
    AnimationEffect,
    ColorizationSource,
    WorkflowStep,
)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


class Animation(CamelModel):
    """A saved animation clip derived from one panel."""
    id: str = Field(default_factory=lambda: new_id("anim-"))
    image: str
    effect: AnimationEffect
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def video_url(self) -> Optional[str]:
        return self.settings.get("videoUrl")

    @property
    def is_offline(self) -> bool:
        return is_offline_artifact(self.video_url)

    @property
    def downloadable(self) -> bool:
        return can_download(self.video_url)


class AnimationDraft(CamelModel):
    """Result of an animate action, not yet saved to the project."""
    image: str
    effect: AnimationEffect
    settings: Dict[str, Any] = Field(default_factory=dict)
    fallback: bool = False
    warning: Optional[str] = None
    progress: int = 100
    logs: List[str] = Field(default_factory=list)

    @property
    def video_url(self) -> Optional[str]:
        return self.settings.get("videoUrl")

    def to_animation(self) -> Animation:
        return Animation(image=self.image, effect=self.effect, settings=dict(self.settings))


class Project(CamelModel):
    """One manga page moving through upload, crop, colorize and animate."""
    id: str = Field(default_factory=new_id)
    name: str
    image: Optional[str] = None
    panels: List[str] = Field(default_factory=list)
    selected_panel: Optional[str] = None
    colorized_panel: Optional[str] = None
    colorization_source: Optional[ColorizationSource] = None
    current_step: WorkflowStep = WorkflowStep.UPLOAD
    animations: List[Animation] = Field(default_factory=list)

    def find_animation(self, animation_id: str) -> Optional[Animation]:
        for animation in self.animations:
            if animation.id == animation_id:
                return animation
        return None


class ProjectCreate(CamelModel):
    """Create project request."""
    name: Optional[str] = Field(default=None, max_length=200)


class ProjectUpdate(CamelModel):
    """Rename project request."""
    name: str = Field(min_length=1, max_length=200)


class StepsResponse(CamelModel):
    """Current step and the steps that cannot be entered yet."""
    current_step: WorkflowStep
    blocked_steps: List[WorkflowStep]


class StageResult(CamelModel):
    """Outcome of a workflow action that produced an artifact."""
    project: Project
    fallback: bool = False
    warning: Optional[str] = None


class AnimeRequest(CamelModel):
    """Merge saved animations into one anime video."""
    animation_ids: Optional[List[str]] = None
    music: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)


class AnimeResult(CamelModel):
    """Merged anime video, or the preview used when merging failed."""
    success: bool = True
    fallback: bool = False
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    preview: Optional[Dict[str, Any]] = None
    warning: Optional[str] = None
    clips: int = 0
