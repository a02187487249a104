"""
MangaMotion Models
"""

from .project import (
    Animation,
    AnimationDraft,
    Project,
    ProjectCreate,
    ProjectUpdate,
    StepsResponse,
    StageResult,
    AnimeRequest,
    AnimeResult,
)
from .music import MusicTrack, MusicTrackCreate

__all__ = [
    "Animation",
    "AnimationDraft",
    "Project",
    "ProjectCreate",
    "ProjectUpdate",
    "StepsResponse",
    "StageResult",
    "AnimeRequest",
    "AnimeResult",
    "MusicTrack",
    "MusicTrackCreate",
]
