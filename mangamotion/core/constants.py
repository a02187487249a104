"""
MangaMotion Constants

Global constants used throughout the MangaMotion system.
"""

from enum import Enum
from typing import Dict, List, Tuple

# =============================================================================
# VERSION INFO
# =============================================================================
VERSION = "1.0.0"
PROJECT_NAME = "MangaMotion"

# =============================================================================
# WORKFLOW
# =============================================================================

class WorkflowStep(str, Enum):
    """Ordered stages a project moves through."""
    UPLOAD = "upload"
    CROP = "crop"
    COLORIZE = "colorize"
    ANIMATE = "animate"

    @property
    def position(self) -> int:
        return WORKFLOW_ORDER.index(self)


WORKFLOW_ORDER: List[WorkflowStep] = [
    WorkflowStep.UPLOAD,
    WorkflowStep.CROP,
    WorkflowStep.COLORIZE,
    WorkflowStep.ANIMATE,
]


class ColorizationSource(str, Enum):
    """How a project's colorized panel was obtained."""
    REMOTE = "remote"
    SKIPPED = "skipped"
    FALLBACK = "fallback"


# =============================================================================
# ANIMATION
# =============================================================================

class AnimationEffect(str, Enum):
    """Effect tag stored on a saved animation."""
    ZOOM = "zoom"
    SHAKE = "shake"
    REVEAL = "reveal"
    AI = "ai"


class ManualEffect(str, Enum):
    """Effects offered by the manual animation service."""
    ZOOM = "zoom"
    REVEAL = "reveal"
    SHAKE = "shake"


class AIModel(str, Enum):
    """Generative video models offered by the animation service."""
    VIDU = "vidu"
    WAN = "wan"
    COGVIDEOX = "cogvideox"


# Models that answer with a task to poll instead of a finished video.
TASK_BASED_MODELS = (AIModel.VIDU, AIModel.COGVIDEOX)


class TaskState(str, Enum):
    """Lifecycle of an asynchronous remote task."""
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.DONE, TaskState.ERROR, TaskState.TIMEOUT)


# Prompt vocabulary used to pick an offline animation type. Order matters:
# the first group with a matching word wins.
FALLBACK_ANIMATION_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("zoom", ("zoom", "close", "closer", "magnify")),
    ("pan", ("pan", "move", "slide", "shift")),
    ("shake", ("shake", "vibrate", "tremble", "quake")),
    ("fade", ("fade", "dissolve", "appear", "disappear")),
)
DEFAULT_FALLBACK_ANIMATION = "zoom"

# =============================================================================
# ARTIFACTS
# =============================================================================

OFFLINE_VIDEO_PREFIX = "data:video/mp4;base64,"
OFFLINE_ANIMATION_SUFFIX = "-offline-animation"
DEFAULT_IMAGE_FORMAT = "png"
DEFAULT_ANIME_FILE_NAME = "anime-video.mp4"

# Upload names the remote services expect.
UPLOAD_FILE_NAMES: Dict[str, str] = {
    "panels": "manga_page.jpg",
    "colorize": "panel.png",
    "manual": "colorized_panel.png",
    "ai": "image.png",
    "merge": "videos.json",
}

NO_CACHE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# =============================================================================
# PERSISTENCE
# =============================================================================

PROJECTS_STORAGE_KEY = "mangaProjects"
MUSIC_STORAGE_KEY = "mangaMusicTracks"

PREDEFINED_MUSIC_TRACKS: List[Dict[str, str]] = [
    {
        "id": "track-1",
        "name": "Epic Adventure Theme",
        "url": "https://storage.yandexcloud.net/manymated/music/track1.mp3",
        "artist": "Yandex Music",
        "genre": "Epic",
    },
    {
        "id": "track-2",
        "name": "Emotional Journey",
        "url": "https://storage.yandexcloud.net/manymated/music/track2.mp3",
        "artist": "Yandex Music",
        "genre": "Dramatic",
    },
    {
        "id": "track-3",
        "name": "Action Sequence",
        "url": "https://storage.yandexcloud.net/manymated/music/track3.mp3",
        "artist": "Yandex Music",
        "genre": "Action",
    },
    {
        "id": "track-4",
        "name": "Mysterious Atmosphere",
        "url": "https://storage.yandexcloud.net/manymated/music/track4.mp3",
        "artist": "Yandex Music",
        "genre": "Mystery",
    },
    {
        "id": "track-5",
        "name": "Peaceful Moment",
        "url": "https://storage.yandexcloud.net/manymated/music/track5.mp3",
        "artist": "Yandex Music",
        "genre": "Relaxing",
    },
    {
        "id": "track-6",
        "name": "Battle Theme",
        "url": "https://storage.yandexcloud.net/manymated/music/track6.mp3",
        "artist": "Yandex Music",
        "genre": "Action",
    },
]
