"""
MangaMotion - Manga Page to Anime Clip Workflow Service

Turns a manga page into short animated clips: panel detection, colorization,
manual or AI animation, and merging clips into a longer anime with music.
The heavy lifting is done by remote inference services; this package drives
the workflow, polls long-running tasks and degrades gracefully when those
services are unavailable.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "MangaMotion Team"
__project__ = "MangaMotion"

from pathlib import Path

# Package root directory
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent

__all__ = [
    "__version__",
    "__author__",
    "__project__",
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
]
