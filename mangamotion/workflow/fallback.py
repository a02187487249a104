"""
Fallback policy.

Local stand-ins for every remote artifact, so a failing inference service
degrades the workflow instead of stopping it. Nothing here raises.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from mangamotion.core.artifacts import offline_video_reference
from mangamotion.core.constants import (
    DEFAULT_FALLBACK_ANIMATION,
    FALLBACK_ANIMATION_KEYWORDS,
)
from mangamotion.core.logging_config import get_logger

logger = get_logger("workflow.fallback")

DEFAULT_PANEL_SLOTS = 5


@dataclass
class Fallback:
    """A substitute artifact and the warning shown with it."""
    artifact: Any
    warning: str


def pick_animation_type(prompt: Optional[str]) -> str:
    """Choose an offline animation from the words of a prompt."""
    words = set((prompt or "").lower().split())
    for animation_type, keywords in FALLBACK_ANIMATION_KEYWORDS:
        if words.intersection(keywords):
            return animation_type
    return DEFAULT_FALLBACK_ANIMATION


class FallbackPolicy:
    """Builds the substitute artifact for each workflow stage."""

    def __init__(self, panel_slots: int = DEFAULT_PANEL_SLOTS):
        self.panel_slots = panel_slots

    def panels(self, image: str, reason: Optional[str] = None) -> Fallback:
        logger.warning(f"Using fallback panel detection: {reason}")
        return Fallback(
            [image] * self.panel_slots,
            f"Failed to process the image. {reason or 'Please try again later.'}",
        )

    def colorized(self, selected_panel: str, reason: Optional[str] = None) -> Fallback:
        logger.warning(f"Using fallback colorization (original image): {reason}")
        return Fallback(
            selected_panel,
            f"Failed to colorize the panel: {reason or 'Please try again later.'}",
        )

    def manual_animation(self, effect: str, reason: Optional[str] = None) -> Fallback:
        logger.warning(f"Using offline {effect} animation: {reason}")
        return Fallback(
            offline_video_reference(effect),
            f"Animation service unavailable, using offline {effect} animation",
        )

    def ai_animation(self, prompt: Optional[str], reason: Optional[str] = None) -> Fallback:
        animation_type = pick_animation_type(prompt)
        logger.warning(f"Using offline {animation_type} animation for AI request: {reason}")
        return Fallback(
            offline_video_reference(animation_type),
            "Using fallback animation mode due to API unavailability",
        )

    def merge_preview(
        self,
        videos: List[str],
        settings: Dict[str, Any],
        music: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Fallback:
        preview = {
            "mode": "preview",
            "videos": list(videos),
            "settings": dict(settings or {}),
            "music": music,
            "timestamp": int(time.time() * 1000),
        }
        return Fallback(preview, f"Using preview mode. API error: {reason or 'unavailable'}")
