"""
Music Models
"""

from typing import Optional

from pydantic import Field

from mangamotion.models.project import CamelModel, new_id


class MusicTrack(CamelModel):
    """A background music track available to anime merges."""
    id: str = Field(default_factory=lambda: new_id("track-"))
    name: str
    url: str
    duration: Optional[float] = None
    artist: Optional[str] = None
    genre: Optional[str] = None


class MusicTrackCreate(CamelModel):
    """Add track request."""
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    artist: Optional[str] = None
    genre: Optional[str] = None
