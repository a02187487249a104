"""Music router: the background-music library used by anime merges."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from mangamotion.core.logging_config import get_logger
from mangamotion.models.music import MusicTrack, MusicTrackCreate
from mangamotion.workflow.store import MusicLibrary

from ..deps import get_music

logger = get_logger("api.music")

router = APIRouter()


@router.get("", response_model=List[MusicTrack])
async def list_tracks(library: MusicLibrary = Depends(get_music)):
    return library.list()


@router.post("", response_model=MusicTrack, status_code=201)
async def add_track(body: MusicTrackCreate, library: MusicLibrary = Depends(get_music)):
    return library.add(body)


@router.delete("/{track_id}")
async def delete_track(track_id: str, library: MusicLibrary = Depends(get_music)):
    if not library.delete(track_id):
        raise HTTPException(status_code=404, detail=f"Track not found: {track_id}")
    return {"success": True, "message": f"Track {track_id} removed"}


@router.post("/reset", response_model=List[MusicTrack])
async def reset_library(library: MusicLibrary = Depends(get_music)):
    """Restore the predefined tracks."""
    logger.info("Resetting music library to predefined tracks")
    return library.reset()
