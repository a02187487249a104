"""
Persistence for projects and the music library.

State lives in a key-value store holding one JSON document per key. Each
collection is read once at startup and written back after every mutation.
A document that fails to parse is logged and the defaults are kept; a failed
write is logged and the in-memory state stays current.
"""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from mangamotion.core.constants import (
    MUSIC_STORAGE_KEY,
    PREDEFINED_MUSIC_TRACKS,
    PROJECTS_STORAGE_KEY,
)
from mangamotion.core.exceptions import ProjectNotFoundError, StorageError
from mangamotion.core.logging_config import get_logger
from mangamotion.models.music import MusicTrack, MusicTrackCreate
from mangamotion.models.project import Project

logger = get_logger("workflow.store")

_PROJECT_LIST = TypeAdapter(List[Project])
_TRACK_LIST = TypeAdapter(List[MusicTrack])


class KeyValueStorage:
    """String documents stored as `<data_dir>/<key>.json`."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not read '{key}'", {"path": str(path), "error": str(e)}) from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Could not write '{key}'", {"path": str(path), "error": str(e)}) from e

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _read_document(storage: KeyValueStorage, key: str) -> Optional[str]:
    try:
        return storage.get(key)
    except StorageError as e:
        logger.error(f"Error reading saved state, keeping defaults: {e}")
        return None


def default_projects() -> List[Project]:
    return [Project(name="Page 1"), Project(name="Page 2")]


def default_tracks() -> List[MusicTrack]:
    return [MusicTrack(**track) for track in PREDEFINED_MUSIC_TRACKS]


class ProjectStore:
    """Ordered project list backed by the `mangaProjects` document."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._projects: Dict[str, Project] = {}
        self._loaded = False

    def load(self) -> None:
        projects = default_projects()
        raw = _read_document(self.storage, PROJECTS_STORAGE_KEY)
        if raw is not None:
            try:
                projects = _PROJECT_LIST.validate_json(raw)
            except ValidationError as e:
                logger.error(f"Error parsing saved projects, keeping defaults: {e}")
        self._projects = {p.id: p for p in projects}
        self._loaded = True
        logger.info(f"Loaded {len(self._projects)} projects")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def persist(self) -> None:
        data = _PROJECT_LIST.dump_json(list(self._projects.values()), by_alias=True)
        try:
            self.storage.set(PROJECTS_STORAGE_KEY, data.decode("utf-8"))
        except StorageError as e:
            logger.error(f"Error saving projects, keeping in-memory state: {e}")

    def list(self) -> List[Project]:
        self._ensure_loaded()
        return list(self._projects.values())

    def get(self, project_id: str) -> Project:
        self._ensure_loaded()
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def create(self, name: Optional[str] = None) -> Project:
        self._ensure_loaded()
        project = Project(name=name or f"Page {len(self._projects) + 1}")
        self._projects[project.id] = project
        self.persist()
        logger.info(f"Created project {project.id} ({project.name})")
        return project

    def save(self, project: Project) -> Project:
        self._ensure_loaded()
        if project.id not in self._projects:
            raise ProjectNotFoundError(project.id)
        self._projects[project.id] = project
        self.persist()
        return project

    def delete(self, project_id: str) -> None:
        self._ensure_loaded()
        if self._projects.pop(project_id, None) is None:
            raise ProjectNotFoundError(project_id)
        self.persist()
        logger.info(f"Deleted project {project_id}")


class MusicLibrary:
    """Music tracks backed by the `mangaMusicTracks` document."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._tracks: List[MusicTrack] = []
        self._loaded = False

    def load(self) -> None:
        tracks = default_tracks()
        raw = _read_document(self.storage, MUSIC_STORAGE_KEY)
        if raw is not None:
            try:
                tracks = _TRACK_LIST.validate_json(raw)
            except ValidationError as e:
                logger.error(f"Error parsing saved music tracks, keeping defaults: {e}")
        self._tracks = tracks
        self._loaded = True

    def persist(self) -> None:
        data = _TRACK_LIST.dump_json(self._tracks, by_alias=True)
        try:
            self.storage.set(MUSIC_STORAGE_KEY, data.decode("utf-8"))
        except StorageError as e:
            logger.error(f"Error saving music tracks, keeping in-memory state: {e}")

    def list(self) -> List[MusicTrack]:
        if not self._loaded:
            self.load()
        return list(self._tracks)

    def get(self, track_id: str) -> Optional[MusicTrack]:
        for track in self.list():
            if track.id == track_id:
                return track
        return None

    def add(self, request: MusicTrackCreate) -> MusicTrack:
        track = MusicTrack(**request.model_dump())
        self.list()
        self._tracks.append(track)
        self.persist()
        logger.info(f"Added music track {track.id} ({track.name})")
        return track

    def delete(self, track_id: str) -> bool:
        before = len(self.list())
        self._tracks = [t for t in self._tracks if t.id != track_id]
        if len(self._tracks) == before:
            return False
        self.persist()
        return True

    def reset(self) -> List[MusicTrack]:
        self._tracks = default_tracks()
        self._loaded = True
        self.persist()
        return list(self._tracks)
