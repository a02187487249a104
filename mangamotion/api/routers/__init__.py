"""API routers for MangaMotion."""

from mangamotion.api.routers import jobs, music, projects, proxy

__all__ = ["jobs", "music", "projects", "proxy"]
