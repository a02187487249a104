"""MangaMotion HTTP API."""
