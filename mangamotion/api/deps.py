"""
API Dependencies

Component providers for route handlers and the shared rate limiter.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from mangamotion.core.config import get_settings
from mangamotion.core.logging_config import get_logger
from mangamotion.proxy.service import ProxyService
from mangamotion.workflow.fallback import FallbackPolicy
from mangamotion.workflow.service import WorkflowService
from mangamotion.workflow.store import MusicLibrary

logger = get_logger("api.deps")

# Rate limiter for the expensive generation endpoints
limiter = Limiter(key_func=get_remote_address)


def get_proxy(request: Request) -> ProxyService:
    return request.app.state.proxy


def get_workflow(request: Request) -> WorkflowService:
    return request.app.state.workflow


def get_music(request: Request) -> MusicLibrary:
    return request.app.state.music


def generation_limit() -> str:
    """Rate limit string for generation endpoints, read from settings."""
    return get_settings().generation_rate_limit


def get_fallback(request: Request) -> FallbackPolicy:
    return request.app.state.workflow.fallback
