"""
MangaMotion Proxy Layer

Calls to the remote inference services: transport, response normalization,
retry and in-flight guarding, and polling of asynchronous tasks.
"""

from mangamotion.proxy.gateway import InferenceGateway
from mangamotion.proxy.guard import InFlightRegistry, get_registry, request_token
from mangamotion.proxy.normalize import (
    NormalizedResult,
    ResultKind,
    TaskHandle,
    normalize_response,
)
from mangamotion.proxy.poller import AsyncTask, TaskPoller
from mangamotion.proxy.service import ProxyService

__all__ = [
    "InferenceGateway",
    "InFlightRegistry",
    "get_registry",
    "request_token",
    "NormalizedResult",
    "ResultKind",
    "TaskHandle",
    "normalize_response",
    "AsyncTask",
    "TaskPoller",
    "ProxyService",
]
