"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. Remote inference services are replaced by an
httpx MockTransport and every wait goes through a recording fake sleep, so
retries and polling run in virtual time.
"""

import io
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from mangamotion.core.artifacts import to_data_uri
from mangamotion.core.config import Settings
from mangamotion.core.retry import PollConfig
from mangamotion.proxy.gateway import InferenceGateway
from mangamotion.proxy.guard import InFlightRegistry
from mangamotion.proxy.service import ProxyService
from mangamotion.workflow.fallback import FallbackPolicy
from mangamotion.workflow.service import WorkflowService
from mangamotion.workflow.store import KeyValueStorage, MusicLibrary, ProjectStore

PANEL_URL = "http://panel.test"
COLORIZE_URL = "http://colorize.test"
ANIMATION_URL = "http://animate.test"
MERGE_URL = "http://merge.test"


class RemoteStub:
    """Scripted stand-in for the remote inference services.

    Responses are registered per URL path. Each call consumes the next
    scripted response; the last one repeats. A response is a dict (JSON
    body, status 200), an httpx.Response, an exception to raise, or a
    callable taking the request.
    """

    def __init__(self):
        self.routes: Dict[str, List[Any]] = {}
        self.calls: List[httpx.Request] = []

    def add(self, path: str, *responses: Any) -> "RemoteStub":
        self.routes[path] = list(responses)
        return self

    def count(self, path: str) -> int:
        return sum(1 for r in self.calls if r.url.path == path)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.calls if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        scripted = self.routes.get(request.url.path)
        if not scripted:
            return httpx.Response(404, json={"detail": "Not Found"})
        response = scripted.pop(0) if len(scripted) > 1 else scripted[0]

        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def connect_error(message: str = "connection refused") -> Callable[[httpx.Request], httpx.Response]:
    def raise_error(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(message, request=request)
    return raise_error


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def settings(temp_dir) -> Settings:
    """Settings pointing at the stubbed services and a temporary data dir."""
    return Settings(
        _env_file=None,
        panel_api_url=PANEL_URL,
        colorize_api_url=COLORIZE_URL,
        animation_api_url=ANIMATION_URL,
        merge_api_url=MERGE_URL,
        data_dir=temp_dir / "data",
    )


@pytest.fixture
def remote() -> RemoteStub:
    return RemoteStub()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def connection_refused():
    """Factory for a scripted response that raises httpx.ConnectError."""
    return connect_error


@pytest.fixture
def registry() -> InFlightRegistry:
    return InFlightRegistry()


@pytest.fixture
def gateway(remote, settings) -> InferenceGateway:
    return InferenceGateway(httpx.AsyncClient(transport=remote.transport), settings)


@pytest.fixture
def proxy_service(gateway, settings, registry, fake_sleep) -> ProxyService:
    return ProxyService(gateway, settings, registry=registry, sleep=fake_sleep)


@pytest.fixture
def storage(settings) -> KeyValueStorage:
    return KeyValueStorage(settings.data_dir)


@pytest.fixture
def project_store(storage) -> ProjectStore:
    store = ProjectStore(storage)
    store.load()
    return store


@pytest.fixture
def music_library(storage) -> MusicLibrary:
    library = MusicLibrary(storage)
    library.load()
    return library


@pytest.fixture
def workflow(project_store, proxy_service, music_library, settings, fake_sleep) -> WorkflowService:
    return WorkflowService(
        project_store,
        proxy_service,
        fallback=FallbackPolicy(settings.fallback_panel_slots),
        music=music_library,
        poll_config=PollConfig(settings.poll_interval, settings.poll_max_attempts),
        sleep=fake_sleep,
    )


@pytest.fixture
def png_bytes() -> bytes:
    """A small RGB PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 6), (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_data_uri(png_bytes) -> str:
    return to_data_uri(png_bytes, "image/png")


@pytest.fixture
def client(settings, remote, fake_sleep):
    """TestClient over an app wired to the stubbed services."""
    from mangamotion.api.deps import limiter
    from mangamotion.api.main import create_app

    limiter.enabled = False
    app = create_app(settings, transport=remote.transport, sleep=fake_sleep)
    with TestClient(app) as test_client:
        yield test_client
    limiter.enabled = True
