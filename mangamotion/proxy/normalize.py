"""
Response normalization for the remote inference services.

Upstream services do not agree on a response shape. Every payload is run
through an ordered table of shape matchers; the first matcher whose kind the
caller accepts and whose fields carry a usable artifact wins. A payload that
no matcher recognizes is a ResponseShapeError, distinct from a transport
failure.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from mangamotion.core.artifacts import ensure_data_uri
from mangamotion.core.exceptions import ResponseShapeError

MAX_NUMBERED_IMAGES = 20


class ResultKind(str, Enum):
    """What a normalized response carries."""
    PANELS = "panels"
    IMAGE = "image"
    VIDEO = "video"
    TASK = "task"


@dataclass
class TaskHandle:
    """Reference to an asynchronous remote task."""
    task_id: str
    status_url: str
    model: Optional[str] = None


@dataclass
class NormalizedResult:
    """Canonical form of any recognized upstream response."""
    kind: ResultKind
    artifacts: List[str] = field(default_factory=list)
    task: Optional[TaskHandle] = None
    file_name: Optional[str] = None
    shape: str = ""

    @property
    def first(self) -> Optional[str]:
        return self.artifacts[0] if self.artifacts else None


Extractor = Callable[[Dict[str, Any], Optional[str]], Optional[NormalizedResult]]


def _strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [v for v in values if isinstance(v, str) and v]


def _match_task(data: Dict[str, Any], _fmt: Optional[str]) -> Optional[NormalizedResult]:
    task_id = data.get("task_id")
    status_url = data.get("status_url")
    if task_id and isinstance(status_url, str) and status_url:
        return NormalizedResult(
            kind=ResultKind.TASK,
            task=TaskHandle(task_id=str(task_id), status_url=status_url),
            shape="task",
        )
    return None


def _match_panel_crops(data: Dict[str, Any], fmt: Optional[str]) -> Optional[NormalizedResult]:
    crops = _strings(data.get("panel_crops"))
    if crops:
        return NormalizedResult(
            kind=ResultKind.PANELS,
            artifacts=[ensure_data_uri(crop, fmt) for crop in crops],
            shape="panel_crops",
        )
    return None


def _match_panel_urls(data: Dict[str, Any], fmt: Optional[str]) -> Optional[NormalizedResult]:
    for key in ("panel_urls", "panels"):
        urls = _strings(data.get(key))
        if urls:
            return NormalizedResult(
                kind=ResultKind.PANELS,
                artifacts=[ensure_data_uri(url, fmt) for url in urls],
                shape=key,
            )
    return None


def _match_numbered_images(data: Dict[str, Any], fmt: Optional[str]) -> Optional[NormalizedResult]:
    images = []
    for i in range(1, MAX_NUMBERED_IMAGES + 1):
        value = data.get(f"img{i}")
        if isinstance(value, str) and value:
            images.append(ensure_data_uri(value, fmt))
    if images:
        return NormalizedResult(kind=ResultKind.PANELS, artifacts=images, shape="numbered")
    return None


def _match_colorized_image(data: Dict[str, Any], fmt: Optional[str]) -> Optional[NormalizedResult]:
    image = data.get("colorized_image")
    if isinstance(image, str) and image:
        return NormalizedResult(
            kind=ResultKind.IMAGE,
            artifacts=[ensure_data_uri(image, fmt)],
            shape="colorized_image",
        )
    return None


def _match_video(data: Dict[str, Any], _fmt: Optional[str]) -> Optional[NormalizedResult]:
    video = data.get("video")
    url = video.get("url") if isinstance(video, dict) else None
    if isinstance(url, str) and url:
        return NormalizedResult(kind=ResultKind.VIDEO, artifacts=[url], shape="video")
    return None


def _match_file_url(data: Dict[str, Any], _fmt: Optional[str]) -> Optional[NormalizedResult]:
    url = data.get("file_url")
    if isinstance(url, str) and url:
        file_name = data.get("file_name")
        return NormalizedResult(
            kind=ResultKind.VIDEO,
            artifacts=[url],
            file_name=file_name if isinstance(file_name, str) and file_name else None,
            shape="file_url",
        )
    return None


# Tried in priority order.
SHAPE_MATCHERS: Tuple[Tuple[ResultKind, Extractor], ...] = (
    (ResultKind.TASK, _match_task),
    (ResultKind.PANELS, _match_panel_crops),
    (ResultKind.PANELS, _match_panel_urls),
    (ResultKind.PANELS, _match_numbered_images),
    (ResultKind.IMAGE, _match_colorized_image),
    (ResultKind.VIDEO, _match_video),
    (ResultKind.VIDEO, _match_file_url),
)


def declared_format(data: Dict[str, Any]) -> Optional[str]:
    for key in ("format", "image_format"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def normalize_response(
    service: str,
    data: Any,
    accept: Iterable[ResultKind],
) -> NormalizedResult:
    """
    Map an upstream payload to its canonical form.

    Args:
        service: Service name used in error reporting
        data: Decoded JSON payload
        accept: Result kinds the caller can use

    Returns:
        The first matching NormalizedResult

    Raises:
        ResponseShapeError: if no accepted shape carries a usable artifact
    """
    if not isinstance(data, dict):
        raise ResponseShapeError(service, [])

    accepted = set(accept)
    fmt = declared_format(data)
    for kind, matcher in SHAPE_MATCHERS:
        if kind not in accepted:
            continue
        result = matcher(data, fmt)
        if result is not None:
            return result

    raise ResponseShapeError(service, sorted(data.keys()))
