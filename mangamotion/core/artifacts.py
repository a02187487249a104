"""
Artifact reference helpers.

Panels, colorized panels and clips travel through the workflow as string
references: inline data URIs, remote URLs, or offline placeholder markers
that the UI renders as CSS keyframe animations.
"""

import base64
import binascii
import re
from typing import Optional, Tuple

from mangamotion.core.constants import (
    DEFAULT_IMAGE_FORMAT,
    OFFLINE_ANIMATION_SUFFIX,
    OFFLINE_VIDEO_PREFIX,
)

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


def is_data_uri(value: str) -> bool:
    return value.startswith("data:")


def is_remote_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def ensure_data_uri(payload: str, image_format: Optional[str] = None) -> str:
    """Prefix a bare base64 image payload so it can be used as an image source.

    URLs, root-relative paths and payloads that are already data URIs are
    returned unchanged.
    """
    if is_data_uri(payload) or is_remote_url(payload) or payload.startswith("/"):
        return payload
    fmt = (image_format or DEFAULT_IMAGE_FORMAT).lower().lstrip(".")
    if fmt == "jpg":
        fmt = "jpeg"
    return f"data:image/{fmt};base64,{payload}"


def to_data_uri(data: bytes, mime_type: str = "image/png") -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Decode a data URI into its bytes and MIME type.

    Raises:
        ValueError: if the value is not a well-formed base64 data URI.
    """
    match = _DATA_URI_PATTERN.match(uri)
    if not match or not match.group("b64"):
        raise ValueError("Not a base64 data URI")
    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    return data, match.group("mime") or "application/octet-stream"


def image_format_from_mime(mime_type: Optional[str]) -> str:
    if not mime_type or "/" not in mime_type:
        return DEFAULT_IMAGE_FORMAT
    return mime_type.split("/", 1)[1].split(";", 1)[0] or DEFAULT_IMAGE_FORMAT


# =============================================================================
# OFFLINE PLACEHOLDERS
# =============================================================================

def offline_video_reference(animation_type: str) -> str:
    """Placeholder clip reference rendered client-side as a CSS animation."""
    return f"{OFFLINE_VIDEO_PREFIX}{animation_type}{OFFLINE_ANIMATION_SUFFIX}"


def is_offline_artifact(reference: Optional[str]) -> bool:
    if not reference:
        return False
    return reference.startswith(OFFLINE_VIDEO_PREFIX) and OFFLINE_ANIMATION_SUFFIX in reference


def offline_animation_type(reference: Optional[str]) -> Optional[str]:
    """Return the animation keyword carried by an offline marker, if any."""
    if not is_offline_artifact(reference):
        return None
    body = reference[len(OFFLINE_VIDEO_PREFIX):]
    return body[: body.index(OFFLINE_ANIMATION_SUFFIX)]


def can_download(reference: Optional[str]) -> bool:
    """Only genuine remote artifacts can be downloaded."""
    return bool(reference) and not is_offline_artifact(reference)
