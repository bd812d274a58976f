"""Content-Type classification for fetched resources."""

from __future__ import annotations

import logging
import re
from typing import Optional

from .builder_config import DEFAULT_EXTENSION, EXTENSION_BY_CONTENT_TYPE

logger = logging.getLogger(__name__)

_MEDIA_TYPE_RE = re.compile(r"^[^ ;]+")


def media_type(content_type: Optional[str]) -> str:
    match = _MEDIA_TYPE_RE.match((content_type or "").strip())
    return match.group(0).lower() if match else ""


def is_binary_content(content_type: Optional[str]) -> bool:
    """True unless the content-type mentions text.

    With no content-type at all the payload is assumed to be text.
    """

    if not content_type:
        return False
    return "text" not in content_type.lower()


def is_html_content(content_type: Optional[str]) -> bool:
    return "text/html" in (content_type or "").lower()


def is_css_content(content_type: Optional[str]) -> bool:
    return "text/css" in (content_type or "").lower()


def extension_for_content_type(content_type: Optional[str]) -> str:
    key = media_type(content_type)
    ext = EXTENSION_BY_CONTENT_TYPE.get(key)
    if ext is None:
        logger.debug("unknown content-type '%s'; defaulting to %s", content_type, DEFAULT_EXTENSION)
        return DEFAULT_EXTENSION
    return ext


__all__ = [
    "media_type",
    "is_binary_content",
    "is_html_content",
    "is_css_content",
    "extension_for_content_type",
]
