from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Optional, Union

import pytest

from mhtbuilder.workflows.builder import Builder
from mhtbuilder.workflows.builder_config import BuilderSettings
from mhtbuilder.workflows.content_types import is_binary_content
from mhtbuilder.workflows.errors import TransportError
from mhtbuilder.workflows.web_fetch import FetchResult


class FakeTransport:
    """In-memory transport keyed by resolved URL; unknown URLs answer 404."""

    def __init__(self) -> None:
        self.pages: Dict[str, FetchResult] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def add(
        self,
        url: str,
        body: Union[str, bytes],
        content_type: str = "text/html",
        *,
        content_location: Optional[str] = None,
        encoding: str = "utf-8",
    ) -> None:
        binary = is_binary_content(content_type)
        payload = body.encode(encoding) if isinstance(body, str) else body
        self.pages[url] = FetchResult(
            url=url,
            status=200,
            content_type=content_type,
            body=payload,
            content_location=content_location,
            encoding=None if binary else encoding,
            is_binary=binary,
        )

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResult:
        with self._lock:
            self.calls.append(url)
        result = self.pages.get(url)
        if result is None:
            raise TransportError(url, "HTTP 404 Not Found", status=404)
        return result


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> BuilderSettings:
    return BuilderSettings()


@pytest.fixture
def builder(transport: FakeTransport, settings: BuilderSettings) -> Builder:
    return Builder(settings=settings, transport=transport)
