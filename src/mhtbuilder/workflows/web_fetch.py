from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import format_datetime
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote, urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..core.keys import (
    K_ACCEPT_ENCODING,
    K_CONTENT_LOCATION,
    K_CONTENT_TYPE,
    K_IF_MODIFIED_SINCE,
    K_USER_AGENT,
)
from .builder_config import (
    DEFAULT_ACCEPT_ENCODING,
    DEFAULT_ENCODING,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    _env_bool,
    _env_float,
    _env_int,
    _env_str,
)
from .content_types import is_binary_content
from .errors import TransportError
from .text_extract import charset_web_name, detect_encoding

logger = logging.getLogger(__name__)


@dataclass
class FetchConfig:
    """Configuration parameters for the HTTP transport."""

    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    accept_encoding: str = DEFAULT_ACCEPT_ENCODING
    proxy_url: Optional[str] = None
    proxy_user: Optional[str] = None
    proxy_password: Optional[str] = None
    auth_user: Optional[str] = None
    auth_password: Optional[str] = None
    keep_cookies: bool = False
    default_encoding: str = DEFAULT_ENCODING
    forced_encoding: Optional[str] = None
    sniff_encoding: bool = True
    max_retries: int = 2

    @classmethod
    def from_env(cls) -> "FetchConfig":
        return cls(
            timeout=_env_float("MHTBUILDER_TIMEOUT", DEFAULT_TIMEOUT),
            user_agent=_env_str("MHTBUILDER_USER_AGENT") or DEFAULT_USER_AGENT,
            proxy_url=_env_str("MHTBUILDER_PROXY_URL"),
            proxy_user=_env_str("MHTBUILDER_PROXY_USER"),
            proxy_password=_env_str("MHTBUILDER_PROXY_PASSWORD"),
            auth_user=_env_str("MHTBUILDER_AUTH_USER"),
            auth_password=_env_str("MHTBUILDER_AUTH_PASSWORD"),
            keep_cookies=_env_bool("MHTBUILDER_KEEP_COOKIES", "0"),
            default_encoding=_env_str("MHTBUILDER_DEFAULT_ENCODING") or DEFAULT_ENCODING,
            max_retries=max(0, _env_int("MHTBUILDER_MAX_RETRIES", 2)),
        )


@dataclass
class FetchResult:
    """Container for a single successful fetch."""

    url: str
    status: int
    content_type: str
    body: bytes = field(default=b"", repr=False)
    content_location: Optional[str] = None
    encoding: Optional[str] = None
    is_binary: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "content_type": self.content_type,
            "content_location": self.content_location,
            "encoding": self.encoding,
            "is_binary": self.is_binary,
            "length": len(self.body),
        }


class Transport(Protocol):
    """Anything able to turn a URL into bytes plus response metadata."""

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResult:
        ...


def _proxy_with_credentials(proxy_url: str, user: Optional[str], password: Optional[str]) -> str:
    if not user:
        return proxy_url
    parts = urlsplit(proxy_url)
    creds = quote(user, safe="")
    if password:
        creds = f"{creds}:{quote(password, safe='')}"
    return urlunsplit((parts.scheme, f"{creds}@{parts.netloc}", parts.path, parts.query, parts.fragment))


def build_session(config: FetchConfig) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=config.max_retries,
        connect=config.max_retries,
        read=config.max_retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update(
        {
            K_USER_AGENT: config.user_agent,
            K_ACCEPT_ENCODING: config.accept_encoding,
        }
    )
    if config.auth_user:
        session.auth = (config.auth_user, config.auth_password or "")
    if config.proxy_url:
        proxy = _proxy_with_credentials(config.proxy_url, config.proxy_user, config.proxy_password)
        session.proxies.update({"http": proxy, "https": proxy})
    return session


class HttpTransport:
    """Blocking HTTP transport built on requests.

    Decompression is handled by requests; charset detection, 304 handling and
    Content-Location reporting happen here so the crawler only sees bytes and
    metadata.
    """

    def __init__(self, config: Optional[FetchConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or FetchConfig()
        self.session = session or build_session(self.config)

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResult:
        headers: Dict[str, str] = {}
        if if_modified_since is not None:
            headers[K_IF_MODIFIED_SINCE] = format_datetime(if_modified_since, usegmt=True)
        try:
            resp = self.session.get(url, headers=headers or None, timeout=self.config.timeout)
        except requests.RequestException as exc:
            raise TransportError(url, f"request failed: {exc}") from exc
        finally:
            if not self.config.keep_cookies:
                self.session.cookies.clear()

        status = resp.status_code
        if status == 304:
            raise TransportError(url, "not modified", status=status, not_modified=True)
        if not 200 <= status < 300:
            raise TransportError(url, f"HTTP {status} {resp.reason or ''}".strip(), status=status)

        body = resp.content or b""
        content_type = resp.headers.get(K_CONTENT_TYPE, "") or ""
        content_location = resp.headers.get(K_CONTENT_LOCATION) or None
        binary = is_binary_content(content_type)
        encoding: Optional[str] = None
        if not binary:
            forced = charset_web_name(self.config.forced_encoding)
            encoding = forced or detect_encoding(
                content_type,
                body,
                self.config.default_encoding,
                sniff=self.config.sniff_encoding,
            )
        logger.debug("fetched %s (%d bytes, %s)", url, len(body), content_type or "no content-type")
        return FetchResult(
            url=url,
            status=status,
            content_type=content_type,
            body=body,
            content_location=content_location,
            encoding=encoding,
            is_binary=binary,
        )

    def close(self) -> None:
        self.session.close()


__all__ = [
    "FetchConfig",
    "FetchResult",
    "Transport",
    "HttpTransport",
    "build_session",
]
