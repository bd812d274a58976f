"""URL canonicalization, decomposition and filename helpers."""

from __future__ import annotations

import hashlib
import re
from typing import List, Optional, Tuple
from urllib.parse import urldefrag, urlsplit, urlunsplit

from requests.utils import requote_uri

from .errors import InvalidUrl

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*$", re.IGNORECASE)
# -- http://mywebsite (https roots are recognized as well)
_ROOT_RE = re.compile(r"https?://[^/'\"]+", re.IGNORECASE)
_DEFAULT_PORTS = {"http": "80", "https": "443"}
_INVALID_FILENAME_RE = re.compile(r"[\\/:*?\"<>|]|^\s+|\s+$")
_WHITESPACE_RUN_RE = re.compile(r"\s+")
_LAST_SEGMENT_RE = re.compile(r"/(?P<name>[^/?]+)[^/]*$")


def _remove_dot_segments(path: str) -> str:
    output: List[str] = []
    for segment in path.split("/"):
        if segment == "..":
            if len(output) > 1:
                output.pop()
        elif segment == ".":
            continue
        else:
            output.append(segment)
    result = "/".join(output)
    if path.endswith(("/.", "/..")):
        result += "/"
    if not result.startswith("/"):
        result = "/" + result
    return result


def _canonical_netloc(scheme: str, netloc: str) -> str:
    userinfo, sep, hostport = netloc.rpartition("@")
    hostport = hostport.lower()
    default_port = _DEFAULT_PORTS.get(scheme)
    if default_port and hostport.endswith(":" + default_port):
        hostport = hostport[: -(len(default_port) + 1)]
    return f"{userinfo}{sep}{hostport}"


def resolve_url(raw: str, *, validate: bool = True) -> str:
    """Return the absolute canonical form of ``raw`` without any fragment.

    With ``validate=False`` the value is trusted as already canonical (for
    example a server-reported Content-Location) and only the fragment is
    removed.
    """

    url = (raw or "").strip()
    if validate:
        try:
            parts = urlsplit(url)
            parts.port  # noqa: B018 - raises ValueError on a malformed port
        except ValueError as exc:
            raise InvalidUrl(raw, str(exc)) from exc
        if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
            raise InvalidUrl(raw, "missing scheme")
        if not parts.netloc:
            raise InvalidUrl(raw, "missing host")
        scheme = parts.scheme.lower()
        url = urlunsplit(
            (
                scheme,
                _canonical_netloc(scheme, parts.netloc),
                _remove_dot_segments(parts.path or "/"),
                parts.query,
                parts.fragment,
            )
        )
        url = requote_uri(url)
    url, _fragment = urldefrag(url)
    return url


def url_root(url: str) -> str:
    match = _ROOT_RE.search(url or "")
    return match.group(0) if match else ""


def decompose_url(url: str) -> Tuple[str, str]:
    """Split ``url`` into (root, folder).

    root is scheme + host; folder is everything before the last slash when
    that slash sits past the scheme separator, otherwise the root itself.
    """

    root = url_root(url)
    idx = (url or "").rfind("/")
    if idx > 7:
        folder = url[:idx]
    else:
        folder = root
    return root, folder


def last_path_segment(url: str) -> str:
    match = _LAST_SEGMENT_RE.search(url or "")
    return match.group("name") if match else ""


def url_query(url: str) -> str:
    try:
        return urlsplit(url).query
    except ValueError:
        return ""


def stable_hash(value: str) -> str:
    """Short deterministic hash used to disambiguate derived filenames."""

    return hashlib.sha256((value or "").encode("utf-8")).hexdigest()[:10]


def make_valid_filename(name: str) -> str:
    """Strip unsafe filesystem characters and tidy whitespace."""

    cleaned = _INVALID_FILENAME_RE.sub("", name or "")
    return _WHITESPACE_RUN_RE.sub(" ", cleaned).strip()


def is_absolute_http(url: Optional[str]) -> bool:
    return bool(url) and bool(re.match(r"^https?://\w+", url, re.IGNORECASE))


def sanity_check() -> None:
    assert decompose_url("http://example.com/a/b.htm") == ("http://example.com", "http://example.com/a")
    assert decompose_url("http://example.com/") == ("http://example.com", "http://example.com")
    assert make_valid_filename('  a:b  "c" ') == "ab c"
    assert last_path_segment("http://example.com/dir/page?id=1") == "page"


sanity_check()

__all__ = [
    "resolve_url",
    "url_root",
    "decompose_url",
    "last_path_segment",
    "url_query",
    "stable_hash",
    "make_valid_filename",
    "is_absolute_http",
    "sanity_check",
]
