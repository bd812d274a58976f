"""Charset detection and plain-text extraction helpers.

Deterministic and transport-agnostic: the HTTP transport uses
detect_encoding() to pick a decoder, the text export uses html_to_text().
"""

from __future__ import annotations

import codecs
import re
import unicodedata
from typing import Optional

import ftfy
from bs4 import BeautifulSoup, Comment
from charset_normalizer import from_bytes

__all__ = [
    "charset_web_name",
    "detect_encoding",
    "minimal_text_fix",
    "html_to_text",
]

_HEADER_CHARSET_RE = re.compile(r"charset=([^;\"'/>\s]+)", re.IGNORECASE)
_META_CHARSET_RE = re.compile(rb"<meta[^>]+content-type[^>]+charset=([^;\"'/>\s]+)", re.IGNORECASE)
_META_HTML5_CHARSET_RE = re.compile(rb"<meta\s+charset\s*=\s*[\"']?([^;\"'/>\s]+)", re.IGNORECASE)

_ZERO_WIDTH = {0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF}
_REMOVE = {0x00, 0x0B, 0x0C}
_TRANSLATE = {cp: None for cp in _ZERO_WIDTH | _REMOVE}

_WEB_NAMES = {
    "ascii": "us-ascii",
    "utf-8": "utf-8",
    "utf-16": "utf-16",
}


def charset_web_name(name: Optional[str]) -> Optional[str]:
    """Return the IANA-style name for a Python codec, or None if unknown."""

    if not name:
        return None
    try:
        codec = codecs.lookup(name.strip().strip("\"'")).name
    except LookupError:
        return None
    if codec in _WEB_NAMES:
        return _WEB_NAMES[codec]
    if codec.startswith("cp125"):
        return "windows-" + codec[2:]
    if codec.startswith("iso8859-"):
        return "iso-8859-" + codec[len("iso8859-"):]
    return codec


def detect_encoding(
    content_type: Optional[str],
    body: bytes,
    default: str,
    *,
    sniff: bool = True,
) -> str:
    """Pick the text encoding for ``body``.

    Order: HTTP ``charset=``, an HTML meta declaration, charset-normalizer's
    best guess (when ``sniff``), then ``default``.
    """

    match = _HEADER_CHARSET_RE.search(content_type or "")
    if match:
        name = charset_web_name(match.group(1))
        if name:
            return name
    head = body[:65536] if body else b""
    for pattern in (_META_CHARSET_RE, _META_HTML5_CHARSET_RE):
        match = pattern.search(head)
        if match:
            name = charset_web_name(match.group(1).decode("ascii", "ignore"))
            if name:
                return name
    if sniff and body:
        best = from_bytes(body).best()
        if best is not None:
            name = charset_web_name(best.encoding)
            if name:
                return name
    return charset_web_name(default) or default


def minimal_text_fix(text: str) -> str:
    """Fix mojibake and strip zero-width/control noise without collapsing structure."""

    if not text:
        return ""
    normalized = unicodedata.normalize("NFC", text)
    fixed = ftfy.fix_text(normalized, normalization="NFC")
    return fixed.translate(_TRANSLATE)


def html_to_text(html: str, *, remove_whitespace: bool = False) -> str:
    """Strip scripts, styles and tags, decoding entities along the way."""

    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    text = minimal_text_fix(soup.get_text(" "))
    if remove_whitespace:
        text = re.sub(r"[\n\r\f\t]", " ", text)
        text = re.sub(r" {2,}", " ", text)
    return text
