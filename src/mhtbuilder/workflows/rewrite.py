"""Pattern-based reference rewriting for HTML and CSS.

Relative references are made absolute right after a resource is fetched so
that every later step can work with fully qualified URLs. Once the crawl has
settled, the same references are pointed at local files for the
save-complete flavour of the output.

Everything here is regex driven. The markup is treated as text and the
original quoting of each reference is kept intact.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Optional, Pattern

from .url_utils import is_absolute_http

logger = logging.getLogger(__name__)

# References that must never be prefixed with a root or folder.
_HTML_EXCLUDED = r"(?!\s*\+|#|https?:|ftp:|mailto:|javascript:|data:|//)"
_CSS_EXCLUDED = r"(?!\s*(?:https?:|data:|about:|#|//))"

# -- href="/anything" ; src='/anything' ; background=/anything
_ATTR_ROOT_RE = re.compile(
    r"(?P<attrib>\s(?:href|src|background))(?P<eq>\s*=\s*)(?P<delim1>[\"'\\]{0,2})"
    + _HTML_EXCLUDED
    + r"/(?P<url>[^\"'>\\\s][^\"'>\\]*)(?P<delim2>[\"'\\]{0,2})",
    re.IGNORECASE,
)
# -- href="anything"
_ATTR_FOLDER_RE = re.compile(
    r"(?P<attrib>\s(?:href|src|background))(?P<eq>\s*=\s*)(?P<delim1>[\"'\\]{0,2})"
    + _HTML_EXCLUDED
    + r"(?P<url>[^\"'>\\\s/][^\"'>\\]*)(?P<delim2>[\"'\\]{0,2})",
    re.IGNORECASE,
)
# -- @import url(/anything) ; background-image: url("/anything")
_CSS_ROOT_RE = re.compile(
    r"(?P<attrib>@import\s|\S+-image:|background:)(?P<sp>\s*)(?P<fn>url)?(?P<open>[\"'(]{1,2})"
    + _CSS_EXCLUDED
    + r"(?P<pad>\s*)/(?P<url>[^\"')\s][^\"')]*)(?P<close>[\"')]{1,2})",
    re.IGNORECASE,
)
# -- @import "anything" ; background: url(anything)
_CSS_FOLDER_RE = re.compile(
    r"(?P<attrib>@import\s|\S+-image:|background:)(?P<sp>\s*)(?P<fn>url)?(?P<open>[\"'(]{1,2})"
    + _CSS_EXCLUDED
    + r"(?P<pad>\s*)(?P<url>[^\"')\s/][^\"')]*)(?P<close>[\"')]{1,2})",
    re.IGNORECASE,
)

# Reference discovery. Keys keep their delimiters, values do not.
_SRC_RE = re.compile(
    r"(?:\ssrc|\sbackground)\s*=\s*"
    r"(?:(?P<k1>'(?P<v1>[^']+)')|(?P<k2>\"(?P<v2>[^\"]+)\")|(?P<k3>(?P<v3>[^\s>]+)))",
    re.IGNORECASE,
)
_CSS_REF_RE = re.compile(
    r"(?:@import\s|\S+-image:|background:)\s*?(?:url)*\s*?"
    r"(?P<k1>[\"'(]{1,2}(?P<v1>[^\"')]+)[\"')]{1,2})",
    re.IGNORECASE,
)
_LINK_RE = re.compile(
    r"<link[^>]+?href\s*=\s*"
    r"(?:(?P<k1>'(?P<v1>[^'>]+)')|(?P<k2>\"(?P<v2>[^\">]+)\")|(?P<k3>(?P<v3>[^\s'\">]+)))",
    re.IGNORECASE,
)
_FRAME_RE = re.compile(
    r"<i*frame[^>]+?src\s*=\s*(?P<k1>['\"]?(?P<v1>[^'\"\\>]+)['\"]?)",
    re.IGNORECASE,
)
_REFERENCE_PATTERNS = (_SRC_RE, _CSS_REF_RE, _LINK_RE, _FRAME_RE)

_BASE_HREF_RE = re.compile(r"<base\b[^>]+?href=['\"]?(?P<url>[^'\">]+)['\"]?", re.IGNORECASE)
_BASE_TAG_RE = re.compile(r"<base\b[^>]*?>", re.IGNORECASE)
_TITLE_RE = re.compile(r"<title[^>]*?>(?P<text>[^<]+)</title>", re.IGNORECASE)

_OPEN_DELIMS = "\"'("
_CLOSE_DELIMS = "\"')"


def _attr_replacer(prefix: str) -> Callable[[re.Match], str]:
    def repl(m: re.Match) -> str:
        return f"{m.group('attrib')}{m.group('eq')}{m.group('delim1')}{prefix}/{m.group('url')}{m.group('delim2')}"

    return repl


def _css_replacer(prefix: str) -> Callable[[re.Match], str]:
    def repl(m: re.Match) -> str:
        return (
            f"{m.group('attrib')}{m.group('sp')}{m.group('fn') or ''}{m.group('open')}"
            f"{m.group('pad')}{prefix}/{m.group('url')}{m.group('close')}"
        )

    return repl


def to_absolute(content: str, root: str, folder: str) -> str:
    """Rewrite root-relative and path-relative references to absolute URLs.

    Root-relative references (``/x``) get ``root`` prepended, path-relative
    ones (``x``) get ``folder``. An empty root or folder leaves the matching
    references untouched.
    """

    if not content:
        return content
    if root:
        content = _ATTR_ROOT_RE.sub(_attr_replacer(root), content)
    if folder:
        content = _ATTR_FOLDER_RE.sub(_attr_replacer(folder), content)
    if root:
        content = _CSS_ROOT_RE.sub(_css_replacer(root), content)
    if folder:
        content = _CSS_FOLDER_RE.sub(_css_replacer(folder), content)
    return content


def _key_value(match: re.Match) -> tuple:
    groups = match.groupdict()
    for idx in (1, 2, 3):
        key = groups.get(f"k{idx}")
        if key is not None:
            return key, groups.get(f"v{idx}") or ""
    return "", ""


def _collect(content: str, pattern: Pattern[str], refs: Dict[str, str]) -> None:
    for match in pattern.finditer(content):
        key, value = _key_value(match)
        if not key or key in refs:
            continue
        if not is_absolute_http(value):
            logger.debug("reference discarded; not a fully qualified http(s) URL: %s", value)
            continue
        refs[key] = value


def extract_references(content: str) -> Dict[str, str]:
    """Map each delimited reference found in ``content`` to its bare URL.

    Keys include the original quotes or parens so later replacement stays as
    specific as the original markup; values are the stripped URLs. Only
    absolute http(s) URLs are kept and the first occurrence of a key wins.
    """

    refs: Dict[str, str] = {}
    if not content:
        return refs
    for pattern in _REFERENCE_PATTERNS:
        _collect(content, pattern, refs)
    return refs


def rewrap_reference(delimited: str, new_value: str) -> str:
    """Replace the value inside ``delimited`` keeping its surrounding delimiters."""

    start = len(delimited) - len(delimited.lstrip(_OPEN_DELIMS))
    end = len(delimited) - len(delimited.rstrip(_CLOSE_DELIMS))
    tail = delimited[len(delimited) - end:] if end else ""
    return f"{delimited[:start]}{new_value}{tail}"


def to_local(
    content: str,
    references: Dict[str, str],
    local_path: Callable[[str], Optional[str]],
) -> str:
    """Point every known reference at its local copy.

    ``local_path`` maps a bare URL to the path to write in its place, or None
    when the URL has no local counterpart. All references are matched in one
    pass, longest first, so an undelimited key never rewrites the head of a
    longer URL.
    """

    if not content or not references:
        return content
    replacements: Dict[str, str] = {}
    for delimited, url in references.items():
        path = local_path(url)
        if path:
            replacements[delimited] = rewrap_reference(delimited, path)
    if not replacements:
        return content
    pattern = re.compile("|".join(re.escape(key) for key in sorted(references, key=len, reverse=True)))
    return pattern.sub(lambda m: replacements.get(m.group(0), m.group(0)), content)


def extract_base_href(html: str) -> Optional[str]:
    match = _BASE_HREF_RE.search(html or "")
    if not match:
        return None
    return match.group("url").strip() or None


def strip_base_tag(html: str) -> str:
    return _BASE_TAG_RE.sub("", html)


def strip_html_tag(tag: str, html: str) -> str:
    """Remove every ``<tag ...>...</tag>`` block."""

    pattern = re.compile(rf"<{re.escape(tag)}[^>]*?>[\s\S]*?</{re.escape(tag)}>", re.IGNORECASE)
    return pattern.sub("", html)


def add_web_mark(html: str, url: str) -> str:
    """Prepend the "saved from url" comment browsers use to zone local copies."""

    return f"<!-- saved from url=({len(url):04d}){url} --> \r\n{html}"


def find_title(html: str, max_length: int) -> str:
    match = _TITLE_RE.search(html or "")
    if not match:
        return ""
    return match.group("text")[:max_length]


__all__ = [
    "to_absolute",
    "extract_references",
    "rewrap_reference",
    "to_local",
    "extract_base_href",
    "strip_base_tag",
    "strip_html_tag",
    "add_web_mark",
    "find_title",
]
