"""Builder defaults (boundary, encodings, extension tables, env knobs).

Centralizes static defaults so the crawler and encoder carry no embedded
magic strings. Callers can construct their own BuilderSettings to override
any of the runtime knobs; BuilderSettings.from_env() fills them from the
process environment (and a local .env file when present).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

# Archive format
MIME_BOUNDARY = "----=_NextPart_000_00"
MHT_CONTENT_TYPE = "message/rfc822"
MIME_VERSION = "1.0"
CRLF = "\r\n"
PREAMBLE = "This is a multi-part message in MIME format."
GENERATOR_NAME = "mhtbuilder"
GENERATOR_VERSION = "0.1.0"

# Encoder limits
QP_LINE_LENGTH = 73
BASE64_CHUNK_SIZE = 57

# Transport defaults
DEFAULT_USER_AGENT = "Mozilla/4.0 (compatible; MSIE 6.0; Windows NT 5.1; SV1)"
DEFAULT_ACCEPT_ENCODING = "gzip,deflate"
DEFAULT_ENCODING = "windows-1252"
DEFAULT_TIMEOUT = 60.0

# Naming
TITLE_MAX_LENGTH = 50
EXTERNAL_FOLDER_SUFFIX = "_files"
DEFAULT_EXTENSION = ".htm"
EXTENSION_BY_CONTENT_TYPE: Dict[str, str] = {
    "text/html": ".htm",
    "image/gif": ".gif",
    "image/jpeg": ".jpg",
    "text/javascript": ".js",
    "application/x-javascript": ".js",
    "image/x-png": ".png",
    "text/css": ".css",
    "text/plain": ".txt",
}

# Allowed destination extensions per entry point
HTML_EXTENSIONS: Tuple[str, ...] = (".htm", ".html")
TEXT_EXTENSIONS: Tuple[str, ...] = (".txt",)
ARCHIVE_EXTENSIONS: Tuple[str, ...] = (".mht",)


def _env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


def _env_str(name: str) -> Optional[str]:
    raw = (os.getenv(name) or "").strip()
    return raw or None


@dataclass
class BuilderSettings:
    """Runtime knobs shared by every node of one build."""

    add_web_mark: bool = True
    strip_scripts: bool = False
    strip_iframes: bool = False
    allow_recursion: bool = True
    forced_encoding: Optional[str] = None
    workers: int = 1
    strict_terminator: bool = False

    @classmethod
    def from_env(cls) -> "BuilderSettings":
        load_dotenv(override=False)
        return cls(
            add_web_mark=_env_bool("MHTBUILDER_ADD_WEB_MARK", "1"),
            strip_scripts=_env_bool("MHTBUILDER_STRIP_SCRIPTS", "0"),
            strip_iframes=_env_bool("MHTBUILDER_STRIP_IFRAMES", "0"),
            allow_recursion=_env_bool("MHTBUILDER_ALLOW_RECURSION", "1"),
            forced_encoding=_env_str("MHTBUILDER_FORCED_ENCODING"),
            workers=max(1, _env_int("MHTBUILDER_WORKERS", 1)),
            strict_terminator=_env_bool("MHTBUILDER_STRICT_TERMINATOR", "0"),
        )
