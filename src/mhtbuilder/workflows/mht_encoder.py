"""MIME multipart/related (RFC 2557, "MHT") serialization.

The archive is accumulated as a list of CRLF terminated lines and turned into
one string by ``finalize()``. Text parts are quoted-printable, binary parts
base64 in 57 byte chunks (76 characters per encoded line).
"""

from __future__ import annotations

import base64
import getpass
import logging
import platform
from datetime import datetime
from email.utils import format_datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional, Union

from ..core.keys import (
    K_BASE64,
    K_CONTENT_LOCATION,
    K_CONTENT_TRANSFER_ENCODING,
    K_CONTENT_TYPE,
    K_DATE,
    K_FROM,
    K_MIME_VERSION,
    K_QUOTED_PRINTABLE,
    K_SUBJECT,
    K_X_MIMEOLE,
)
from .builder_config import (
    BASE64_CHUNK_SIZE,
    CRLF,
    DEFAULT_ENCODING,
    GENERATOR_NAME,
    GENERATOR_VERSION,
    MIME_BOUNDARY,
    MIME_VERSION,
    PREAMBLE,
    QP_LINE_LENGTH,
)
from .content_types import media_type
from .text_extract import charset_web_name

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .graph import ResourceGraph
    from .resource import ResourceNode

logger = logging.getLogger(__name__)


class EncoderState(Enum):
    EMPTY = "empty"
    HEADER_WRITTEN = "header_written"
    PART_WRITTEN = "part_written"
    FINALIZED = "finalized"


def quoted_printable_encode(
    text: str,
    encoding: Optional[str] = None,
    *,
    line_length: int = QP_LINE_LENGTH,
    newline: str = CRLF,
) -> str:
    """Quoted-printable encode ``text`` with soft breaks near ``line_length``.

    "=" and characters from 127 to 255 are escaped by code point; anything
    above 255 is escaped byte by byte in ``encoding``. Line breaks in the
    content pass through. Soft breaks go right after the last space of the
    line when there is one. A trailing space is escaped as =20.
    """

    if not text:
        return ""

    out: List[str] = []
    line: List[str] = []
    length = 0
    last_space = 0
    ends_with_space = False

    for ch in text:
        code = ord(ch)
        if code == 61 or code > 126:
            if code <= 255:
                tokens = ["=%02X" % code]
            else:
                tokens = ["=%02X" % b for b in ch.encode(encoding or "utf-8", errors="replace")]
            line.extend(tokens)
            length += 3 * len(tokens)
            ends_with_space = False
        else:
            line.append(ch)
            ends_with_space = ch == " "
            if ch == "\n":
                out.append("".join(line))
                line = []
                length = 0
                last_space = 0
                continue
            length += 1
            if ch == " ":
                last_space = len(line)

        if length >= line_length:
            if last_space:
                head, line = line[:last_space], line[last_space:]
                out.append("".join(head) + "=" + newline)
                length = sum(len(token) for token in line)
            else:
                out.append("".join(line) + "=" + newline)
                line = []
                length = 0
            last_space = 0

    out.append("".join(line))
    encoded = "".join(out)
    if ends_with_space and encoded.endswith(" "):
        encoded = encoded[:-1] + "=20"
    return encoded


def base64_lines(data: bytes, chunk_size: int = BASE64_CHUNK_SIZE) -> Iterator[str]:
    if not data:
        yield ""
        return
    for offset in range(0, len(data), chunk_size):
        yield base64.b64encode(data[offset : offset + chunk_size]).decode("ascii")


def base64_file_lines(path: Union[str, Path], chunk_size: int = BASE64_CHUNK_SIZE) -> Iterator[str]:
    """Stream a file as base64 lines without loading it whole."""

    with open(path, "rb") as fh:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            yield base64.b64encode(chunk).decode("ascii")


def _saved_by() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"<Saved by {user} on {platform.node() or 'localhost'}>"


class ArchiveEncoder:
    """Accumulates an MHT archive: header, then parts, then the terminator.

    Nodes are marked ``appended`` once written so no resource appears twice.
    """

    def __init__(
        self,
        *,
        boundary: str = MIME_BOUNDARY,
        strict_terminator: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
        saved_by: Optional[str] = None,
    ) -> None:
        self.boundary = boundary
        self.strict_terminator = strict_terminator
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._saved_by = saved_by
        self._lines: List[str] = []
        self._encoding = DEFAULT_ENCODING
        self.state = EncoderState.EMPTY

    def _line(self, value: str = "") -> None:
        self._lines.append(value + CRLF)

    def _boundary_line(self) -> None:
        self._line()
        self._line("--" + self.boundary)

    def write_header(self, root: "ResourceNode") -> None:
        self._lines = []
        self._encoding = root.encoding
        # header values must stay on one line
        subject = " ".join(root.html_title.split()) if root.is_fetched and root.is_html else ""
        self._line(f"{K_FROM}: {self._saved_by or _saved_by()}")
        self._line(f"{K_SUBJECT}: {subject}")
        self._line(f"{K_DATE}: {format_datetime(self._clock())}")
        self._line(f"{K_MIME_VERSION}: {MIME_VERSION}")
        self._line(f"{K_CONTENT_TYPE}: multipart/related;")
        self._line('\ttype="text/html";')
        self._line(f'\tboundary="{self.boundary}"')
        self._line(f"{K_X_MIMEOLE}: Produced by {GENERATOR_NAME} {GENERATOR_VERSION}")
        self._line()
        self._line(PREAMBLE)
        self.state = EncoderState.HEADER_WRITTEN

    def write_part(self, node: "ResourceNode") -> None:
        if self.state not in (EncoderState.HEADER_WRITTEN, EncoderState.PART_WRITTEN):
            raise RuntimeError("write_header() must be called before write_part()")
        if node.appended or not node.is_fetched:
            return

        self._boundary_line()
        if node.is_binary:
            self._write_binary(node)
        else:
            self._write_text(node)
        node.appended = True
        self.state = EncoderState.PART_WRITTEN

    def _write_text(self, node: "ResourceNode") -> None:
        charset = charset_web_name(node.encoding) or node.encoding
        self._line(f"{K_CONTENT_TYPE}: {media_type(node.content_type) or 'text/plain'};")
        self._line(f'\tcharset="{charset}"')
        self._line(f"{K_CONTENT_TRANSFER_ENCODING}: {K_QUOTED_PRINTABLE}")
        self._line(f"{K_CONTENT_LOCATION}: {node.url or ''}")
        self._line()
        self._line(quoted_printable_encode(node.text, node.encoding))

    def _write_binary(self, node: "ResourceNode") -> None:
        self._line(f"{K_CONTENT_TYPE}: {node.content_type}")
        self._line(f"{K_CONTENT_TRANSFER_ENCODING}: {K_BASE64}")
        self._line(f"{K_CONTENT_LOCATION}: {node.url or ''}")
        self._line()
        path = node.download_path if node.storage.requires_disk else None
        if path is not None and path.is_file():
            lines = base64_file_lines(path)
        else:
            lines = base64_lines(node.data or b"")
        for encoded in lines:
            self._line(encoded)

    def write_all(self, root: "ResourceNode", graph: "ResourceGraph") -> None:
        """Header, root part, every graph node in key order, then the terminator."""

        self.write_header(root)
        self.write_part(root)
        for node in graph.values():
            self.write_part(node)
        self._line()
        self._line(f"--{self.boundary}--" if self.strict_terminator else f"--{self.boundary}")

    def finalize(self, destination: Optional[Union[str, Path]] = None) -> str:
        """Return the archive text, writing it to ``destination`` when given.

        A failed write is logged and does not prevent returning the text.
        """

        text = "".join(self._lines)
        self._lines = []
        self.state = EncoderState.FINALIZED
        if destination is not None:
            target = Path(destination)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(text.encode(self._encoding, errors="replace"))
                logger.info("archive written to %s (%d characters)", target, len(text))
            except (OSError, ValueError, LookupError) as exc:
                logger.error("unable to write archive %s: %s", target, exc)
        return text


__all__ = [
    "EncoderState",
    "ArchiveEncoder",
    "quoted_printable_encode",
    "base64_lines",
    "base64_file_lines",
]
