"""A single fetched (or failed) resource and its placement on disk."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Union
from urllib.parse import urljoin

from .builder_config import (
    DEFAULT_ENCODING,
    EXTERNAL_FOLDER_SUFFIX,
    TITLE_MAX_LENGTH,
    BuilderSettings,
)
from .content_types import (
    extension_for_content_type,
    is_binary_content,
    is_css_content,
    is_html_content,
)
from .errors import NotHtmlOperation, TransportError
from .rewrite import (
    add_web_mark,
    extract_base_href,
    extract_references,
    find_title,
    strip_base_tag,
    strip_html_tag,
    to_absolute,
    to_local,
)
from .text_extract import charset_web_name, html_to_text
from .url_utils import (
    decompose_url,
    last_path_segment,
    make_valid_filename,
    resolve_url,
    stable_hash,
    url_query,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .graph import ResourceGraph
    from .web_fetch import Transport

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class DownloadState(Enum):
    NOT_FETCHED = "not_fetched"
    FETCHED = "fetched"
    FAILED = "failed"


class StorageMode(Enum):
    MEMORY = "memory"
    DISK_TEMPORARY = "temporary"
    DISK_PERMANENT = "permanent"

    @property
    def requires_disk(self) -> bool:
        return self is not StorageMode.MEMORY


def is_directory_path(path: PathLike) -> bool:
    """True when ``path`` names a folder rather than a file."""

    raw = str(path)
    separators = tuple({"/", os.sep, os.altsep or "/"})
    return raw.endswith(separators) or Path(raw).is_dir()


class ResourceNode:
    """One URL of a build: identity, payload, classification and storage target.

    A node is fetched at most once; a failed fetch is remembered and never
    retried. HTML and CSS payloads have their references made absolute as
    soon as they arrive.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        transport: "Transport",
        settings: Optional[BuilderSettings] = None,
        storage: StorageMode = StorageMode.MEMORY,
    ) -> None:
        self.transport = transport
        self.settings = settings or BuilderSettings()
        self.storage = storage
        self.appended = False
        self.use_html_title_as_filename = False
        self.original_url: Optional[str] = None
        self.resolved_url: Optional[str] = None
        self.url_root = ""
        self.url_folder = ""
        self._download_folder: Optional[Path] = None
        self._download_filename = ""
        self._download_extension = ""
        self._reset_payload()
        if url:
            self.url = url

    def __repr__(self) -> str:
        return f"ResourceNode(url={self.resolved_url!r}, state={self.state.value}, content_type={self.content_type!r})"

    # ------------------------------------------------------------------
    # identity
    # ------------------------------------------------------------------

    def _reset_payload(self) -> None:
        self.state = DownloadState.NOT_FETCHED
        self.error: Optional[BaseException] = None
        self.content_type = ""
        self.content_location = ""
        self.data: Optional[bytes] = None
        self.text_encoding: Optional[str] = None
        self._references: Optional[Dict[str, str]] = None

    @property
    def url(self) -> Optional[str]:
        return self.resolved_url

    @url.setter
    def url(self, value: str) -> None:
        self._apply_url(value, validate=True)
        self.original_url = value
        self._reset_payload()

    def _apply_url(self, value: str, *, validate: bool) -> None:
        self.resolved_url = resolve_url(value, validate=validate)
        self.url_root, self.url_folder = decompose_url(self.resolved_url)

    def spawn(self, url: str, storage: StorageMode) -> "ResourceNode":
        """Create a sibling node sharing this node's transport and settings."""

        return ResourceNode(url, transport=self.transport, settings=self.settings, storage=storage)

    # ------------------------------------------------------------------
    # classification
    # ------------------------------------------------------------------

    @property
    def is_fetched(self) -> bool:
        return self.state is DownloadState.FETCHED

    @property
    def is_binary(self) -> bool:
        return is_binary_content(self.content_type)

    @property
    def is_html(self) -> bool:
        return is_html_content(self.content_type)

    @property
    def is_css(self) -> bool:
        return is_css_content(self.content_type)

    @property
    def html_title(self) -> str:
        """First 50 characters of the ``<title>`` tag."""

        if self.state is DownloadState.NOT_FETCHED:
            self.fetch()
        if not self.is_html:
            raise NotHtmlOperation("reading the <title> tag", self.content_type)
        return find_title(self.text, TITLE_MAX_LENGTH)

    # ------------------------------------------------------------------
    # payload
    # ------------------------------------------------------------------

    @property
    def encoding(self) -> str:
        return self.text_encoding or DEFAULT_ENCODING

    @property
    def text(self) -> str:
        if self.state is DownloadState.NOT_FETCHED:
            self.fetch()
        if not self.is_fetched or not self.data:
            return ""
        if self.is_binary:
            return f"[{len(self.data)} bytes of binary data]"
        return self.data.decode(self.encoding, errors="replace")

    def _set_text(self, text: str) -> None:
        self.data = text.encode(self.encoding, errors="xmlcharrefreplace")
        self._references = None

    @property
    def references(self) -> Dict[str, str]:
        """Delimited reference -> absolute URL, for HTML and CSS payloads."""

        if self._references is None:
            if self.is_fetched and (self.is_html or self.is_css):
                self._references = extract_references(self.text)
            else:
                self._references = {}
        return self._references

    def fetch(self) -> None:
        if self.state is not DownloadState.NOT_FETCHED:
            return
        if not self.resolved_url:
            raise ValueError("ResourceNode.fetch() requires a URL")

        logger.info("downloading %s", self.resolved_url)
        try:
            result = self.transport.fetch(self.resolved_url)
        except TransportError as exc:
            self.state = DownloadState.FAILED
            self.error = exc
            logger.warning("download failed for %s: %s", self.resolved_url, exc)
            return

        # The server's resolution is authoritative, eg http://site/ -> http://site/default.htm
        if result.content_location:
            self.content_location = urljoin(self.resolved_url, result.content_location)
            self._apply_url(self.content_location, validate=False)

        self.content_type = result.content_type or ""
        self.data = result.body or b""
        if self.is_binary:
            self.text_encoding = None
        else:
            forced = charset_web_name(self.settings.forced_encoding)
            self.text_encoding = forced or result.encoding or DEFAULT_ENCODING
        self.state = DownloadState.FETCHED

        if self.is_html:
            self._set_text(self._process_html(self.text))
        elif self.is_css:
            self._set_text(to_absolute(self.text, self.url_root, self.url_folder))

        if self.storage.requires_disk:
            self.save()

    def load_html(self, html: str, base_url: Optional[str] = None) -> None:
        """Use ``html`` as this node's payload instead of fetching it."""

        if base_url:
            self.url = base_url
        else:
            self.original_url = None
            self.resolved_url = None
            self.url_root = self.url_folder = ""
            self._reset_payload()
        self.content_type = "text/html"
        self.text_encoding = charset_web_name(self.settings.forced_encoding) or "utf-8"
        self.state = DownloadState.FETCHED
        self._set_text(self._process_html(html))
        if self.storage.requires_disk:
            self.save()

    def _process_html(self, html: str) -> str:
        if self.settings.add_web_mark and self.resolved_url:
            html = add_web_mark(html, self.resolved_url)
        if self.settings.strip_scripts:
            html = strip_html_tag("script", html)
        if self.settings.strip_iframes:
            html = strip_html_tag("iframe", html)

        # a <base href> overrides the folder parsed from the URL
        base = extract_base_href(html)
        if base:
            self.url_folder = base[:-1] if base.endswith("/") else base
        html = strip_base_tag(html)
        return to_absolute(html, self.url_root, self.url_folder)

    # ------------------------------------------------------------------
    # placement
    # ------------------------------------------------------------------

    @property
    def download_folder(self) -> Path:
        if self._download_folder is None:
            self._download_folder = Path.cwd()
        return self._download_folder

    @download_folder.setter
    def download_folder(self, value: PathLike) -> None:
        self._download_folder = Path(value)

    @property
    def download_extension(self) -> str:
        if self._download_extension:
            return self._download_extension
        if self.is_fetched:
            self._download_extension = extension_for_content_type(self.content_type)
        return self._download_extension

    @download_extension.setter
    def download_extension(self, value: str) -> None:
        self._download_extension = value

    @property
    def download_filename(self) -> str:
        """Explicit name, else the page title, else a name derived from the URL."""

        if self._download_filename:
            return self._download_filename
        name = ""
        if self.use_html_title_as_filename and self.is_fetched and self.is_html:
            title = make_valid_filename(self.html_title)
            if title:
                name = title + ".htm"
        if not name:
            name = self._filename_from_url()
        if self.state is not DownloadState.NOT_FETCHED:
            self._download_filename = name
        return name

    @download_filename.setter
    def download_filename(self, value: str) -> None:
        self._download_filename = value

    def _filename_from_url(self) -> str:
        url = self.resolved_url or ""
        name = last_path_segment(url)
        if name:
            query = url_query(url)
            if query:
                # keep page?id=1 and page?id=2 apart
                name = f"{Path(name).stem}_{stable_hash(query)}{self.download_extension}"
        if not name and self.is_fetched and self.is_html:
            title = self.html_title
            if title:
                name = title + ".htm"
        if not name:
            name = stable_hash(url) + self.download_extension
        return make_valid_filename(name)

    @property
    def download_path(self) -> Path:
        name = self.download_filename
        if not Path(name).suffix:
            name += self.download_extension
        return self.download_folder / name

    def set_download_path(self, path: PathLike) -> None:
        if is_directory_path(path):
            self._download_folder = Path(path)
            self._download_filename = ""
        else:
            target = Path(path)
            self._download_folder = target.parent
            self._download_filename = target.name

    @property
    def external_files_folder(self) -> Path:
        """Folder holding the files this resource references."""

        return self.download_folder / (Path(self.download_filename).stem + EXTERNAL_FOLDER_SUFFIX)

    def relative_path_to(self, other: "ResourceNode") -> str:
        rel = os.path.relpath(other.download_path, start=self.download_folder)
        return rel.replace(os.sep, "/")

    # ------------------------------------------------------------------
    # output
    # ------------------------------------------------------------------

    def to_local(self, graph: "ResourceGraph") -> None:
        """Point references at the local copies of nodes held in ``graph``."""

        if not (self.is_html or self.is_css):
            raise NotHtmlOperation("converting references to local", self.content_type)
        refs = self.references
        if not refs:
            return

        def local_path(url: str) -> Optional[str]:
            node = graph.get(url)
            if node is None or not node.is_fetched:
                return None
            return self.relative_path_to(node)

        self._set_text(to_local(self.text, refs, local_path))

    def to_plain_text(self, remove_whitespace: bool = False) -> str:
        if self.is_html:
            return html_to_text(self.text, remove_whitespace=remove_whitespace)
        return self.text

    def save(self, path: Optional[PathLike] = None, as_text: bool = False) -> Path:
        target = Path(path) if path is not None else self.download_path
        if self.data is None:
            logger.debug("nothing to save for %s", self.resolved_url)
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        if self.is_binary:
            payload = self.data
        elif as_text:
            payload = self.to_plain_text().encode(self.encoding, errors="replace")
        else:
            payload = self.data
        target.write_bytes(payload)
        logger.info("saved %s -> %s", self.resolved_url or "<html>", target)
        return target


__all__ = [
    "DownloadState",
    "StorageMode",
    "ResourceNode",
    "is_directory_path",
]
