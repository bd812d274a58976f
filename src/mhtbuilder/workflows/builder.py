"""High level entry points: save a page, its text, a complete copy or an archive.

Typical use::

    builder = Builder()
    builder.save_page_archive("out/", url="http://example.com/")

Every entry point validates the destination before touching the network,
fetches the root resource (raising DownloadFailed when that is impossible)
and, where the output needs them, crawls the referenced resources.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Set, Union

from .builder_config import (
    ARCHIVE_EXTENSIONS,
    HTML_EXTENSIONS,
    MHT_CONTENT_TYPE,
    TEXT_EXTENSIONS,
    BuilderSettings,
)
from .errors import DownloadFailed, InvalidExtension, InvalidFileName
from .graph import ResourceGraph
from .mht_encoder import ArchiveEncoder
from .resource import DownloadState, ResourceNode, StorageMode, is_directory_path
from .web_fetch import FetchConfig, HttpTransport, Transport

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def validate_filename(path: PathLike, allowed_extensions: Sequence[str]) -> bool:
    """Check ``path`` against ``allowed_extensions``.

    Returns True when ``path`` names a folder (the file name will be derived
    later), False for an acceptable file name. Raises InvalidFileName when
    there is no extension and InvalidExtension when it is not allowed.
    """

    raw = str(path)
    if is_directory_path(raw):
        return True
    ext = os.path.splitext(raw)[1]
    if not ext:
        raise InvalidFileName(raw, allowed_extensions)
    if ext.lower() not in {allowed.lower() for allowed in allowed_extensions}:
        raise InvalidExtension(raw, allowed_extensions)
    return False


class Builder:
    """Turns a root URL into a single page, plain text, an offline copy or an MHT archive."""

    def __init__(
        self,
        settings: Optional[BuilderSettings] = None,
        transport: Optional[Transport] = None,
        fetch_config: Optional[FetchConfig] = None,
    ) -> None:
        self.settings = settings or BuilderSettings()
        if transport is None:
            config = fetch_config or FetchConfig.from_env()
            if self.settings.forced_encoding and not config.forced_encoding:
                config.forced_encoding = self.settings.forced_encoding
            transport = HttpTransport(config)
        self.transport = transport
        self.graph = ResourceGraph()
        self.root = ResourceNode(transport=self.transport, settings=self.settings)

    @property
    def mht_content_type(self) -> str:
        return MHT_CONTENT_TYPE

    @property
    def url(self) -> Optional[str]:
        return self.root.url

    @url.setter
    def url(self, value: str) -> None:
        self.graph.clear()
        self.root = ResourceNode(value, transport=self.transport, settings=self.settings)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _download_root(self, url: Optional[str]) -> ResourceNode:
        if url:
            self.url = url
        root = self.root
        if not root.url and root.state is DownloadState.NOT_FETCHED:
            raise DownloadFailed(None, None)
        root.storage = StorageMode.MEMORY
        root.appended = False
        root.fetch()
        if not root.is_fetched:
            raise DownloadFailed(root.url, root.error) from root.error
        return root

    def _root_urls(self) -> Set[Optional[str]]:
        return {self.root.url, self.root.original_url}

    def _crawl(self, storage: StorageMode) -> None:
        self.graph.crawl_references(
            self.root,
            storage,
            self.root.external_files_folder,
            self.settings.allow_recursion,
            root_urls=self._root_urls(),
            workers=max(1, self.settings.workers),
        )
        logger.info("crawl finished: %d resources", len(self.graph))

    def _encode(self, destination: Optional[PathLike] = None) -> str:
        encoder = ArchiveEncoder(strict_terminator=self.settings.strict_terminator)
        encoder.write_all(self.root, self.graph)
        return encoder.finalize(destination)

    def _remove_temporary_files(self) -> None:
        folders: Set[Path] = set()
        for node in self.graph.values():
            if node.storage is not StorageMode.DISK_TEMPORARY:
                continue
            node.download_path.unlink(missing_ok=True)
            folders.add(node.download_folder)
        # deepest folders first so emptied parents can go too
        for folder in sorted(folders, key=lambda p: len(p.parts), reverse=True):
            if folder.is_dir() and not any(folder.iterdir()):
                folder.rmdir()

    def _archive_to_disk(self, path: PathLike, storage: StorageMode) -> Path:
        root = self.root
        root.use_html_title_as_filename = True
        root.set_download_path(path)
        target = root.download_path.with_suffix(".mht")
        if storage is StorageMode.DISK_PERMANENT:
            root.save(root.download_path.with_suffix(".htm"))
        try:
            self._crawl(storage)
            self._encode(target)
            if storage is StorageMode.DISK_TEMPORARY:
                self._remove_temporary_files()
        finally:
            self.graph.clear()
        return target

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------

    def save_page(self, path: PathLike, url: Optional[str] = None) -> Path:
        """Save only the root HTML, references left absolute."""

        validate_filename(path, HTML_EXTENSIONS)
        root = self._download_root(url)
        root.use_html_title_as_filename = True
        root.set_download_path(path)
        return root.save()

    def save_page_text(self, path: PathLike, url: Optional[str] = None) -> Path:
        validate_filename(path, TEXT_EXTENSIONS)
        root = self._download_root(url)
        root.use_html_title_as_filename = True
        root.set_download_path(path)
        return root.save(root.download_path.with_suffix(".txt"), as_text=True)

    def save_page_complete(self, path: PathLike, url: Optional[str] = None) -> Path:
        """Save the root plus every referenced file, rewritten to local paths."""

        validate_filename(path, HTML_EXTENSIONS)
        root = self._download_root(url)
        root.use_html_title_as_filename = True
        root.set_download_path(path)
        self._crawl(StorageMode.DISK_PERMANENT)
        for node in self.graph.values():
            if node.is_fetched and (node.is_html or node.is_css):
                node.to_local(self.graph)
                node.save()
        if root.is_html or root.is_css:
            root.to_local(self.graph)
        return root.save()

    def get_page_archive(self, url: Optional[str] = None) -> str:
        """Build the archive in memory and return it."""

        self._download_root(url)
        try:
            self._crawl(StorageMode.MEMORY)
            return self._encode()
        finally:
            self.graph.clear()

    def create_archive_file(self, url: str, path: PathLike) -> Path:
        """Build the archive in memory and write it verbatim to ``path``."""

        text = self.get_page_archive(url)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(text.encode(self.root.encoding, errors="replace"))
        return target

    def save_page_archive(
        self,
        path: PathLike,
        storage: StorageMode = StorageMode.DISK_TEMPORARY,
        url: Optional[str] = None,
    ) -> Path:
        """Build the archive on disk and return the path of the ``.mht`` file.

        DISK_PERMANENT keeps the downloaded files and an ``.htm`` copy of the
        root next to the archive; DISK_TEMPORARY removes them afterwards.
        """

        validate_filename(path, ARCHIVE_EXTENSIONS)
        self._download_root(url)
        return self._archive_to_disk(path, storage)

    def convert_html_to_archive(
        self,
        html: str,
        path: PathLike,
        storage: StorageMode = StorageMode.DISK_TEMPORARY,
        base_url: Optional[str] = None,
    ) -> Path:
        """Archive an HTML string instead of a downloaded page."""

        validate_filename(path, ARCHIVE_EXTENSIONS)
        self.graph.clear()
        self.root = ResourceNode(transport=self.transport, settings=self.settings)
        self.root.load_html(html, base_url)
        return self._archive_to_disk(path, storage)


__all__ = ["Builder", "validate_filename"]
