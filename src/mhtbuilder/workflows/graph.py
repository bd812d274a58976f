from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from .errors import InvalidUrl
from .resource import ResourceNode, StorageMode
from .url_utils import resolve_url, stable_hash

logger = logging.getLogger(__name__)


def _canonical(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        return resolve_url(url)
    except InvalidUrl:
        return None


class ResourceGraph:
    """Deduplicated set of resources discovered from a root page.

    Keys are the URLs exactly as they were referenced, before resolution.
    Spellings that resolve to the same URL share one node, so a resource is
    fetched at most once per build no matter how often or how it appears.
    Iteration is in key order.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, ResourceNode] = {}
        self._resolved: Dict[str, ResourceNode] = {}
        self._claimed: Dict[Path, ResourceNode] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __getitem__(self, key: str) -> ResourceNode:
        return self._nodes[key]

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self.values())

    def get(self, key: str) -> Optional[ResourceNode]:
        return self._nodes.get(key)

    def get_resolved(self, url: str) -> Optional[ResourceNode]:
        """Node fetched for the resolved form of ``url``, under any key."""

        resolved = _canonical(url)
        return self._resolved.get(resolved) if resolved else None

    def keys(self) -> List[str]:
        return sorted(self._nodes)

    def values(self) -> List[ResourceNode]:
        """Distinct nodes, each at the position of its first key."""

        seen: Set[int] = set()
        nodes = []
        for key in sorted(self._nodes):
            node = self._nodes[key]
            if id(node) not in seen:
                seen.add(id(node))
                nodes.append(node)
        return nodes

    def items(self) -> List[Tuple[str, ResourceNode]]:
        return [(key, self._nodes[key]) for key in sorted(self._nodes)]

    def add(self, key: str, node: ResourceNode) -> ResourceNode:
        """Insert ``node`` unless ``key`` is present; return whichever node is kept."""

        resolved = _canonical(key)
        with self._lock:
            existing = self._nodes.get(key)
            if existing is not None:
                return existing
            self._nodes[key] = node
            if resolved:
                self._resolved.setdefault(resolved, node)
            return node

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()
            self._resolved.clear()
            self._claimed.clear()

    def crawl_references(
        self,
        node: ResourceNode,
        storage: StorageMode,
        target_folder: Union[str, Path],
        recursive: bool,
        *,
        root_urls: Iterable[Optional[str]] = (),
        workers: int = 1,
    ) -> None:
        """Fetch every resource ``node`` references and add it to the graph.

        HTML and CSS children are crawled in turn when ``recursive`` is set,
        their own references landing in the child's external files folder.
        Failed fetches stay in the graph so they are not retried. References
        that resolve to one of ``root_urls`` are never fetched.
        """

        skip = {url for url in root_urls if url}
        skip_resolved = {_canonical(url) for url in skip} - {None}
        pending: List[str] = []
        for url in dict.fromkeys(node.references.values()):
            if url in skip or url in self or _canonical(url) in skip_resolved:
                continue
            pending.append(url)
        if not pending:
            return
        folder = Path(target_folder)
        if storage.requires_disk:
            folder.mkdir(parents=True, exist_ok=True)

        if workers <= 1:
            for url in pending:
                # an earlier sibling's subtree may already have picked it up
                if url in self or self._alias(url):
                    continue
                child = self._fetch_new(node, url, storage, folder)
                if child is not None and self.add(url, child) is child:
                    self._descend(child, storage, recursive, skip, workers)
            return

        unique: Dict[str, str] = {}
        for url in pending:
            if not self._alias(url):
                unique.setdefault(_canonical(url) or url, url)
        fetched: List[Tuple[str, ResourceNode]] = []
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self._fetch_new, node, url, storage, folder): url for url in unique.values()}
            for future in as_completed(futures):
                url = futures[future]
                child = future.result()
                if child is None:
                    continue
                if self.add(url, child) is child:
                    fetched.append((url, child))
                else:
                    logger.debug("discarding duplicate fetch of %s", url)
        for url in pending:
            if url not in self:
                self._alias(url)
        for _url, child in sorted(fetched, key=lambda pair: pair[0]):
            self._descend(child, storage, recursive, skip, workers)

    def _alias(self, url: str) -> bool:
        """Key ``url`` to an already fetched node with the same resolved URL."""

        existing = self.get_resolved(url)
        if existing is None:
            return False
        logger.debug("%s resolves to an already known resource", url)
        self.add(url, existing)
        return True

    def _descend(
        self,
        child: ResourceNode,
        storage: StorageMode,
        recursive: bool,
        skip: Iterable[str],
        workers: int,
    ) -> None:
        if recursive and child.is_fetched and (child.is_html or child.is_css):
            self.crawl_references(
                child,
                storage,
                child.external_files_folder,
                recursive,
                root_urls=skip,
                workers=workers,
            )

    def _claim_path(self, node: ResourceNode) -> Path:
        """Reserve ``node``'s download path, renaming it when another node holds it."""

        with self._lock:
            path = node.download_path
            owner = self._claimed.get(path)
            if owner is not None and owner is not node:
                node.download_filename = f"{path.stem}_{stable_hash(node.url or '')}{path.suffix}"
                path = node.download_path
            self._claimed[path] = node
            return path

    def _fetch_new(self, parent: ResourceNode, url: str, storage: StorageMode, folder: Path) -> Optional[ResourceNode]:
        try:
            child = parent.spawn(url, StorageMode.MEMORY)
        except InvalidUrl as exc:
            logger.warning("skipping malformed reference %s: %s", url, exc)
            return None
        child.fetch()
        # persisted after the fetch so the file name is final before it is claimed
        child.storage = storage
        if storage.requires_disk:
            child.download_folder = folder
            if child.is_fetched:
                child.save(self._claim_path(child))
        return child


__all__ = ["ResourceGraph"]
