"""High-level exports for the mhtbuilder workflows."""

from .builder import Builder, validate_filename
from .builder_config import BuilderSettings
from .errors import (
    BuilderError,
    DownloadFailed,
    InvalidExtension,
    InvalidFileName,
    InvalidUrl,
    NotHtmlOperation,
    TransportError,
)
from .graph import ResourceGraph
from .mht_encoder import ArchiveEncoder, quoted_printable_encode
from .resource import DownloadState, ResourceNode, StorageMode
from .web_fetch import FetchConfig, FetchResult, HttpTransport, Transport

__all__ = [
    "Builder",
    "BuilderSettings",
    "validate_filename",
    "BuilderError",
    "DownloadFailed",
    "InvalidExtension",
    "InvalidFileName",
    "InvalidUrl",
    "NotHtmlOperation",
    "TransportError",
    "ResourceGraph",
    "ArchiveEncoder",
    "quoted_printable_encode",
    "DownloadState",
    "ResourceNode",
    "StorageMode",
    "FetchConfig",
    "FetchResult",
    "HttpTransport",
    "Transport",
]
