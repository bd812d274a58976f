"""Exception taxonomy raised by the builder and its collaborators."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class BuilderError(Exception):
    """Base class for every error raised by mhtbuilder."""


class InvalidUrl(BuilderError, ValueError):
    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"'{url}' does not appear to be a valid URL{detail}")


class InvalidFileName(BuilderError, ValueError):
    """The destination path has no extension where one is required."""

    def __init__(self, path: str, allowed_extensions: Sequence[str]) -> None:
        self.path = path
        self.allowed_extensions: Tuple[str, ...] = tuple(allowed_extensions)
        super().__init__(self._describe())

    def _describe(self) -> str:
        return (
            f"The filename provided, {self.path}, has no extension. "
            "If you are specifying a folder, make sure it ends in a trailing slash. "
            f"Expected extension(s): {';'.join(self.allowed_extensions)}"
        )


class InvalidExtension(InvalidFileName):
    """The destination extension is not allowed for the operation."""

    def _describe(self) -> str:
        return (
            f"The filename provided, {self.path}, does not have the expected extension. "
            f"Expected extension(s): {';'.join(self.allowed_extensions)}"
        )


class TransportError(BuilderError):
    """Network or HTTP failure reported by a transport."""

    def __init__(
        self,
        url: str,
        message: str,
        *,
        status: Optional[int] = None,
        not_modified: bool = False,
    ) -> None:
        self.url = url
        self.status = status
        self.not_modified = not_modified
        super().__init__(message)


class DownloadFailed(BuilderError):
    """The root resource of a build could not be fetched."""

    def __init__(self, url: Optional[str], cause: Optional[BaseException]) -> None:
        self.url = url
        self.cause = cause
        if url is None:
            message = "no URL was provided"
        else:
            message = f"unable to download {url}: {cause}"
        super().__init__(message)


class NotHtmlOperation(BuilderError):
    """An HTML/CSS-only operation was invoked on another kind of resource."""

    def __init__(self, operation: str, content_type: str) -> None:
        self.operation = operation
        self.content_type = content_type
        super().__init__(
            f"{operation} only makes sense for HTML or CSS content; "
            f"this resource is of type '{content_type}'"
        )


__all__ = [
    "BuilderError",
    "InvalidUrl",
    "InvalidFileName",
    "InvalidExtension",
    "TransportError",
    "DownloadFailed",
    "NotHtmlOperation",
]
