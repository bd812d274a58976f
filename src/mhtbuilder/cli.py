from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Optional, TypeVar

import typer

from .workflows.builder import Builder
from .workflows.builder_config import BuilderSettings
from .workflows.errors import DownloadFailed, InvalidFileName, InvalidUrl
from .workflows.resource import StorageMode

app = typer.Typer(add_help_option=False, no_args_is_help=False)

T = TypeVar("T")


def _minimal_help() -> str:
    return """mhtbuilder

Usage:
  mhtbuilder save-page <url> <path.htm|dir/>
  mhtbuilder save-text <url> <path.txt|dir/>
  mhtbuilder save-complete <url> <path.htm|dir/>
  mhtbuilder archive <url> [--out <file>]
  mhtbuilder save-archive <url> <path.mht|dir/> [--storage temporary|permanent|memory]

Common options:
  --no-recursion   Only fetch resources referenced by the root page (crawling commands).
  --strip-scripts  Drop <script> blocks from saved HTML.
  --strip-iframes  Drop <iframe> blocks from saved HTML.
  --no-web-mark    Do not prepend the "saved from url" comment.
  --encoding <cs>  Force the text encoding of every resource.
  --workers <n>    Fetch sibling resources with a pool of n threads (crawling commands).
  --verbose        Debug logging.

Discoverability:
  --help-full     Expanded help + env vars + exit codes.
  --find <query>  Search commands, flags, env vars.
"""


def _help_full() -> str:
    return """mhtbuilder CLI

Commands:
  save-page      Save the root HTML only; references stay absolute.
  save-text      Save the visible text of the root page.
  save-complete  Save the root page plus every referenced file, rewritten to local paths.
  archive        Build an MHT archive in memory; print it or write it with --out.
  save-archive   Build an MHT archive next to (optionally) the downloaded files.

Destinations:
  A path ending in a separator (or an existing directory) names the output
  after the page title. Otherwise the extension must match the command:
  .htm/.html, .txt or .mht.

Storage (save-archive --storage):
  temporary  Files are written while building and removed afterwards (default).
  permanent  Files and an .htm copy of the root are kept beside the archive.
  memory     Nothing but the archive touches the disk.

Important env vars:
  MHTBUILDER_ADD_WEB_MARK
  MHTBUILDER_STRIP_SCRIPTS
  MHTBUILDER_STRIP_IFRAMES
  MHTBUILDER_ALLOW_RECURSION
  MHTBUILDER_FORCED_ENCODING
  MHTBUILDER_WORKERS
  MHTBUILDER_STRICT_TERMINATOR
  MHTBUILDER_TIMEOUT
  MHTBUILDER_USER_AGENT
  MHTBUILDER_PROXY_URL / MHTBUILDER_PROXY_USER / MHTBUILDER_PROXY_PASSWORD
  MHTBUILDER_AUTH_USER / MHTBUILDER_AUTH_PASSWORD
  MHTBUILDER_KEEP_COOKIES
  MHTBUILDER_DEFAULT_ENCODING

Exit codes:
  0  success
  2  invalid URL or destination
  3  the root page could not be downloaded
"""


_FIND_INDEX = [
    ("command", "save-page", "Save the root HTML only."),
    ("command", "save-text", "Save the visible text of the root page."),
    ("command", "save-complete", "Save the page plus referenced files with local references."),
    ("command", "archive", "Build an MHT archive in memory."),
    ("command", "save-archive", "Build an MHT archive on disk."),
    ("flag", "--out", "Write the in-memory archive to this file."),
    ("flag", "--storage", "temporary, permanent or memory."),
    ("flag", "--no-recursion", "Only fetch resources referenced by the root page."),
    ("flag", "--strip-scripts", "Drop <script> blocks."),
    ("flag", "--strip-iframes", "Drop <iframe> blocks."),
    ("flag", "--no-web-mark", "Do not prepend the saved-from-url comment."),
    ("flag", "--encoding", "Force the text encoding."),
    ("flag", "--workers", "Thread pool size for sibling fetches."),
    ("flag", "--verbose", "Debug logging."),
    ("flag", "--help-full", "Expanded help, env vars, exit codes."),
    ("flag", "--find", "Search commands, flags, env vars."),
    ("env", "MHTBUILDER_ADD_WEB_MARK", "Prepend the saved-from-url comment (default 1)."),
    ("env", "MHTBUILDER_STRIP_SCRIPTS", "Drop <script> blocks."),
    ("env", "MHTBUILDER_STRIP_IFRAMES", "Drop <iframe> blocks."),
    ("env", "MHTBUILDER_ALLOW_RECURSION", "Crawl referenced HTML and CSS (default 1)."),
    ("env", "MHTBUILDER_FORCED_ENCODING", "Force the text encoding."),
    ("env", "MHTBUILDER_WORKERS", "Thread pool size for sibling fetches."),
    ("env", "MHTBUILDER_STRICT_TERMINATOR", "Close the archive with the final -- boundary."),
    ("env", "MHTBUILDER_TIMEOUT", "Request timeout in seconds."),
    ("env", "MHTBUILDER_USER_AGENT", "User-Agent header."),
    ("env", "MHTBUILDER_PROXY_URL", "HTTP proxy."),
    ("env", "MHTBUILDER_AUTH_USER", "Basic auth user."),
    ("env", "MHTBUILDER_KEEP_COOKIES", "Keep cookies between requests."),
    ("env", "MHTBUILDER_DEFAULT_ENCODING", "Fallback text encoding."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _parse_storage(value: str) -> StorageMode:
    aliases = {
        "temporary": StorageMode.DISK_TEMPORARY,
        "permanent": StorageMode.DISK_PERMANENT,
        "memory": StorageMode.MEMORY,
    }
    mode = aliases.get((value or "").strip().lower())
    if mode is None:
        raise typer.BadParameter(f"Unknown storage '{value}'; expected one of: {', '.join(aliases)}")
    return mode


_NO_RECURSION = typer.Option(False, "--no-recursion", help="Only fetch resources referenced by the root page.")
_STRIP_SCRIPTS = typer.Option(False, "--strip-scripts", help="Drop <script> blocks.")
_STRIP_IFRAMES = typer.Option(False, "--strip-iframes", help="Drop <iframe> blocks.")
_NO_WEB_MARK = typer.Option(False, "--no-web-mark", help="Do not prepend the saved-from-url comment.")
_ENCODING = typer.Option(None, "--encoding", help="Force the text encoding of every resource.")
_WORKERS = typer.Option(None, "--workers", min=1, help="Thread pool size for sibling fetches.")
_VERBOSE = typer.Option(False, "--verbose", "-v", help="Debug logging.")


def _make_builder(
    *,
    no_recursion: bool = False,
    strip_scripts: bool,
    strip_iframes: bool,
    no_web_mark: bool,
    encoding: Optional[str],
    workers: Optional[int] = None,
    verbose: bool,
) -> Builder:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    settings = BuilderSettings.from_env()
    if no_recursion:
        settings.allow_recursion = False
    if strip_scripts:
        settings.strip_scripts = True
    if strip_iframes:
        settings.strip_iframes = True
    if no_web_mark:
        settings.add_web_mark = False
    if encoding:
        settings.forced_encoding = encoding
    if workers:
        settings.workers = workers
    return Builder(settings=settings)


def _run(action: Callable[[], T]) -> T:
    try:
        return action()
    except (InvalidUrl, InvalidFileName) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    except DownloadFailed as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("save-page", add_help_option=True)
def save_page_cmd(
    url: str = typer.Argument(..., help="URL of the page."),
    path: str = typer.Argument(..., help="Destination .htm/.html file or folder."),
    strip_scripts: bool = _STRIP_SCRIPTS,
    strip_iframes: bool = _STRIP_IFRAMES,
    no_web_mark: bool = _NO_WEB_MARK,
    encoding: Optional[str] = _ENCODING,
    verbose: bool = _VERBOSE,
) -> None:
    """Save the root HTML only."""
    builder = _make_builder(
        strip_scripts=strip_scripts,
        strip_iframes=strip_iframes,
        no_web_mark=no_web_mark,
        encoding=encoding,
        verbose=verbose,
    )
    saved = _run(lambda: builder.save_page(path, url=url))
    typer.echo(str(saved))


@app.command("save-text", add_help_option=True)
def save_text_cmd(
    url: str = typer.Argument(..., help="URL of the page."),
    path: str = typer.Argument(..., help="Destination .txt file or folder."),
    strip_scripts: bool = _STRIP_SCRIPTS,
    strip_iframes: bool = _STRIP_IFRAMES,
    no_web_mark: bool = _NO_WEB_MARK,
    encoding: Optional[str] = _ENCODING,
    verbose: bool = _VERBOSE,
) -> None:
    """Save the visible text of the root page."""
    builder = _make_builder(
        strip_scripts=strip_scripts,
        strip_iframes=strip_iframes,
        no_web_mark=no_web_mark,
        encoding=encoding,
        verbose=verbose,
    )
    saved = _run(lambda: builder.save_page_text(path, url=url))
    typer.echo(str(saved))


@app.command("save-complete", add_help_option=True)
def save_complete_cmd(
    url: str = typer.Argument(..., help="URL of the page."),
    path: str = typer.Argument(..., help="Destination .htm/.html file or folder."),
    no_recursion: bool = _NO_RECURSION,
    strip_scripts: bool = _STRIP_SCRIPTS,
    strip_iframes: bool = _STRIP_IFRAMES,
    no_web_mark: bool = _NO_WEB_MARK,
    encoding: Optional[str] = _ENCODING,
    workers: Optional[int] = _WORKERS,
    verbose: bool = _VERBOSE,
) -> None:
    """Save the page plus every referenced file, rewritten to local paths."""
    builder = _make_builder(
        no_recursion=no_recursion,
        strip_scripts=strip_scripts,
        strip_iframes=strip_iframes,
        no_web_mark=no_web_mark,
        encoding=encoding,
        workers=workers,
        verbose=verbose,
    )
    saved = _run(lambda: builder.save_page_complete(path, url=url))
    typer.echo(str(saved))


@app.command("archive", add_help_option=True)
def archive_cmd(
    url: str = typer.Argument(..., help="URL of the page."),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the archive here instead of stdout."),
    no_recursion: bool = _NO_RECURSION,
    strip_scripts: bool = _STRIP_SCRIPTS,
    strip_iframes: bool = _STRIP_IFRAMES,
    no_web_mark: bool = _NO_WEB_MARK,
    encoding: Optional[str] = _ENCODING,
    workers: Optional[int] = _WORKERS,
    verbose: bool = _VERBOSE,
) -> None:
    """Build an MHT archive in memory."""
    builder = _make_builder(
        no_recursion=no_recursion,
        strip_scripts=strip_scripts,
        strip_iframes=strip_iframes,
        no_web_mark=no_web_mark,
        encoding=encoding,
        workers=workers,
        verbose=verbose,
    )
    if out is not None:
        saved = _run(lambda: builder.create_archive_file(url, out))
        typer.echo(str(saved))
        return
    text = _run(lambda: builder.get_page_archive(url))
    sys.stdout.write(text)


@app.command("save-archive", add_help_option=True)
def save_archive_cmd(
    url: str = typer.Argument(..., help="URL of the page."),
    path: str = typer.Argument(..., help="Destination .mht file or folder."),
    storage: str = typer.Option("temporary", "--storage", help="temporary, permanent or memory."),
    no_recursion: bool = _NO_RECURSION,
    strip_scripts: bool = _STRIP_SCRIPTS,
    strip_iframes: bool = _STRIP_IFRAMES,
    no_web_mark: bool = _NO_WEB_MARK,
    encoding: Optional[str] = _ENCODING,
    workers: Optional[int] = _WORKERS,
    verbose: bool = _VERBOSE,
) -> None:
    """Build an MHT archive on disk."""
    mode = _parse_storage(storage)
    builder = _make_builder(
        no_recursion=no_recursion,
        strip_scripts=strip_scripts,
        strip_iframes=strip_iframes,
        no_web_mark=no_web_mark,
        encoding=encoding,
        workers=workers,
        verbose=verbose,
    )
    saved = _run(lambda: builder.save_page_archive(path, storage=mode, url=url))
    typer.echo(str(saved))


if __name__ == "__main__":  # pragma: no cover
    app()
