from pathlib import Path

import pytest

from mhtbuilder.workflows.builder import Builder, validate_filename
from mhtbuilder.workflows.builder_config import BuilderSettings
from mhtbuilder.workflows.errors import (
    DownloadFailed,
    InvalidExtension,
    InvalidFileName,
    InvalidUrl,
    TransportError,
)
from mhtbuilder.workflows.resource import StorageMode

BOUNDARY = "----=_NextPart_000_00"
PAGE = '<html><head><title>T</title></head><body><img src="/i.png"></body></html>'
PNG = b"\x89PNG\r\n\x1a\n" + bytes(100)


@pytest.fixture
def site(transport):
    transport.add("http://example.com/", PAGE)
    transport.add("http://example.com/i.png", PNG, "image/png")
    return transport


def _parts(archive):
    return [part for part in archive.split("\r\n--" + BOUNDARY + "\r\n")[1:] if part]


def test_archive_scenario(builder, site):
    archive = builder.get_page_archive("http://example.com")

    parts = _parts(archive)
    assert len(parts) == 2
    assert "Content-Location: http://example.com/\r\n" in parts[0]
    assert "Content-Location: http://example.com/i.png\r\n" in parts[1]
    assert "Content-Transfer-Encoding: base64" in parts[1]
    assert archive.count("Content-Transfer-Encoding: base64") == 1
    assert "Subject: T\r\n" in archive
    assert len(builder.graph) == 0


def test_archive_contains_each_resource_once(builder, transport):
    transport.add("http://example.com/", '<img src="/i.png"><img src="/i.png"><img src="i.png">')
    transport.add("http://example.com/i.png", PNG, "image/png")

    archive = builder.get_page_archive("http://example.com/")

    assert archive.count("Content-Location: http://example.com/i.png") == 1
    assert transport.calls.count("http://example.com/i.png") == 1


def test_archive_parts_are_sorted(builder, transport):
    transport.add("http://example.com/", '<img src="/z.gif"><img src="/a.gif"><img src="/m.gif">')
    for name in ("z", "a", "m"):
        transport.add(f"http://example.com/{name}.gif", b"GIF89a", "image/gif")

    archive = builder.get_page_archive("http://example.com/")
    locations = [line for line in archive.split("\r\n") if line.startswith("Content-Location: ")]

    assert locations == [
        "Content-Location: http://example.com/",
        "Content-Location: http://example.com/a.gif",
        "Content-Location: http://example.com/m.gif",
        "Content-Location: http://example.com/z.gif",
    ]


def test_self_reference_does_not_loop(builder, transport):
    transport.add("http://example.com/", '<iframe src="http://example.com/"></iframe><iframe src="/other.htm"></iframe>')
    transport.add(
        "http://example.com/other.htm",
        '<iframe src="http://example.com"></iframe><iframe src="/other.htm"></iframe>',
    )

    archive = builder.get_page_archive("http://example.com")

    assert len(_parts(archive)) == 2
    assert transport.calls.count("http://example.com/") == 1


def test_https_root_references_are_absolutized(builder, transport):
    transport.add("https://secure.example.com/dir/page.htm", '<img src="/i.png"><img src="local.gif">')
    transport.add("https://secure.example.com/i.png", PNG, "image/png")
    transport.add("https://secure.example.com/dir/local.gif", b"GIF89a", "image/gif")

    archive = builder.get_page_archive("https://secure.example.com/dir/page.htm")

    assert "Content-Location: https://secure.example.com/i.png" in archive
    assert "Content-Location: https://secure.example.com/dir/local.gif" in archive


def test_strict_terminator_setting(transport, site):
    builder = Builder(settings=BuilderSettings(strict_terminator=True), transport=transport)

    assert builder.get_page_archive("http://example.com/").endswith("--" + BOUNDARY + "--\r\n")


def test_worker_pool_produces_same_parts(transport):
    transport.add("http://example.com/", "".join(f'<img src="/{i}.gif">' for i in range(6)))
    for i in range(6):
        transport.add(f"http://example.com/{i}.gif", bytes([i]) * 20, "image/gif")

    def locations(workers):
        builder = Builder(settings=BuilderSettings(workers=workers), transport=transport)
        archive = builder.get_page_archive("http://example.com/")
        return [line for line in archive.split("\r\n") if line.startswith("Content-Location: ")]

    assert locations(3) == locations(1)


def test_validation_happens_before_download(builder, transport, tmp_path):
    with pytest.raises(InvalidExtension):
        builder.save_page(tmp_path / "page.txt", url="http://example.com/")
    with pytest.raises(InvalidFileName):
        builder.save_page_archive(tmp_path / "noext", url="http://example.com/")
    with pytest.raises(InvalidExtension):
        builder.save_page_text(tmp_path / "page.htm", url="http://example.com/")

    assert transport.calls == []


def test_validate_filename(tmp_path):
    assert validate_filename(str(tmp_path / "new") + "/", (".mht",)) is True
    assert validate_filename(tmp_path / "x.HTM", (".htm", ".html")) is False
    with pytest.raises(InvalidFileName) as excinfo:
        validate_filename(tmp_path / "x", (".txt",))
    assert excinfo.value.allowed_extensions == (".txt",)
    assert not isinstance(excinfo.value, InvalidExtension)


def test_root_failure_raises_download_failed(builder):
    with pytest.raises(DownloadFailed) as excinfo:
        builder.get_page_archive("http://example.com/missing.htm")

    assert excinfo.value.url == "http://example.com/missing.htm"
    assert isinstance(excinfo.value.cause, TransportError)


def test_missing_url_raises_download_failed(builder):
    with pytest.raises(DownloadFailed) as excinfo:
        builder.get_page_archive()

    assert excinfo.value.url is None


def test_invalid_url_raises(builder):
    with pytest.raises(InvalidUrl):
        builder.get_page_archive("example.com/no-scheme")


def test_url_property_resets_state(builder, site):
    builder.get_page_archive("http://example.com/")
    builder.url = "http://example.com/i.png"

    assert builder.url == "http://example.com/i.png"
    assert not builder.root.is_fetched
    assert len(builder.graph) == 0


def test_mht_content_type(builder):
    assert builder.mht_content_type == "message/rfc822"


def test_save_page_into_folder_uses_title(builder, site, tmp_path):
    saved = builder.save_page(str(tmp_path) + "/", url="http://example.com/")

    assert saved == tmp_path / "T.htm"
    content = saved.read_text(encoding="utf-8")
    assert 'src="http://example.com/i.png"' in content
    assert content.startswith("<!-- saved from url=(0019)http://example.com/ -->")


def test_save_page_to_file(builder, site, tmp_path):
    saved = builder.save_page(tmp_path / "page.html", url="http://example.com/")

    assert saved == tmp_path / "page.html"
    assert saved.exists()


def test_save_page_text(builder, transport, tmp_path):
    transport.add("http://example.com/", "<title>Doc</title><p>Hello <b>world</b></p><script>x()</script>")

    saved = builder.save_page_text(str(tmp_path) + "/", url="http://example.com/")

    assert saved == tmp_path / "Doc.txt"
    text = saved.read_text(encoding="utf-8")
    assert "Hello" in text and "world" in text
    assert "x()" not in text


def test_save_page_complete_rewrites_to_local(builder, transport, tmp_path):
    transport.add("http://example.com/", '<img src="/i.png"><link rel="stylesheet" href="/css/s.css">')
    transport.add("http://example.com/i.png", PNG, "image/png")
    transport.add("http://example.com/css/s.css", "p { background: url(bg.gif) }", "text/css")
    transport.add("http://example.com/css/bg.gif", b"GIF89a", "image/gif")

    saved = builder.save_page_complete(tmp_path / "page.htm", url="http://example.com/")

    page = saved.read_text(encoding="utf-8")
    assert 'src="page_files/i.png"' in page
    assert 'href="page_files/s.css"' in page
    assert (tmp_path / "page_files" / "i.png").read_bytes() == PNG
    css = (tmp_path / "page_files" / "s.css").read_text(encoding="utf-8")
    assert "url(s_files/bg.gif)" in css
    assert (tmp_path / "page_files" / "s_files" / "bg.gif").exists()


def test_save_page_archive_temporary_cleans_up(builder, site, tmp_path):
    saved = builder.save_page_archive(tmp_path / "out.mht", url="http://example.com/")

    assert saved == tmp_path / "out.mht"
    archive = saved.read_bytes().decode("utf-8")
    assert "Content-Location: http://example.com/i.png" in archive
    assert not (tmp_path / "out_files").exists()
    assert not (tmp_path / "out.htm").exists()
    assert len(builder.graph) == 0


def test_save_page_archive_permanent_keeps_files(builder, site, tmp_path):
    saved = builder.save_page_archive(tmp_path / "out.mht", StorageMode.DISK_PERMANENT, url="http://example.com/")

    assert saved.exists()
    assert (tmp_path / "out.htm").exists()
    assert (tmp_path / "out_files" / "i.png").read_bytes() == PNG


def test_save_page_archive_into_folder_uses_title(builder, site, tmp_path):
    saved = builder.save_page_archive(str(tmp_path) + "/", StorageMode.MEMORY, url="http://example.com/")

    assert saved == tmp_path / "T.mht"
    assert saved.exists()


def test_convert_html_to_archive(builder, transport, tmp_path):
    transport.add("http://example.com/i.png", PNG, "image/png")
    html = '<title>Local</title><img src="http://example.com/i.png">'

    saved = builder.convert_html_to_archive(html, tmp_path / "conv.mht")

    archive = saved.read_bytes().decode("utf-8")
    assert "Subject: Local" in archive
    assert "Content-Location: http://example.com/i.png" in archive
    assert transport.calls == ["http://example.com/i.png"]


def test_create_archive_file_accepts_any_extension(builder, site, tmp_path):
    saved = builder.create_archive_file("http://example.com/", tmp_path / "archive.eml")

    assert saved == tmp_path / "archive.eml"
    assert Path(saved).read_bytes().startswith(b"From: ")


def _part_for(archive, url):
    marker = f"Content-Location: {url}\r\n"
    matches = [part for part in _parts(archive) if marker in part]
    assert len(matches) == 1
    return matches[0]


@pytest.mark.parametrize("storage", [StorageMode.DISK_TEMPORARY, StorageMode.DISK_PERMANENT])
def test_disk_archive_keeps_same_named_files_apart(builder, transport, tmp_path, storage):
    transport.add("http://example.com/", '<img src="/a/logo.png"><img src="/b/logo.png">')
    transport.add("http://example.com/a/logo.png", b"AAAA", "image/png")
    transport.add("http://example.com/b/logo.png", b"BBBB", "image/png")

    saved = builder.save_page_archive(tmp_path / "p.mht", storage, url="http://example.com/")

    archive = saved.read_bytes().decode("utf-8")
    assert "QUFBQQ==" in _part_for(archive, "http://example.com/a/logo.png")
    assert "QkJCQg==" in _part_for(archive, "http://example.com/b/logo.png")
    if storage is StorageMode.DISK_PERMANENT:
        kept = sorted(p.read_bytes() for p in (tmp_path / "p_files").iterdir())
        assert kept == [b"AAAA", b"BBBB"]
    else:
        assert not (tmp_path / "p_files").exists()


def test_save_page_complete_keeps_same_named_files_apart(builder, transport, tmp_path):
    transport.add("http://example.com/", '<img src="/a/logo.png"><img src="/b/logo.png">')
    transport.add("http://example.com/a/logo.png", b"AAAA", "image/png")
    transport.add("http://example.com/b/logo.png", b"BBBB", "image/png")

    saved = builder.save_page_complete(tmp_path / "page.htm", url="http://example.com/")

    page = saved.read_text(encoding="utf-8")
    local = [src.split('"')[0] for src in page.split('src="')[1:]]
    assert len(set(local)) == 2
    assert [(tmp_path / rel).read_bytes() for rel in local] == [b"AAAA", b"BBBB"]


def test_root_spelled_differently_is_not_refetched(builder, transport):
    transport.add(
        "http://example.com/",
        '<iframe src="http://example.com"></iframe><img src="HTTP://EXAMPLE.COM:80/"><img src="/i.png">',
    )
    transport.add("http://example.com/i.png", PNG, "image/png")

    archive = builder.get_page_archive("http://example.com/")

    assert transport.calls.count("http://example.com/") == 1
    assert archive.count("Content-Location: http://example.com/\r\n") == 1
    assert len(_parts(archive)) == 2
