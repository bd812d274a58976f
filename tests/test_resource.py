from pathlib import Path

import pytest

from mhtbuilder.workflows.builder_config import BuilderSettings
from mhtbuilder.workflows.errors import InvalidUrl, NotHtmlOperation, TransportError
from mhtbuilder.workflows.graph import ResourceGraph
from mhtbuilder.workflows.resource import DownloadState, ResourceNode, StorageMode, is_directory_path


def _node(transport, url, **kwargs):
    return ResourceNode(url, transport=transport, **kwargs)


def test_fetch_html_adds_web_mark_and_absolutizes(transport):
    transport.add("http://x.com/dir/page.htm", '<html><img src="a.png"><img src="/b.png"></html>')
    node = _node(transport, "http://x.com/dir/page.htm")
    node.fetch()

    assert node.state is DownloadState.FETCHED
    assert node.text.startswith("<!-- saved from url=(0025)http://x.com/dir/page.htm --> \r\n")
    assert 'src="http://x.com/dir/a.png"' in node.text
    assert 'src="http://x.com/b.png"' in node.text
    assert set(node.references.values()) == {"http://x.com/dir/a.png", "http://x.com/b.png"}


def test_web_mark_can_be_disabled(transport):
    transport.add("http://x.com/", "<html></html>")
    node = _node(transport, "http://x.com/", settings=BuilderSettings(add_web_mark=False))
    node.fetch()

    assert node.text == "<html></html>"


def test_url_is_resolved_but_original_is_kept(transport):
    node = _node(transport, "HTTP://X.com/a/../b.htm#frag")

    assert node.url == "http://x.com/b.htm"
    assert node.original_url == "HTTP://X.com/a/../b.htm#frag"
    assert node.url_root == "http://x.com"
    assert node.url_folder == "http://x.com"


def test_invalid_url_raises(transport):
    with pytest.raises(InvalidUrl):
        _node(transport, "no-scheme/page.htm")


def test_content_location_becomes_the_url(transport):
    transport.add("http://x.com/", '<img src="logo.gif">', content_location="/site/default.htm")
    node = _node(transport, "http://x.com/")
    node.fetch()

    assert node.url == "http://x.com/site/default.htm"
    assert node.content_location == "http://x.com/site/default.htm"
    assert node.original_url == "http://x.com/"
    assert 'src="http://x.com/site/logo.gif"' in node.text


def test_failed_fetch_is_remembered_and_not_retried(transport):
    node = _node(transport, "http://x.com/missing.htm")
    node.fetch()
    node.fetch()

    assert node.state is DownloadState.FAILED
    assert isinstance(node.error, TransportError)
    assert node.text == ""
    assert transport.calls == ["http://x.com/missing.htm"]


def test_text_fetches_lazily(transport):
    transport.add("http://x.com/a.txt", "hello", "text/plain")
    node = _node(transport, "http://x.com/a.txt")

    assert node.text == "hello"
    assert node.is_fetched


def test_binary_text_describes_size(transport):
    transport.add("http://x.com/a.gif", bytes(100), "image/gif")
    node = _node(transport, "http://x.com/a.gif")
    node.fetch()

    assert node.is_binary
    assert node.text_encoding is None
    assert node.text == "[100 bytes of binary data]"
    assert node.references == {}


def test_html_title_requires_html(transport):
    transport.add("http://x.com/a.gif", b"GIF89a", "image/gif")
    node = _node(transport, "http://x.com/a.gif")
    node.fetch()

    with pytest.raises(NotHtmlOperation):
        node.html_title


def test_html_title_is_truncated(transport):
    transport.add("http://x.com/", "<title>" + "x" * 70 + "</title>")
    node = _node(transport, "http://x.com/")

    assert node.html_title == "x" * 50


def test_base_href_overrides_folder_and_is_removed(transport):
    transport.add(
        "http://x.com/page.htm",
        '<head><base href="http://cdn.x.com/assets/"></head><img src="a.png">',
    )
    node = _node(transport, "http://x.com/page.htm")
    node.fetch()

    assert node.url_folder == "http://cdn.x.com/assets"
    assert "<base" not in node.text
    assert 'src="http://cdn.x.com/assets/a.png"' in node.text


def test_strip_scripts_and_iframes(transport):
    transport.add("http://x.com/", "<p>a</p><script>evil()</script><iframe src='f.htm'></iframe><p>b</p>")
    settings = BuilderSettings(add_web_mark=False, strip_scripts=True, strip_iframes=True)
    node = _node(transport, "http://x.com/", settings=settings)
    node.fetch()

    assert node.text == "<p>a</p><p>b</p>"


def test_forced_encoding_overrides_detected(transport):
    transport.add("http://x.com/", "<p>x</p>", encoding="utf-8")
    node = _node(transport, "http://x.com/", settings=BuilderSettings(forced_encoding="cp1252"))
    node.fetch()

    assert node.text_encoding == "windows-1252"


def test_css_is_absolutized(transport):
    transport.add("http://x.com/css/site.css", "body { background: url(bg.gif) }", "text/css")
    node = _node(transport, "http://x.com/css/site.css")
    node.fetch()

    assert "url(http://x.com/css/bg.gif)" in node.text
    assert list(node.references.values()) == ["http://x.com/css/bg.gif"]


def test_query_urls_get_distinct_filenames(transport):
    transport.add("http://x.com/page?id=1", "<p>one</p>")
    transport.add("http://x.com/page?id=2", "<p>two</p>")
    first = _node(transport, "http://x.com/page?id=1")
    second = _node(transport, "http://x.com/page?id=2")
    first.fetch()
    second.fetch()

    assert first.download_filename.startswith("page_")
    assert first.download_filename.endswith(".htm")
    assert first.download_filename != second.download_filename


def test_title_is_used_as_filename_when_requested(transport):
    transport.add("http://x.com/", "<title>My: Page</title>")
    node = _node(transport, "http://x.com/")
    node.use_html_title_as_filename = True
    node.fetch()

    assert node.download_filename == "My Page.htm"


def test_empty_title_falls_back_to_url_name(transport):
    transport.add("http://x.com/index.htm", "<title>  </title>")
    node = _node(transport, "http://x.com/index.htm")
    node.use_html_title_as_filename = True
    node.fetch()

    assert node.download_filename == "index.htm"


def test_url_without_name_or_title_is_hashed(transport):
    transport.add("http://x.com/", "<p>no title</p>")
    node = _node(transport, "http://x.com/")
    node.fetch()

    name = node.download_filename
    assert name.endswith(".htm")
    assert len(name) == len(".htm") + 10


def test_set_download_path_file_and_folder(tmp_path, transport):
    node = _node(transport, "http://x.com/a.gif")
    node.set_download_path(tmp_path / "img" / "logo.gif")
    assert node.download_folder == tmp_path / "img"
    assert node.download_filename == "logo.gif"

    node.set_download_path(str(tmp_path / "other") + "/")
    assert node.download_folder == tmp_path / "other"


def test_is_directory_path(tmp_path):
    assert is_directory_path(str(tmp_path / "new") + "/")
    assert is_directory_path(tmp_path)
    assert not is_directory_path(tmp_path / "file.htm")


def test_external_files_folder(tmp_path, transport):
    node = _node(transport, "http://x.com/")
    node.set_download_path(tmp_path / "page.htm")

    assert node.external_files_folder == tmp_path / "page_files"


def test_disk_storage_saves_on_fetch(tmp_path, transport):
    transport.add("http://x.com/a.gif", b"GIF89a", "image/gif")
    node = _node(transport, "http://x.com/a.gif", storage=StorageMode.DISK_PERMANENT)
    node.download_folder = tmp_path
    node.fetch()

    assert (tmp_path / "a.gif").read_bytes() == b"GIF89a"


def test_to_local_uses_relative_paths(tmp_path, transport):
    transport.add("http://x.com/", '<img src="/a.png"><img src="/gone.png">')
    transport.add("http://x.com/a.png", b"\x89PNG", "image/png")
    page = _node(transport, "http://x.com/")
    page.set_download_path(tmp_path / "page.htm")
    page.fetch()

    image = _node(transport, "http://x.com/a.png")
    image.download_folder = page.external_files_folder
    image.fetch()
    missing = _node(transport, "http://x.com/gone.png")
    missing.fetch()

    graph = ResourceGraph()
    graph.add("http://x.com/a.png", image)
    graph.add("http://x.com/gone.png", missing)
    page.to_local(graph)

    assert 'src="page_files/a.png"' in page.text
    assert 'src="http://x.com/gone.png"' in page.text


def test_to_local_requires_html_or_css(transport):
    transport.add("http://x.com/a.gif", b"GIF89a", "image/gif")
    node = _node(transport, "http://x.com/a.gif")
    node.fetch()

    with pytest.raises(NotHtmlOperation):
        node.to_local(ResourceGraph())


def test_load_html_without_base_url(transport):
    node = ResourceNode(transport=transport)
    node.load_html('<title>Local</title><img src="a.png">')

    assert node.is_fetched
    assert node.is_html
    assert node.url is None
    assert node.text_encoding == "utf-8"
    assert node.text == '<title>Local</title><img src="a.png">'
    assert transport.calls == []


def test_load_html_with_base_url_absolutizes(transport):
    node = ResourceNode(transport=transport, settings=BuilderSettings(add_web_mark=False))
    node.load_html('<img src="a.png">', base_url="http://x.com/dir/index.htm")

    assert node.text == '<img src="http://x.com/dir/a.png">'
    assert transport.calls == []


def test_save_as_text_and_plain_text(tmp_path, transport):
    transport.add("http://x.com/", "<html><body><p>Hello</p><script>x()</script></body></html>")
    node = _node(transport, "http://x.com/")
    node.fetch()

    target = node.save(tmp_path / "out.txt", as_text=True)
    content = Path(target).read_text(encoding="utf-8")
    assert "Hello" in content
    assert "x()" not in content
    assert "saved from url" not in node.to_plain_text()
