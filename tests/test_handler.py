"""Unit tests for the request handler's branching, without sockets."""

import io
import os

import pytest

from statichttp.handler import handle_request
from statichttp.protocol import Request, read_request

from conftest import PNG_BYTES


def _get(root, target, method="GET"):
    response = handle_request(root, Request(method, target))
    if response.file is not None:
        body = response.body + response.file.read()
        response.close()
    else:
        body = response.body
    return response, body


def test_serves_file_with_mime(site):
    response, body = _get(site, "/logo.png")
    assert response.status == 200
    assert response.content_type == "image/png"
    assert response.length == len(PNG_BYTES)
    assert body == PNG_BYTES


def test_unknown_extension_is_octet_stream(site):
    response, body = _get(site, "/data.bin")
    assert response.content_type == "application/octet-stream"
    assert body == b"\x00\x01\x02"


def test_query_string_is_ignored(site):
    response, body = _get(site, "/notes.txt?v=2#frag")
    assert response.status == 200
    assert body == b"plain notes\n"


def test_root_serves_index(site):
    response, body = _get(site, "/")
    assert response.content_type == "text/html"
    assert body == b"<h1>home</h1>"


def test_directory_with_index(site):
    response, body = _get(site, "/app/")
    assert response.status == 200
    assert response.content_type == "text/html"
    assert body == b"<p>app index</p>"


def test_directory_without_index_lists(site):
    response, body = _get(site, "/docs/")
    page = body.decode("utf-8")
    assert response.status == 200
    assert response.content_type == "text/html"
    assert 'href="/docs/sub/"' in page
    assert 'href="/docs/guide.txt"' in page
    assert "deep.txt" not in page
    assert page.index("sub/") < page.index("guide.txt")


def test_encoded_names(site):
    with open(os.path.join(site, "my file.txt"), "w") as f:
        f.write("spaced")
    response, body = _get(site, "/my%20file.txt")
    assert response.status == 200
    assert body == b"spaced"


def test_missing_is_404_plain_text(site):
    response, body = _get(site, "/nope.html")
    assert response.status == 404
    assert response.content_type.startswith("text/plain")
    assert body == b"404 Not Found\n"


def test_file_used_as_directory_is_404(site):
    response, _ = _get(site, "/notes.txt/more")
    assert response.status == 404


@pytest.mark.parametrize("target", [
    "/../../etc/passwd",
    "/%2e%2e/%2e%2e/etc/passwd",
    "/../outside.txt",
    "/../wwwroot/secret.txt",
    "/docs/..%2f..%2foutside.txt",
    "/a%00b",
])
def test_escapes_are_404(site, target):
    response, body = _get(site, target)
    assert response.status == 404
    assert b"outside" not in body and b"do not serve" not in body


@pytest.mark.parametrize("method", ["POST", "HEAD", "PUT", "DELETE"])
def test_non_get_is_405(site, method):
    response, body = _get(site, "/index.html", method=method)
    assert response.status == 405
    assert response.headers["Allow"] == "GET"
    assert body == b"405 Method Not Allowed\n"


def test_non_get_is_405_even_for_traversal(site):
    response, _ = _get(site, "/../../etc/passwd", method="POST")
    assert response.status == 405


def test_listing_reflects_filesystem_changes(site):
    _, before = _get(site, "/docs/")
    with open(os.path.join(site, "docs", "new.txt"), "w") as f:
        f.write("n")
    _, after = _get(site, "/docs/")
    assert b"new.txt" not in before
    assert b"new.txt" in after


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs FIFOs")
def test_fifo_is_not_served(site):
    os.mkfifo(os.path.join(site, "pipe"))
    response, _ = _get(site, "/pipe")
    assert response.status == 404


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs permission checks")
def test_unreadable_file_is_500(site):
    path = os.path.join(site, "locked.txt")
    with open(path, "w") as f:
        f.write("x")
    os.chmod(path, 0)
    try:
        response, _ = _get(site, "/locked.txt")
    finally:
        os.chmod(path, 0o644)
    assert response.status == 500


def test_raw_utf8_target_is_served(site):
    with open(os.path.join(site, "café.txt"), "wb") as f:
        f.write(b"cafe au lait")
    request = read_request(io.BytesIO(b"GET /caf\xc3\xa9.txt HTTP/1.1\r\n\r\n"))
    response = handle_request(site, request)
    body = response.file.read()
    response.close()
    assert response.status == 200
    assert response.content_type == "text/plain"
    assert body == b"cafe au lait"


def test_raw_and_encoded_utf8_targets_agree(site):
    os.mkdir(os.path.join(site, "über"))
    raw = read_request(io.BytesIO(b"GET /\xc3\xbcber/ HTTP/1.1\r\n\r\n"))
    encoded = read_request(io.BytesIO(b"GET /%C3%BCber/ HTTP/1.1\r\n\r\n"))
    assert handle_request(site, raw).body == handle_request(site, encoded).body


def test_listing_links_work_without_trailing_slash(site):
    response, body = _get(site, "/docs")
    page = body.decode("utf-8")
    assert response.status == 200
    assert 'href="/docs/guide.txt"' in page
    assert 'href="/docs/sub/"' in page
