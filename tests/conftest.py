import os
import threading

import pytest

from statichttp.server import ServerConfig, open_listener, serve

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4


@pytest.fixture
def site(tmp_path):
    """A small document root:

    index.html, logo.png, notes.txt, data.bin,
    docs/ (no index.html) with guide.txt and sub/deep.txt,
    app/ with its own index.html
    """
    root = tmp_path / "www"
    root.mkdir()
    (root / "index.html").write_bytes(b"<h1>home</h1>")
    (root / "logo.png").write_bytes(PNG_BYTES)
    (root / "notes.txt").write_text("plain notes\n")
    (root / "data.bin").write_bytes(b"\x00\x01\x02")

    docs = root / "docs"
    docs.mkdir()
    (docs / "guide.txt").write_text("guide")
    (docs / "sub").mkdir()
    (docs / "sub" / "deep.txt").write_text("deep")

    app = root / "app"
    app.mkdir()
    (app / "index.html").write_bytes(b"<p>app index</p>")

    # sibling sharing the root's name as a prefix
    (tmp_path / "wwwroot").mkdir()
    (tmp_path / "wwwroot" / "secret.txt").write_text("do not serve")
    (tmp_path / "outside.txt").write_text("outside")
    return os.path.realpath(root)


@pytest.fixture
def live_server(site):
    """Run the server on an ephemeral loopback port; yields (host, port, root)."""
    config = ServerConfig(port=0, root=site, pool_size=4, queue_size=8, timeout=5.0)
    listener = open_listener(0, host="127.0.0.1")
    stop = threading.Event()
    t = threading.Thread(target=serve, args=(listener, config, stop), daemon=True)
    t.start()
    host, port = listener.getsockname()
    try:
        yield host, port, site
    finally:
        stop.set()
        t.join(timeout=5)
        listener.close()
