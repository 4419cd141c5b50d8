"""Generated HTML index for directories without a default document."""

import html
import os
import urllib.parse
from dataclasses import dataclass
from typing import List, Union


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_directory: bool

    def sort_key(self):
        # directories first, then raw filename bytes
        return (not self.is_directory, os.fsencode(self.name))


def list_entries(abs_dir_path: str) -> List[DirectoryEntry]:
    """Immediate children of a directory, sorted for display.

    Raises OSError if the directory cannot be opened (vanished,
    permission denied, not a directory).
    """
    with os.scandir(abs_dir_path) as it:
        entries = [DirectoryEntry(e.name, e.is_dir(follow_symlinks=False)) for e in it]
    entries.sort(key=DirectoryEntry.sort_key)
    return entries


def _display(name: str) -> str:
    # names may carry surrogate escapes from undecodable bytes
    return os.fsencode(name).decode("utf-8", errors="replace")


def base_href(url_path: Union[str, bytes]) -> str:
    """Quoted request path with exactly one leading and trailing '/'."""
    raw = url_path if isinstance(url_path, bytes) else url_path.encode("utf-8")
    # a leading "//" would make every link protocol-relative (another host)
    inner = raw.strip(b"/")
    return urllib.parse.quote(b"/" + inner + b"/" if inner else b"/", safe="/")


def render_listing(url_path: Union[str, bytes], entries: List[DirectoryEntry]) -> bytes:
    # links hang off the request path so "/docs" and "/docs/" both work
    base = base_href(url_path)
    if isinstance(url_path, bytes):
        url_path = url_path.decode("utf-8", errors="replace")
    title = html.escape(url_path or "/")
    items = []
    for entry in entries:
        suffix = "/" if entry.is_directory else ""
        href = base + urllib.parse.quote(os.fsencode(entry.name), safe="") + suffix
        text = html.escape(_display(entry.name)) + suffix
        items.append(f'<li><a href="{html.escape(href, quote=True)}">{text}</a></li>')
    body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Index of {title}</title></head>
<body>
<h1>Index of {title}</h1>
<ul>
{chr(10).join(items)}
</ul>
</body>
</html>
"""
    return body.encode("utf-8")


def make_dir_listing_html(abs_dir_path: str, url_path: Union[str, bytes]) -> bytes:
    """Render the listing for abs_dir_path, titled and linked from url_path."""
    return render_listing(url_path, list_entries(abs_dir_path))
