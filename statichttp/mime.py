"""Extension to Content-Type lookup."""

import os
from types import MappingProxyType

DEFAULT_MIME = "application/octet-stream"

# Only what we serve (+ .ico to quiet favicon probes)
MIME_MAP = MappingProxyType({
    ".html": "text/html",
    ".htm":  "text/html",
    ".css":  "text/css",
    ".js":   "application/javascript",
    ".json": "application/json",
    ".txt":  "text/plain",
    ".png":  "image/png",
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif":  "image/gif",
    ".svg":  "image/svg+xml",
    ".ico":  "image/x-icon",
    ".pdf":  "application/pdf",
})


def extension(path: str) -> str:
    """Text from the last '.' of the last path segment, or ''."""
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot:] if dot != -1 else ""


def guess_mime(path: str) -> str:
    """Return the MIME type for a path's extension (case-sensitive)."""
    return MIME_MAP.get(extension(path), DEFAULT_MIME)
