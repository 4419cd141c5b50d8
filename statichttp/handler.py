"""Maps one parsed request onto the filesystem and builds its Response."""

import logging
import os
import stat
from typing import Optional

from .listing import make_dir_listing_html
from .mime import guess_mime
from .paths import InvalidPathError, percent_decode, resolve_request_path, split_target
from .protocol import Request, Response, error_response

logger = logging.getLogger(__name__)

ALLOWED_METHOD = "GET"
DEFAULT_DOCUMENT = "index.html"
HTML_TYPE = "text/html"

# O_NONBLOCK keeps a FIFO under the root from hanging the worker on open()
OPEN_FLAGS = os.O_RDONLY | getattr(os, "O_NONBLOCK", 0) | getattr(os, "O_BINARY", 0)

# open() failures that mean "nothing there"
ABSENT_ERRORS = (FileNotFoundError, NotADirectoryError)


def not_found() -> Response:
    return error_response(404, "Not Found")


def handle_request(root: str, request: Request) -> Response:
    """Produce exactly one Response for request, never raising."""
    logger.info("%s %s", request.method, request.target)

    if request.method != ALLOWED_METHOD:
        return error_response(405, "Method Not Allowed", {"Allow": ALLOWED_METHOD})

    # the head was read as ISO-8859-1, so this gives back the raw target bytes
    decoded = percent_decode(split_target(request.target).encode("iso-8859-1"))
    try:
        target = resolve_request_path(root, decoded)
    except InvalidPathError as e:
        # same answer as a missing file: do not reveal the boundary
        logger.warning("Rejected request path: %s", e)
        return not_found()

    display = decoded or b"/"
    try:
        return serve_path(target.absolute_path, display)
    except OSError:
        logger.exception("Filesystem error serving %s", target.absolute_path)
        return error_response(500, "Internal Server Error")


def serve_path(path: str, display: bytes) -> Response:
    try:
        fd = os.open(path, OPEN_FLAGS)
    except ABSENT_ERRORS:
        # absent: default document, then a listing, then 404
        return serve_directory(path, display)

    try:
        st = os.fstat(fd)
    except OSError:
        os.close(fd)
        raise

    if stat.S_ISDIR(st.st_mode):
        os.close(fd)
        return serve_directory(path, display)
    if stat.S_ISREG(st.st_mode):
        return file_response(fd, st.st_size, guess_mime(path))

    os.close(fd)
    logger.warning("Refusing to serve special file %s", path)
    return not_found()


def serve_directory(path: str, display: bytes) -> Response:
    index = open_default_document(path)
    if index is not None:
        return index
    try:
        body = make_dir_listing_html(path, display)
    except ABSENT_ERRORS:
        # removed between stat and scandir
        return not_found()
    return Response(200, "OK", HTML_TYPE, body)


def open_default_document(dir_path: str) -> Optional[Response]:
    """Open <dir_path>/index.html as text/html if it is a regular file."""
    index_path = os.path.join(dir_path, DEFAULT_DOCUMENT)
    try:
        fd = os.open(index_path, OPEN_FLAGS)
    except ABSENT_ERRORS + (IsADirectoryError,):
        return None

    try:
        st = os.fstat(fd)
    except OSError:
        os.close(fd)
        raise
    if not stat.S_ISREG(st.st_mode):
        os.close(fd)
        return None
    return file_response(fd, st.st_size, HTML_TYPE)


def file_response(fd: int, size: int, content_type: str) -> Response:
    return Response(200, "OK", content_type, file=os.fdopen(fd, "rb"), length=size)
