"""HTTP/1.x wire layer: request heads in, length-framed responses out."""

import datetime
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Optional

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
REQ_HEADER_LIMIT = 64 * 1024  # simple guardrail for header size DoS
CHUNK_SIZE = 64 * 1024
SERVER_NAME = "statichttp/1.0"


class ProtocolError(Exception):
    """Request head could not be parsed; the connection cannot continue."""


@dataclass(frozen=True)
class Request:
    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def keep_alive(self) -> bool:
        if "transfer-encoding" in self.headers:
            return False  # body left unread, cannot find the next request
        conn = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.0":
            return "keep-alive" in conn
        return "close" not in conn


@dataclass
class Response:
    status: int
    reason: str
    content_type: str
    body: bytes = b""
    file: Optional[BinaryIO] = None
    length: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.length is None:
            self.length = len(self.body)

    def close(self) -> None:
        if self.file is not None:
            self.file.close()
            self.file = None


def http_date_now() -> str:
    """Return current time formatted for HTTP headers (GMT)."""
    return datetime.datetime.now(datetime.UTC).strftime("%a, %d %b %Y %H:%M:%S GMT")


def parse_headers(lines) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for line in lines:
        if ":" not in line:
            raise ProtocolError(f"malformed header line: {line!r}")
        k, v = line.split(":", 1)
        headers[k.strip().lower()] = v.strip()
    return headers


def read_request(rfile: BinaryIO) -> Optional[Request]:
    """Read one request head (and any Content-Length body) from rfile.

    Returns None if the peer closed before sending anything.
    """
    lines = []
    total = 0
    while True:
        line = rfile.readline(REQ_HEADER_LIMIT + 1)
        if not line:
            if not lines and total == 0:
                return None
            raise ProtocolError("connection closed mid-head")
        total += len(line)
        if total > REQ_HEADER_LIMIT:
            raise ProtocolError("request head too large")
        if line in (CRLF, b"\n"):
            if not lines:
                continue  # tolerate stray CRLF between requests
            break
        lines.append(line.rstrip(b"\r\n").decode("iso-8859-1"))

    parts = lines[0].split(" ")
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        raise ProtocolError(f"malformed request line: {lines[0]!r}")
    method, target, version = parts
    headers = parse_headers(lines[1:])

    length = headers.get("content-length")
    if length is not None:
        if not (length.isascii() and length.isdigit()):
            raise ProtocolError(f"bad Content-Length: {length!r}")
        _discard(rfile, int(length))
    return Request(method, target, version, headers)


def _discard(rfile: BinaryIO, n: int) -> None:
    while n > 0:
        data = rfile.read(min(n, CHUNK_SIZE))
        if not data:
            raise ProtocolError("connection closed mid-body")
        n -= len(data)


def build_head(status_code: int, reason: str, headers: Dict[str, str]) -> bytes:
    lines = [f"HTTP/1.1 {status_code} {reason}"]
    lines.extend(f"{k}: {v}" for k, v in headers.items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")


def error_response(status_code: int, reason: str, headers: Optional[Dict[str, str]] = None) -> Response:
    body = f"{status_code} {reason}\n".encode("utf-8")
    return Response(status_code, reason, "text/plain; charset=utf-8", body, headers=headers or {})


def send_response(sock, response: Response, keep_alive: bool = True) -> None:
    """Write one length-framed response; the file (if any) is closed after.

    Raises OSError if the peer went away or the file shrank under us,
    either way the connection must not be reused.
    """
    headers = {
        "Server": SERVER_NAME,
        "Date": http_date_now(),
        "Content-Type": response.content_type,
        "Content-Length": str(response.length),
        "Connection": "keep-alive" if keep_alive else "close",
    }
    headers.update(response.headers)
    try:
        sock.sendall(build_head(response.status, response.reason, headers) + response.body)
        if response.file is not None:
            _stream(sock, response.file, response.length - len(response.body))
    finally:
        response.close()


def _stream(sock, f: BinaryIO, remaining: int) -> None:
    # stream in chunks
    while remaining > 0:
        data = f.read(min(CHUNK_SIZE, remaining))
        if not data:
            raise OSError(f"file truncated while sending, {remaining} bytes short")
        sock.sendall(data)
        remaining -= len(data)
