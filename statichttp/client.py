"""Concurrent consistency check against a running statichttp server.

Fires N simultaneous GETs at one path and verifies that every reply is
framed and typed the way the server promises: Content-Length equals the
body size, Content-Type is what the extension maps to (text/html for
directory paths), and every 200 carries the same bytes. Status codes are
tallied so 404s and 5xx under load stand out.
"""

import argparse
import hashlib
import sys
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from .mime import guess_mime
from .paths import split_target

TRANSPORT_FAILURE = -1


@dataclass
class Reply:
    status: int
    content_type: str = ""
    declared_length: Optional[int] = None
    size: int = 0
    digest: str = ""


@dataclass
class CheckReport:
    path: str
    elapsed: float
    statuses: Counter = field(default_factory=Counter)
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> int:
        return self.statuses.get(200, 0)

    @property
    def client_errors(self) -> int:
        return sum(n for code, n in self.statuses.items() if 400 <= code < 500)

    @property
    def server_errors(self) -> int:
        return sum(n for code, n in self.statuses.items() if code >= 500)

    @property
    def failures(self) -> int:
        return self.statuses.get(TRANSPORT_FAILURE, 0)

    @property
    def passed(self) -> bool:
        return not self.problems and self.server_errors == 0 and self.failures == 0


def expected_type(path: str) -> str:
    path = split_target(path)
    return "text/html" if path.endswith("/") else guess_mime(path)


def fetch(url: str, timeout: float = 10) -> Reply:
    try:
        r = requests.get(url, timeout=timeout)
    except requests.RequestException:
        return Reply(TRANSPORT_FAILURE)
    length = r.headers.get("Content-Length")
    return Reply(
        status=r.status_code,
        content_type=r.headers.get("Content-Type", ""),
        declared_length=int(length) if length and length.isdigit() else None,
        size=len(r.content),
        digest=hashlib.sha256(r.content).hexdigest(),
    )


def inspect(path: str, replies: List[Reply]) -> List[str]:
    """Describe every way the replies disagree with each other or the server's contract."""
    problems = []
    want_type = expected_type(path)
    digests = set()
    for i, reply in enumerate(replies):
        if reply.status == TRANSPORT_FAILURE:
            continue
        if reply.declared_length != reply.size:
            problems.append(f"#{i}: Content-Length {reply.declared_length} but {reply.size} body bytes")
        if reply.status == 200:
            digests.add(reply.digest)
            if reply.content_type != want_type:
                problems.append(f"#{i}: Content-Type {reply.content_type!r}, expected {want_type!r}")
    if len(digests) > 1:
        problems.append(f"200 bodies differ: {len(digests)} distinct payloads")
    return problems


def run(host="127.0.0.1", port=8080, path="/index.html", concurrency=10) -> CheckReport:
    url = f"http://{host}:{port}{path}"
    replies: List[Optional[Reply]] = [None] * concurrency

    def worker(idx):
        replies[idx] = fetch(url)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(concurrency)]
    t0 = time.perf_counter()
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    elapsed = time.perf_counter() - t0

    report = CheckReport(path, elapsed, Counter(r.status for r in replies))
    report.problems = inspect(path, replies)
    return report


def print_report(report: CheckReport) -> None:
    total = sum(report.statuses.values())
    print(f"GET {report.path} x{total} in {report.elapsed:.3f}s")
    print(f"  200: {report.ok}  4xx: {report.client_errors}  5xx: {report.server_errors}"
          f"  failed: {report.failures}")
    for problem in report.problems:
        print(f"  ! {problem}")
    print("  PASS" if report.passed else "  FAIL")


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Check a statichttp server serves one path consistently under load")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8080)
    ap.add_argument("--path", default="/index.html")
    ap.add_argument("-c", "--concurrency", type=int, default=10)
    args = ap.parse_args(argv)
    report = run(args.host, args.port, args.path, args.concurrency)
    print_report(report)
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
