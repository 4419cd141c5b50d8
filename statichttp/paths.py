"""Request path decoding and containment under the served root."""

import os
import urllib.parse
from dataclasses import dataclass
from typing import Union


class InvalidPathError(ValueError):
    """Decoded request path cannot name anything beneath the root."""


class PathTraversalError(InvalidPathError):
    """Normalised request path escapes the root."""


@dataclass(frozen=True)
class ResolvedTarget:
    absolute_path: str


def percent_decode(path: Union[str, bytes]) -> bytes:
    """Decode %XY escapes; a stray '%' is kept as-is, never an error."""
    return urllib.parse.unquote_to_bytes(path)


def split_target(target: str) -> str:
    """Drop ?query and #fragment from a request target."""
    return target.split("?", 1)[0].split("#", 1)[0]


def is_within(root: str, path: str) -> bool:
    # "/srv/www" must not admit "/srv/wwwroot"
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def resolve_request_path(root: str, request_path: Union[str, bytes]) -> ResolvedTarget:
    """Join a decoded request path onto root and check it stays inside.

    Leading separators are stripped so "/etc" cannot override the root,
    then ".", ".." and doubled separators are collapsed lexically. The
    target does not have to exist.
    """
    if isinstance(request_path, bytes):
        request_path = os.fsdecode(request_path)
    if "\x00" in request_path:
        raise InvalidPathError("embedded NUL in request path")

    relative = request_path.replace("\\", "/") if os.sep == "\\" else request_path
    relative = relative.lstrip("/" + os.sep)
    resolved = os.path.normpath(os.path.join(root, relative))

    if not is_within(root, resolved):
        raise PathTraversalError(f"{request_path!r} escapes {root!r}")
    return ResolvedTarget(resolved)
