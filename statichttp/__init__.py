"""Minimal static-content HTTP server over raw TCP sockets."""

__version__ = "1.0.0"
