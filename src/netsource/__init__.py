"""
netsource — package root

File: src/netsource/__init__.py
Last updated: 2026-10-18

Purpose
- Package root for the network source-of-truth storage core.

What should be included in this file
- Version export and a minimal public API surface.
- No side effects at import time (no config loading, no logging init, no DB access).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
