"""
netsource — integration test package

File: tests/integration/__init__.py
Last updated: 2026-10-18

Purpose
- Test package marker file for subprocess-level CLI tests.

Functional requirements
- Must not import netsource at import time; tests drive the CLI through ``python -m netsource``.
"""
