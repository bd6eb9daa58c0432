"""
CLI layer for fibretry.

Handles only terminal transport: argument parsing, coloured output and
table formatting. The engine itself lives in ``fibretry.execution``.

Entry point::

    fibretry --help
"""

from fibretry.cli.app import app

__all__ = ["app"]
