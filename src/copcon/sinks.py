"""
Output sinks for the assembled report.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Protocol

import pyperclip

from .core import OutputError


class Sink(Protocol):
    def write(self, report: str) -> Optional[str]:
        """Deliver *report*; return a confirmation line, or ``None`` for none."""
        ...


class ClipboardSink:
    def write(self, report: str) -> Optional[str]:
        try:
            pyperclip.copy(report)
        except pyperclip.PyperclipException as e:
            raise OutputError(f"Could not copy report to clipboard: {e}")
        return "Directory structure and file contents have been copied to clipboard."


class StdoutSink:
    """Writes the report itself to stdout, so no confirmation is printed."""

    def write(self, report: str) -> Optional[str]:
        try:
            sys.stdout.write(report)
            sys.stdout.flush()
        except OSError as e:
            raise OutputError(f"Could not write report to stdout: {e}")
        return None


class FileSink:
    def __init__(self, out_path: Path) -> None:
        self.out_path = out_path

    def write(self, report: str) -> Optional[str]:
        try:
            out_path = self.out_path.resolve()
        except (OSError, RuntimeError) as e:
            raise OutputError(f"Could not resolve output path '{self.out_path}': {e}")

        if not out_path.parent.exists():
            try:
                out_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise OutputError(f"Could not create directory '{out_path.parent}': {e}")

        try:
            with out_path.open("w", encoding="utf-8", newline="") as out_fh:
                out_fh.write(report)
        except OSError as e:
            raise OutputError(f"Could not write to output file '{out_path}': {e}")
        return f"Directory structure and file contents have been written to {out_path}."
